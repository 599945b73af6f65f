"""Resource sniffing and deterministic identifiers."""
import hashlib
import re
from urllib.parse import urlparse, urlunparse

from .models import ResourceKind

YOUTUBE_ID_PATTERNS = [
    re.compile(r"youtube\.com/watch\?(?:[^\s#]*&)?v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtu\.be/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/embed/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/v/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([a-zA-Z0-9_-]{11})"),
]

YOUTUBE_URL_MARKERS = [
    "youtube.com/watch",
    "youtu.be/",
    "youtube.com/embed/",
    "youtube.com/v/",
    "youtube.com/shorts/",
]

URL_PATTERN = re.compile(r"https?://[^\s<>\"{}|\\^`\[\]]+")

MEDIA_EXTENSIONS = [".jpg", ".jpeg", ".png", ".gif", ".webp", ".mp3", ".mp4", ".pdf", ".zip", ".rar"]


def extract_video_id(text: str) -> str | None:
    """Extract an 11-character YouTube video ID from any supported URL form."""
    for pattern in YOUTUBE_ID_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_url(text: str) -> str | None:
    match = URL_PATTERN.search(text)
    return match.group(0) if match else None


def is_youtube_url(url: str) -> bool:
    lower = url.lower()
    return any(marker in lower for marker in YOUTUBE_URL_MARKERS)


def is_article_url(url: str) -> bool:
    """http(s) page that is neither YouTube nor a direct media/archive file."""
    if is_youtube_url(url):
        return False
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    path = parsed.path.lower()
    return not any(path.endswith(ext) for ext in MEDIA_EXTENSIONS)


def classify_resource(text: str) -> ResourceKind:
    """Decide which pipeline a free-text submission belongs to."""
    if extract_video_id(text):
        return ResourceKind.VIDEO
    url = extract_url(text)
    if url and is_article_url(url):
        return ResourceKind.ARTICLE
    return ResourceKind.UNKNOWN


def normalize_youtube_url(url: str) -> str:
    """Rewrite mobile and music hosts to www.youtube.com."""
    url = url.replace("m.youtube.com", "www.youtube.com", 1)
    return url.replace("music.youtube.com", "www.youtube.com", 1)


def video_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def normalize_article_url(url: str) -> str:
    """Lowercase scheme and host, drop the fragment and a trailing slash."""
    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, parsed.params, parsed.query, ""))


def make_resource_id(kind: ResourceKind, source: str) -> str:
    """Namespaced resource ID; identical sources of different kinds never collide.

    Video and voiceover IDs keep the video ID readable, article IDs are a
    content hash of the normalized URL.
    """
    if kind is ResourceKind.UNKNOWN:
        raise ValueError("cannot derive resource id for unknown resource")
    if kind is ResourceKind.ARTICLE:
        digest = hashlib.sha1(normalize_article_url(source).encode("utf-8")).hexdigest()
        return f"{kind.value}:{digest[:16]}"
    return f"{kind.value}:{source}"


def make_file_name(feed_name: str, resource_id: str) -> str:
    """Stable audio file stem for an entry (no extension)."""
    return hashlib.sha1(f"{feed_name}::{resource_id}".encode("utf-8")).hexdigest()
