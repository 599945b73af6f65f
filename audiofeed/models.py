"""Data models for the audio feed."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class ResourceKind(str, Enum):
    """Kind of a submitted resource, also the namespace of its resource_id."""

    VIDEO = "video"
    ARTICLE = "article"
    VOICEOVER = "voiceover"
    UNKNOWN = "unknown"


class VoiceoverMethod(str, Enum):
    """How a voiceover was acquired. The value is the tag shown in titles."""

    DUBBED = "youtube-dubbed"
    SUBTITLES = "subtitles-tts"
    VOT = "vot-cli"


@dataclass
class Entry:
    """Feed entry with a reference to its audio file."""

    feed_name: str
    resource_id: str
    title: str
    link: str
    author_name: str = ""
    author_uri: str = ""
    description: str = ""
    thumbnail_url: str = ""
    published: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    file_path: str = ""
    duration_seconds: int = 0


@dataclass
class VideoInfo:
    """Video metadata from yt-dlp --dump-json."""

    id: str
    title: str
    description: str = ""
    uploader: str = ""
    channel_url: str = ""
    duration: float = 0
    thumbnail: str = ""
    upload_date: str = ""  # YYYYMMDD
    webpage_url: str = ""


@dataclass
class Article:
    """Readable article content."""

    title: str
    text_content: str
    url: str
    image: str = ""
    site_name: str = ""


@dataclass
class AudioTrack:
    """Audio-only track of a video (original or dubbed)."""

    language: str
    format_id: str
    ext: str = ""
    bitrate: int = 0


@dataclass
class ToolResult:
    """Completed external tool invocation."""

    returncode: int
    stdout: str
    stderr: str
