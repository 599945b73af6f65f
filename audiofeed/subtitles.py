"""Subtitle download and text extraction."""
import logging
import re
from pathlib import Path

VTT_TIMESTAMP = re.compile(r"^\d{2}:\d{2}:\d{2}[.,]\d{3}\s*-->")
SRT_TIMESTAMP = re.compile(r"^\d{2}:\d{2}:\d{2},\d{3}\s*-->")
SEQUENCE_NUMBER = re.compile(r"^\d+$")
TAG = re.compile(r"<[^>]+>")

VTT_SKIP_PREFIXES = ("NOTE", "STYLE", "Kind:", "Language:")

logger = logging.getLogger(__name__)


def parse_vtt(content: str) -> str:
    """Extract spoken text from WebVTT, dropping consecutive repeats."""
    lines = []
    last_line = None
    in_cue = False

    for raw in content.splitlines():
        line = raw.strip()
        if not line or line == "WEBVTT" or line.startswith(VTT_SKIP_PREFIXES):
            in_cue = False
            continue
        if VTT_TIMESTAMP.match(line):
            in_cue = True
            continue
        # Cue identifiers precede the timestamp line
        if not in_cue:
            continue

        line = TAG.sub("", line).strip()
        if line and line != last_line:
            lines.append(line)
            last_line = line

    return " ".join(lines)


def parse_srt(content: str) -> str:
    """Extract spoken text from SRT, dropping consecutive repeats."""
    lines = []
    last_line = None

    for raw in content.splitlines():
        line = raw.strip()
        if not line or SEQUENCE_NUMBER.match(line) or SRT_TIMESTAMP.match(line):
            continue
        line = TAG.sub("", line).strip()
        if line and line != last_line:
            lines.append(line)
            last_line = line

    return " ".join(lines)


class SubtitleService:
    """Fetch a video's subtitles and turn them into plain text."""

    def __init__(self, downloader):
        self.downloader = downloader

    def fetch_text(self, url: str) -> tuple[str, str]:
        """Return (transcript, language). The subtitle file is removed afterwards."""
        sub_file, lang = self.downloader.download_subtitles(url)
        try:
            return self.parse(sub_file), lang
        finally:
            cleanup(sub_file)

    @staticmethod
    def parse(path: Path) -> str:
        content = path.read_text(encoding="utf-8", errors="replace")
        if path.suffix.lower() == ".vtt":
            return parse_vtt(content)
        return parse_srt(content)


def cleanup(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove subtitle file {path}: {e}")
