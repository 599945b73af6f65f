"""Voiceover method selection and the vot-cli adapter."""
import logging
import time
from pathlib import Path

from .errors import NoContentError
from .models import AudioTrack, VoiceoverMethod
from .resources import extract_video_id, normalize_youtube_url
from .tools import ToolRunner

# Videos longer than this skip vot-cli and go through subtitles + TTS
LONG_MEDIA_THRESHOLD = 4 * 60 * 60

METHOD_MARKERS = {
    VoiceoverMethod.DUBBED: "🎬",
    VoiceoverMethod.SUBTITLES: "📝",
    VoiceoverMethod.VOT: "🎙",
}


def language_matches(track_language: str, target_lang: str) -> bool:
    """Exact match or a region variant in either direction ("ru" ~ "ru-RU")."""
    track_language = track_language.lower()
    target_lang = target_lang.lower()
    return (
        track_language == target_lang
        or track_language.startswith(target_lang + "-")
        or target_lang.startswith(track_language + "-")
    )


def find_dubbed_track(tracks: list[AudioTrack], target_lang: str) -> AudioTrack | None:
    for track in tracks:
        if language_matches(track.language, target_lang):
            return track
    return None


def duration_fallback_method(duration: float) -> VoiceoverMethod:
    if duration > LONG_MEDIA_THRESHOLD:
        return VoiceoverMethod.SUBTITLES
    return VoiceoverMethod.VOT


def select_voiceover_method(tracks: list[AudioTrack], target_lang: str, duration: float) -> VoiceoverMethod:
    """Pick the preferred method from track availability and duration alone."""
    if find_dubbed_track(tracks, target_lang):
        return VoiceoverMethod.DUBBED
    return duration_fallback_method(duration)


def voiceover_plan(tracks: list[AudioTrack], target_lang: str, duration: float) -> list[VoiceoverMethod]:
    """Methods to try in order.

    A dubbed track download that fails hands over to the duration-based
    method; the duration-based methods have no further fallback.
    """
    method = select_voiceover_method(tracks, target_lang, duration)
    if method is VoiceoverMethod.DUBBED:
        return [VoiceoverMethod.DUBBED, duration_fallback_method(duration)]
    return [method]


class VotCli:
    """Voice-over translation through the vot-cli tool."""

    def __init__(self, runner: ToolRunner, destination: Path, binary: str = "vot-cli", timeout: float = 1800):
        self.runner = runner
        self.destination = destination
        self.binary = binary
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def translate_video(self, url: str, target_lang: str) -> str:
        """Produce a translated voice-over mp3 and return its path."""
        url = normalize_youtube_url(url)
        video_id = extract_video_id(url)
        if not video_id:
            raise ValueError(f"could not extract video ID from {url}")

        self.destination.mkdir(parents=True, exist_ok=True)
        output = self.destination / f"vo_{video_id}_{int(time.time())}.mp3"
        args = [
            self.binary,
            "--output", str(self.destination),
            "--output-file", output.name,
            "--reslang", target_lang,
            url,
        ]
        self.logger.info(f"Running vot-cli for {video_id} (lang={target_lang})")
        result = self.runner.run(args, timeout=self.timeout)
        self.logger.debug(f"vot-cli stdout: {result.stdout.strip()[:500]}")

        if not output.exists():
            raise NoContentError(f"vot-cli did not create output file at {output}")
        if output.stat().st_size == 0:
            raise NoContentError("vot-cli created empty file")

        self.logger.info(f"vot-cli created {output.name} ({output.stat().st_size} bytes)")
        return str(output)
