"""yt-dlp adapter: metadata, audio download, dubbed tracks and subtitles."""
import json
import logging
import time
from pathlib import Path

from .errors import NoContentError, ToolError
from .fallback import with_credential_fallback
from .models import AudioTrack, VideoInfo
from .resources import extract_video_id, normalize_youtube_url
from .tools import ToolRunner


class YtDlp:
    """Invoke yt-dlp with optional cookies.

    Every call that may use cookies goes through ``with_credential_fallback``:
    when yt-dlp reports expired cookies it is retried once without them.
    """

    def __init__(
        self,
        runner: ToolRunner,
        destination: Path,
        binary: str = "yt-dlp",
        cookies_file: str = "",
        timeouts: dict | None = None,
    ):
        self.runner = runner
        self.destination = destination
        self.binary = binary
        self.cookies_file = cookies_file
        timeouts = timeouts or {}
        self.metadata_timeout = timeouts.get("metadata", 120)
        self.download_timeout = timeouts.get("download", 1800)
        self.subtitles_timeout = timeouts.get("subtitles", 300)
        self.logger = logging.getLogger(__name__)

    def _args(self, use_cookies: bool, *args: str) -> list[str]:
        result = [self.binary]
        if use_cookies and self.cookies_file:
            result += ["--cookies", self.cookies_file]
        result.append("--no-playlist")
        result += list(args)
        return result

    def _run(self, build_args, timeout: float, cwd: Path | None = None):
        def attempt(use_cookies: bool):
            if not use_cookies and self.cookies_file:
                self.logger.warning("Cookies rejected, retrying without cookies")
            return self.runner.run(build_args(use_cookies), timeout=timeout, cwd=cwd)

        return with_credential_fallback(attempt, has_credentials=bool(self.cookies_file))

    def _dump_json(self, url: str) -> dict:
        url = normalize_youtube_url(url)
        result = self._run(
            lambda use_cookies: self._args(use_cookies, "--dump-json", "--no-download", url),
            timeout=self.metadata_timeout,
        )
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ToolError(self.binary, f"failed to parse video info: {e}")

    def fetch_metadata(self, url: str) -> VideoInfo:
        """Fetch video metadata without downloading."""
        data = self._dump_json(url)
        info = VideoInfo(
            id=data.get("id", ""),
            title=data.get("title") or "",
            description=data.get("description") or "",
            uploader=data.get("uploader") or "",
            channel_url=data.get("channel_url") or "",
            duration=float(data.get("duration") or 0),
            thumbnail=data.get("thumbnail") or "",
            upload_date=data.get("upload_date") or "",
            webpage_url=data.get("webpage_url") or url,
        )
        self.logger.debug(f"Got video info: id={info.id}, title={info.title}, duration={info.duration:.0f}s")
        return info

    def acquire_media(self, video_id: str, file_name: str) -> str:
        """Download audio as ``<destination>/<file_name>.mp3``.

        Raises:
            NoContentError: yt-dlp succeeded but left no mp3 behind
        """
        self.destination.mkdir(parents=True, exist_ok=True)
        url = f"https://www.youtube.com/watch?v={video_id}"
        self._run(
            lambda use_cookies: self._args(
                use_cookies,
                "--extract-audio",
                "--audio-format=mp3",
                "--audio-quality=0",
                "-f", "m4a/bestaudio",
                "--no-progress",
                "-o", f"{file_name}.%(ext)s",
                url,
            ),
            timeout=self.download_timeout,
            cwd=self.destination,
        )
        file_path = self.destination / f"{file_name}.mp3"
        if not file_path.exists():
            raise NoContentError(f"yt-dlp produced no audio for {video_id}")
        return str(file_path)

    def list_dubbed_tracks(self, url: str) -> list[AudioTrack]:
        """Audio-only formats that carry a language tag, one per language."""
        data = self._dump_json(url)
        tracks = []
        seen = set()
        for fmt in data.get("formats") or []:
            if fmt.get("vcodec") != "none" or fmt.get("acodec") in (None, "", "none"):
                continue
            language = fmt.get("language")
            if not language or language in seen:
                continue
            seen.add(language)
            tracks.append(
                AudioTrack(
                    language=language,
                    format_id=str(fmt.get("format_id", "")),
                    ext=fmt.get("ext") or "",
                    bitrate=int(fmt.get("abr") or 0),
                )
            )
        self.logger.info(f"Found {len(tracks)} audio tracks for {url}")
        return tracks

    def download_track(self, url: str, track: AudioTrack) -> str:
        """Download one audio track converted to mp3."""
        url = normalize_youtube_url(url)
        video_id = extract_video_id(url)
        if not video_id:
            raise ToolError(self.binary, "could not extract video ID")

        self.destination.mkdir(parents=True, exist_ok=True)
        output = self.destination / f"vo_{video_id}_{int(time.time())}.mp3"
        self.logger.info(f"Downloading dubbed track (lang={track.language}, format={track.format_id}) for {url}")
        self._run(
            lambda use_cookies: self._args(
                use_cookies,
                "-f", track.format_id,
                "--extract-audio",
                "--audio-format", "mp3",
                "--audio-quality", "128K",
                "-o", str(output),
                url,
            ),
            timeout=self.download_timeout,
        )
        if not output.exists() or output.stat().st_size == 0:
            raise NoContentError(f"dubbed track download produced no audio for {video_id}")
        return str(output)

    def download_subtitles(self, url: str) -> tuple[Path, str]:
        """Download manual or auto subtitles (en or ru).

        Returns:
            (subtitle file, language code)
        """
        url = normalize_youtube_url(url)
        video_id = extract_video_id(url)
        if not video_id:
            raise ToolError(self.binary, "could not extract video ID")

        self.destination.mkdir(parents=True, exist_ok=True)
        stem = f"sub_{video_id}_{int(time.time())}"
        self._run(
            lambda use_cookies: self._args(
                use_cookies,
                "--write-sub",
                "--write-auto-sub",
                "--sub-lang", "en,ru",
                "--sub-format", "vtt/srt/best",
                "--skip-download",
                "--output", str(self.destination / stem),
                url,
            ),
            timeout=self.subtitles_timeout,
        )

        matches = sorted(self.destination.glob(f"{stem}*.vtt")) or sorted(self.destination.glob(f"{stem}*.srt"))
        if not matches:
            raise NoContentError("no subtitle file found")

        sub_file = matches[0]
        lang = "ru" if ".ru." in sub_file.name else "en"
        self.logger.info(f"Downloaded subtitles: {sub_file.name} (lang: {lang})")
        return sub_file, lang
