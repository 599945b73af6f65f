"""Ingestion pipelines: one resource in, one feed entry out."""
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable

from .article import ArticleExtractor, estimate_duration
from .database import EntryStore, format_duration
from .downloader import YtDlp
from .duration import FFProbe
from .errors import (
    AudiofeedError,
    InvalidResourceError,
    NoContentError,
    PipelineCancelled,
)
from .fallback import Candidate, first_success
from .models import Entry, ResourceKind, VideoInfo, VoiceoverMethod
from .resources import (
    extract_url,
    extract_video_id,
    is_article_url,
    make_file_name,
    make_resource_id,
    video_url,
)
from .subtitles import SubtitleService
from .tools import ToolRunner
from .translate import Translator, detect_language
from .tts import EdgeTTS
from .voiceover import METHOD_MARKERS, VotCli, find_dubbed_track, voiceover_plan

logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]

ARTICLE_MARKER = "📖"


class PipelineState(str, Enum):
    PENDING = "pending"
    RESOLVING_ID = "resolving-id"
    DEDUP_CHECK = "dedup-check"
    ACQUIRING = "acquiring"
    PERSISTING = "persisting"
    MARKING_PROCESSED = "marking-processed"
    EVICTING = "evicting"
    REPORTING = "reporting"


class PipelineStatus(str, Enum):
    SUCCESS = "success"
    ALREADY_EXISTS = "already-exists"
    SKIPPED = "skipped"
    FAILURE = "failure"


@dataclass
class PipelineResult:
    """Terminal outcome of a pipeline run."""

    status: PipelineStatus
    message: str
    entry: Entry | None = None

    @property
    def ok(self) -> bool:
        """Duplicates count as success."""
        return self.status in (PipelineStatus.SUCCESS, PipelineStatus.ALREADY_EXISTS)


@dataclass(frozen=True)
class Adapters:
    """Collaborators built once at startup and shared by every pipeline."""

    runner: ToolRunner
    downloader: YtDlp
    duration: FFProbe
    articles: ArticleExtractor | None = None
    translator: Translator | None = None
    tts: EdgeTTS | None = None
    subtitles: SubtitleService | None = None
    vot: VotCli | None = None


@dataclass(frozen=True)
class PipelineContext:
    store: EntryStore
    feed_name: str
    max_items: int
    files_location: Path
    target_lang: str = "ru"
    tts_chunk_chars: int = 3000


def delete_file(path: str) -> bool:
    """Best-effort file removal. A file that is already gone is not an error."""
    if not path:
        return False
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        logger.warning(f"Failed to delete file {path}: {e}")
        return False
    logger.info(f"Deleted file {path}")
    return True


def evict_old_entries(store: EntryStore, feed_name: str, max_items: int) -> list[str]:
    """Trim the feed to ``max_items`` and remove the evicted audio files."""
    files = store.remove_old(feed_name, max_items)
    for path in files:
        delete_file(path)
    return files


def remove_entry(store: EntryStore, entry: Entry) -> None:
    """Manual delete: store row first, then the file, then the processed marker.

    Store errors on the row delete propagate. File and marker cleanup
    failures are logged only.
    """
    store.remove(entry)
    delete_file(entry.file_path)
    try:
        store.reset_processed(entry)
    except sqlite3.Error as e:
        logger.warning(f"Failed to reset processed marker for {entry.resource_id}: {e}")
    logger.info(f"Deleted entry {entry.resource_id}: {entry.title}")


def parse_upload_date(value: str) -> datetime | None:
    """Parse yt-dlp's YYYYMMDD upload date as UTC midnight."""
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y%m%d").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


class Pipeline:
    """Shared state machine; subclasses provide ``resolve_id`` and ``acquire``."""

    kind: ResourceKind = ResourceKind.UNKNOWN
    log_tag = "PIPELINE"

    def __init__(self, context: PipelineContext, adapters: Adapters, source: str, reporter: Reporter | None = None):
        self.context = context
        self.adapters = adapters
        self.source = source
        self.reporter = reporter
        self.state = PipelineState.PENDING
        # Audio file produced by acquire, removed again if the run is cancelled
        self.file_path = ""

    def report(self, text: str) -> None:
        if self.reporter is None:
            return
        try:
            self.reporter(text)
        except Exception as e:
            logger.warning(f"[{self.log_tag}] Progress update failed: {e}")

    def _enter(self, state: PipelineState) -> None:
        logger.debug(f"[{self.log_tag}] {self.source}: {self.state.value} -> {state.value}")
        self.state = state

    def run(self) -> PipelineResult:
        """Drive the resource through every step and return the terminal status.

        Never raises: failures become a FAILURE result with the error text.
        """
        try:
            result = self._run()
        except NoContentError as e:
            logger.warning(f"[{self.log_tag}] Skipped {self.source}: {e}")
            result = PipelineResult(PipelineStatus.SKIPPED, f"⚠️ No content: {e}")
        except PipelineCancelled as e:
            logger.warning(f"[{self.log_tag}] Cancelled {self.source}: {e}")
            result = PipelineResult(PipelineStatus.FAILURE, f"❌ Cancelled: {e}")
        except AudiofeedError as e:
            logger.error(f"[{self.log_tag}] ✗ Failed: {self.source}: {e}")
            result = PipelineResult(PipelineStatus.FAILURE, f"❌ Error: {e}")
        except Exception as e:
            logger.exception(f"[{self.log_tag}] ✗ Unexpected error: {self.source}")
            result = PipelineResult(PipelineStatus.FAILURE, f"❌ Error: {e}")

        self._enter(PipelineState.REPORTING)
        return result

    def _run(self) -> PipelineResult:
        store = self.context.store

        self._enter(PipelineState.RESOLVING_ID)
        resource_id = self.resolve_id()
        key = Entry(feed_name=self.context.feed_name, resource_id=resource_id, title="", link="")

        self._enter(PipelineState.DEDUP_CHECK)
        if store.check_processed(key):
            logger.info(f"[{self.log_tag}] Already processed: {resource_id}")
            return PipelineResult(PipelineStatus.ALREADY_EXISTS, "⚠️ Already in feed")

        self._enter(PipelineState.ACQUIRING)
        try:
            entry = self.acquire(resource_id)
            if self.adapters.runner.cancel_event.is_set():
                raise PipelineCancelled("cancelled before saving")
        except PipelineCancelled:
            delete_file(self.file_path)
            raise

        self._enter(PipelineState.PERSISTING)
        if not store.save(entry):
            logger.info(f"[{self.log_tag}] Entry already exists: {resource_id}")
            return PipelineResult(PipelineStatus.ALREADY_EXISTS, f"⚠️ Already exists: {entry.title}", entry)

        self._enter(PipelineState.MARKING_PROCESSED)
        try:
            store.set_processed(entry)
        except sqlite3.Error as e:
            logger.warning(f"[{self.log_tag}] Failed to mark as processed: {e}")

        self._enter(PipelineState.EVICTING)
        try:
            evict_old_entries(store, self.context.feed_name, self.context.max_items)
        except sqlite3.Error as e:
            logger.error(f"[{self.log_tag}] Failed to remove old entries: {e}")

        duration = format_duration(entry.duration_seconds)
        logger.info(f"[{self.log_tag}] ✓ Added {resource_id}: {entry.title} ({duration})")
        return PipelineResult(PipelineStatus.SUCCESS, f"✅ {entry.title} ({duration})", entry)

    def resolve_id(self) -> str:
        raise NotImplementedError

    def acquire(self, resource_id: str) -> Entry:
        raise NotImplementedError

    def _file_path(self, resource_id: str) -> Path:
        return self.context.files_location / f"{make_file_name(self.context.feed_name, resource_id)}.mp3"

    def _probe(self, path: str, fallback: int) -> int:
        probed = self.adapters.duration.probe(path)
        return probed if probed > 0 else max(int(fallback), 0)

    def _synthesize_to_file(self, text: str, path: Path) -> None:
        if self.adapters.tts is None:
            raise AudiofeedError("TTS is disabled")
        audio = self.adapters.tts.synthesize_chunked(text, self.context.tts_chunk_chars)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(audio)
        self.file_path = str(path)

    def _translate_if_needed(self, text: str) -> str:
        translator = self.adapters.translator
        if translator is None or not translator.needs_translation(text, self.context.target_lang):
            return text
        self.report(f"🌐 Translating from {detect_language(text)} to {self.context.target_lang}...")
        return translator.translate(text, self.context.target_lang)


class VideoPipeline(Pipeline):
    """Download a video's audio track into the feed."""

    kind = ResourceKind.VIDEO
    log_tag = "VIDEO"

    def resolve_id(self) -> str:
        video_id = extract_video_id(self.source)
        if not video_id:
            raise InvalidResourceError(f"no YouTube video ID in {self.source!r}")
        self.video_id = video_id
        return make_resource_id(self.kind, video_id)

    def acquire(self, resource_id: str) -> Entry:
        downloader = self.adapters.downloader

        self.report("⏳ Fetching video info...")
        info = downloader.fetch_metadata(video_url(self.video_id))

        self.report(f"⬇️ Downloading: {info.title}...")
        file_path = downloader.acquire_media(self.video_id, make_file_name(self.context.feed_name, resource_id))
        self.file_path = file_path

        return Entry(
            feed_name=self.context.feed_name,
            resource_id=resource_id,
            title=info.title,
            link=info.webpage_url or video_url(self.video_id),
            author_name=info.uploader,
            author_uri=info.channel_url,
            description=info.description,
            thumbnail_url=info.thumbnail,
            published=parse_upload_date(info.upload_date) or datetime.now(timezone.utc),
            file_path=file_path,
            duration_seconds=self._probe(file_path, info.duration),
        )


class ArticlePipeline(Pipeline):
    """Narrate a web article with TTS."""

    kind = ResourceKind.ARTICLE
    log_tag = "ARTICLE"

    def resolve_id(self) -> str:
        url = extract_url(self.source)
        if not url or not is_article_url(url):
            raise InvalidResourceError(f"no article URL in {self.source!r}")
        self.url = url
        return make_resource_id(self.kind, url)

    def acquire(self, resource_id: str) -> Entry:
        if self.adapters.articles is None:
            raise AudiofeedError("article extraction is not configured")

        self.report("⏳ Extracting article text...")
        article = self.adapters.articles.extract(self.url)

        text = self._translate_if_needed(article.text_content)

        self.report(f"🔊 Narrating: {article.title} ({len(text)} chars)...")
        path = self._file_path(resource_id)
        self._synthesize_to_file(text, path)

        title = article.title or self.url
        return Entry(
            feed_name=self.context.feed_name,
            resource_id=resource_id,
            title=f"{ARTICLE_MARKER} {title}",
            link=self.url,
            author_name=article.site_name,
            author_uri=self.url,
            description=f"TTS narration of article: {self.url}",
            thumbnail_url=article.image,
            file_path=str(path),
            duration_seconds=self._probe(str(path), estimate_duration(text)),
        )


class VoiceoverPipeline(Pipeline):
    """Translated voice-over of a video: dubbed track, vot-cli or subtitles + TTS."""

    kind = ResourceKind.VOICEOVER
    log_tag = "VOICEOVER"

    def resolve_id(self) -> str:
        video_id = extract_video_id(self.source)
        if not video_id:
            raise InvalidResourceError(f"no YouTube video ID in {self.source!r}")
        self.video_id = video_id
        self.url = video_url(video_id)
        return make_resource_id(self.kind, video_id)

    def acquire(self, resource_id: str) -> Entry:
        downloader = self.adapters.downloader
        target_lang = self.context.target_lang

        self.report("⏳ Fetching video info...")
        info = downloader.fetch_metadata(self.url)

        self.report(f"🔍 Looking for a {target_lang} dubbed track...")
        try:
            tracks = downloader.list_dubbed_tracks(self.url)
        except PipelineCancelled:
            raise
        except AudiofeedError as e:
            logger.warning(f"[{self.log_tag}] Could not list audio tracks: {e}")
            tracks = []

        plan = voiceover_plan(tracks, target_lang, info.duration)
        logger.info(f"[{self.log_tag}] Plan for {self.video_id}: {' -> '.join(m.value for m in plan)}")

        def candidate(method: VoiceoverMethod) -> Candidate:
            if method is VoiceoverMethod.DUBBED:
                return Candidate(method.value, lambda: self._dubbed(info, tracks))
            if method is VoiceoverMethod.SUBTITLES:
                return Candidate(method.value, lambda: self._subtitles(info, resource_id))
            return Candidate(method.value, lambda: self._vot(info))

        outcome = first_success(
            [candidate(method) for method in plan],
            should_fallback=lambda name, exc: (
                name == VoiceoverMethod.DUBBED.value and not isinstance(exc, PipelineCancelled)
            ),
        )
        method = VoiceoverMethod(outcome.name)
        file_path, estimated = outcome.value
        self.file_path = file_path
        logger.info(f"[{self.log_tag}] Voiceover via {method.value}: {file_path}")

        marker = METHOD_MARKERS[method]
        return Entry(
            feed_name=self.context.feed_name,
            resource_id=resource_id,
            title=f"{marker} {info.title} [{method.value}]",
            link=self.url,
            author_name=info.uploader,
            author_uri=info.channel_url,
            description=f"Voiceover ({method.value}): {info.title}\n{info.description}",
            thumbnail_url=info.thumbnail or f"https://i.ytimg.com/vi/{self.video_id}/hqdefault.jpg",
            file_path=file_path,
            duration_seconds=self._probe(file_path, estimated or info.duration),
        )

    def _dubbed(self, info: VideoInfo, tracks) -> tuple[str, int]:
        track = find_dubbed_track(tracks, self.context.target_lang)
        self.report(f"🎬 Downloading dubbed track ({track.language}): {info.title}...")
        return self.adapters.downloader.download_track(self.url, track), 0

    def _vot(self, info: VideoInfo) -> tuple[str, int]:
        if self.adapters.vot is None:
            raise AudiofeedError("vot-cli is not configured")
        self.report(f"🎙 Fetching voiceover (vot-cli): {info.title}...")
        return self.adapters.vot.translate_video(self.url, self.context.target_lang), 0

    def _subtitles(self, info: VideoInfo, resource_id: str) -> tuple[str, int]:
        if self.adapters.subtitles is None:
            raise AudiofeedError("subtitle service is not configured")
        self.report(f"📝 Video is longer than 4h, downloading subtitles: {info.title}...")
        text, lang = self.adapters.subtitles.fetch_text(self.url)
        if not text:
            raise AudiofeedError("subtitles are empty")
        logger.info(f"[{self.log_tag}] Extracted {len(text)} chars from subtitles (lang: {lang})")

        if lang != self.context.target_lang:
            text = self._translate_if_needed(text)

        self.report(f"🔊 Narrating subtitles ({len(text)} chars, this takes a while)...")
        path = self._file_path(resource_id)
        self._synthesize_to_file(text, path)
        return str(path), estimate_duration(text)


PIPELINES = {
    ResourceKind.VIDEO: VideoPipeline,
    ResourceKind.ARTICLE: ArticlePipeline,
    ResourceKind.VOICEOVER: VoiceoverPipeline,
}


def make_pipeline(
    kind: ResourceKind,
    context: PipelineContext,
    adapters: Adapters,
    source: str,
    reporter: Reporter | None = None,
) -> Pipeline:
    if kind not in PIPELINES:
        raise InvalidResourceError(f"no pipeline for {kind.value} resources")
    return PIPELINES[kind](context, adapters, source, reporter)
