"""CLI entry point for the audio feed bot."""
import logging
import signal
import threading

import click

from audiofeed.config import get_project_dir, load_config, resolve_path
from audiofeed.database import EntryStore, format_duration

logger = logging.getLogger(__name__)


def get_store() -> EntryStore:
    """Get the entry store at the configured path."""
    config = load_config()
    return EntryStore(resolve_path(config["storage"]["db_path"]))


def build_translator(config: dict, runner):
    """Translator with the configured mirrors, in declared order."""
    from audiofeed.translate import LibreTranslateBackend, Translator, YandexBackend

    settings = config["translate"]
    backends = []
    for mirror in settings.get("mirrors") or []:
        kind = mirror.get("type", "libretranslate")
        if kind == "yandex":
            backends.append(YandexBackend(
                api_key=settings.get("yandex_api_key", ""),
                folder_id=settings.get("yandex_folder_id", ""),
                timeout=settings["timeout"],
            ))
        elif kind == "libretranslate":
            backends.append(LibreTranslateBackend(
                url=mirror["url"],
                api_key=mirror.get("api_key", ""),
                timeout=settings["timeout"],
            ))
        else:
            raise click.ClickException(f"Unknown translation mirror type: {kind}")

    return Translator(
        backends,
        target_lang=settings["target_lang"],
        runner=runner,
        chunk_chars=settings["chunk_chars"],
        chunk_delay=settings["chunk_delay"],
    )


def build_adapters(config: dict, cancel_event: threading.Event | None = None):
    """Create every adapter once; pipelines share the result."""
    from audiofeed.article import ArticleExtractor
    from audiofeed.downloader import YtDlp
    from audiofeed.duration import FFProbe
    from audiofeed.pipeline import Adapters
    from audiofeed.subtitles import SubtitleService
    from audiofeed.tools import ToolRunner
    from audiofeed.tts import EdgeTTS
    from audiofeed.voiceover import VotCli

    tools = config["tools"]
    tts_config = config["tts"]
    files_location = resolve_path(config["feed"]["files_location"])
    runner = ToolRunner(cancel_event)

    downloader = YtDlp(
        runner,
        files_location,
        binary=tools["yt_dlp"],
        cookies_file=tools["cookies_file"],
        timeouts={
            "metadata": tools["metadata_timeout"],
            "download": tools["download_timeout"],
            "subtitles": tools["subtitles_timeout"],
        },
    )
    tts = None
    if tts_config["enabled"]:
        tts = EdgeTTS(
            runner,
            voice=tts_config["voice"],
            binary=tools["edge_tts"],
            timeout=tools["tts_timeout"],
            chunk_delay=tts_config["chunk_delay"],
        )

    return Adapters(
        runner=runner,
        downloader=downloader,
        duration=FFProbe(runner, binary=tools["ffprobe"], timeout=tools["probe_timeout"]),
        articles=ArticleExtractor(timeout=config["article"]["timeout"]),
        translator=build_translator(config, runner),
        tts=tts,
        subtitles=SubtitleService(downloader),
        vot=VotCli(runner, files_location, binary=tools["vot_cli"], timeout=tools["vot_timeout"]),
    )


def build_context(config: dict, store: EntryStore):
    from audiofeed.pipeline import PipelineContext

    feed = config["feed"]
    files_location = resolve_path(feed["files_location"])
    files_location.mkdir(parents=True, exist_ok=True)
    return PipelineContext(
        store=store,
        feed_name=feed["name"],
        max_items=feed["max_items"],
        files_location=files_location,
        target_lang=config["voiceover"]["target_lang"],
        tts_chunk_chars=config["tts"]["chunk_chars"],
    )


def _init_logging(config: dict, verbose: bool) -> None:
    from audiofeed.logging_config import setup_logging

    log_dir = get_project_dir() / "logs"
    setup_logging(log_dir, config["logging"]["retention_days"], verbose)


@click.group()
def cli():
    """Audio feed - turn videos and articles into podcast entries."""
    pass


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="Show debug output on the console")
def run(verbose: bool):
    """Start the Telegram bot."""
    from audiofeed.dispatcher import Dispatcher
    from audiofeed.telegram import TelegramMessenger

    config = load_config()
    _init_logging(config, verbose)

    telegram = config["telegram"]
    if not telegram["token"]:
        click.echo("Error: AUDIOFEED_TELEGRAM_TOKEN is not set", err=True)
        raise SystemExit(1)
    if not telegram["allowed_user_id"]:
        click.echo("Error: AUDIOFEED_ALLOWED_USER_ID is not set", err=True)
        raise SystemExit(1)

    stop_event = threading.Event()
    store = get_store()
    adapters = build_adapters(config, stop_event)
    context = build_context(config, store)

    feed = config["feed"]
    feed_url = f"{feed['base_url'].rstrip('/')}/rss/{feed['name']}" if feed["base_url"] else ""
    messenger = TelegramMessenger(
        telegram["token"],
        api_url=telegram["api_url"],
        poll_timeout=telegram["poll_timeout"],
    )
    dispatcher = Dispatcher(
        messenger,
        context,
        adapters,
        allowed_user_id=telegram["allowed_user_id"],
        tts_enabled=config["tts"]["enabled"],
        delete_delay=config["dispatcher"]["delete_delay"],
        list_limit=config["dispatcher"]["list_limit"],
        feed_url=feed_url,
    )

    signal.signal(signal.SIGTERM, lambda _signum, _frame: stop_event.set())
    logger.info(f"audiofeed bot starting for user {telegram['allowed_user_id']}, feed: {feed['name']}")
    try:
        dispatcher.serve(messenger.poll(stop_event))
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        dispatcher.shutdown()
        store.close()
        logger.info("audiofeed bot stopped")


@cli.command()
@click.argument("url")
@click.option("--voiceover", is_flag=True, help="Add a translated voiceover instead of the original audio")
@click.option("--verbose", "-v", is_flag=True, help="Show debug output on the console")
def add(url: str, voiceover: bool, verbose: bool):
    """Ingest one URL in the foreground."""
    from audiofeed.models import ResourceKind
    from audiofeed.pipeline import make_pipeline
    from audiofeed.resources import classify_resource

    config = load_config()
    _init_logging(config, verbose)

    kind = ResourceKind.VOICEOVER if voiceover else classify_resource(url)
    if kind is ResourceKind.UNKNOWN:
        click.echo(f"Error: not a YouTube or article URL: {url}", err=True)
        raise SystemExit(1)

    store = get_store()
    try:
        pipeline = make_pipeline(
            kind,
            build_context(config, store),
            build_adapters(config),
            url,
            reporter=click.echo,
        )
        result = pipeline.run()
    finally:
        store.close()

    click.echo(result.message)
    if not result.ok:
        raise SystemExit(1)


@cli.command("list")
@click.option("--limit", "-n", type=int, default=10, help="Number of entries to show")
def list_entries(limit: int):
    """Show the newest feed entries."""
    config = load_config()
    store = get_store()
    try:
        entries = store.load(config["feed"]["name"], limit)
    finally:
        store.close()

    if not entries:
        click.echo("Feed is empty.")
        return
    for i, entry in enumerate(entries, 1):
        click.echo(f"{i}. {entry.title} ({format_duration(entry.duration_seconds)})")
        click.echo(f"    {entry.link}")


@cli.command()
@click.argument("index", type=click.IntRange(min=1))
def delete(index: int):
    """Delete entry INDEX (1 = newest), its file and its processed marker."""
    from audiofeed.dispatcher import HISTORY_LIMIT
    from audiofeed.pipeline import remove_entry

    config = load_config()
    max_items = config["feed"]["max_items"]
    store = get_store()
    try:
        entries = store.load(config["feed"]["name"], max_items if max_items > 0 else HISTORY_LIMIT)
        if index > len(entries):
            click.echo(f"Only {len(entries)} entries in feed.", err=True)
            raise SystemExit(1)
        entry = entries[index - 1]
        remove_entry(store, entry)
    finally:
        store.close()

    click.echo(f"Deleted: {entry.title}")


if __name__ == "__main__":
    cli()
