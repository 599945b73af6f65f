"""Tests for command dispatch."""
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

OWNER = 42


class FakeMessenger:
    """Records outbound calls; message ids count up from 100."""

    def __init__(self):
        self.sent = []
        self.edits = []
        self.deleted = []
        self.deleted_event = threading.Event()
        self._next_id = 100

    def send(self, chat_id, text, preview=True):
        self.sent.append((chat_id, text, preview))
        self._next_id += 1
        return self._next_id

    def edit(self, chat_id, message_id, text):
        self.edits.append((chat_id, message_id, text))

    def delete(self, chat_id, message_id):
        self.deleted.append((chat_id, message_id))
        self.deleted_event.set()

    @property
    def last_text(self):
        return self.sent[-1][1]


def _dispatcher(tmpdir, max_items=10, **kwargs):
    from audiofeed.database import EntryStore
    from audiofeed.dispatcher import Dispatcher
    from audiofeed.pipeline import Adapters, PipelineContext
    from audiofeed.tools import ToolRunner

    store = EntryStore(Path(tmpdir) / "test.db")
    context = PipelineContext(
        store=store, feed_name="feed", max_items=max_items, files_location=Path(tmpdir) / "files"
    )
    adapters = Adapters(runner=ToolRunner(threading.Event()), downloader=MagicMock(), duration=MagicMock())
    messenger = FakeMessenger()
    kwargs.setdefault("delete_delay", 0)
    return Dispatcher(messenger, context, adapters, allowed_user_id=OWNER, **kwargs), messenger, store


def _message(text, sender_id=OWNER, message_id=7):
    from audiofeed.dispatcher import IncomingMessage

    return IncomingMessage(sender_id=sender_id, chat_id=1, message_id=message_id, text=text)


def _add_entries(store, count):
    """Save entries E1..En, En newest."""
    from audiofeed.models import Entry

    for i in range(1, count + 1):
        store.save(Entry(
            feed_name="feed",
            resource_id=f"video:{i}",
            title=f"E{i}",
            link=f"https://example.com/{i}",
            published=datetime(2024, 1, i, tzinfo=timezone.utc),
            duration_seconds=60 * i,
        ))


def test_unauthorized_user_is_rejected():
    """Messages from other users get the fixed denial and start nothing."""
    from audiofeed.dispatcher import UNAUTHORIZED_MESSAGE

    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)

        with patch("audiofeed.dispatcher.make_pipeline") as make_pipeline:
            for text in ["/list", "https://youtu.be/dQw4w9WgXcQ", "/del 1"]:
                assert dispatcher.handle(_message(text, sender_id=999)) is None

        assert [t for _, t, _ in messenger.sent] == [UNAUTHORIZED_MESSAGE] * 3
        make_pipeline.assert_not_called()
        store.close()


def test_list_empty_and_populated():
    """/list shows the newest entries with durations."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)

        dispatcher.handle(_message("/list"))
        assert messenger.last_text == "Feed is empty."

        _add_entries(store, 2)
        dispatcher.handle(_message("/list"))
        assert messenger.last_text == "Recent entries (2):\n\n1. E2 (2:00)\n2. E1 (1:00)\n"
        store.close()


def test_command_with_bot_suffix():
    """/list@botname is the same as /list."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)

        dispatcher.handle(_message("/list@audiofeed_bot"))

        assert messenger.last_text == "Feed is empty."
        store.close()


def test_unknown_command():
    """Unknown commands get a pointer to /help."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)

        dispatcher.handle(_message("/frobnicate"))

        assert "/help" in messenger.last_text
        store.close()


def test_history_lists_links_without_preview():
    """/history includes links and disables previews."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)

        dispatcher.handle(_message("/history"))
        assert messenger.last_text == "Nothing added yet."

        _add_entries(store, 2)
        dispatcher.handle(_message("/history"))
        _, text, preview = messenger.sent[-1]
        assert text.startswith("📜 History (2):")
        assert "1. E2\nhttps://example.com/2" in text
        assert preview is False
        store.close()


def test_delete_most_recent_by_default():
    """/del removes entry 1 and lists what remains."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)
        _add_entries(store, 2)

        dispatcher.handle(_message("/del"))

        assert messenger.last_text == "🗑 Deleted: E2\n\nRemaining (1):\n1. E1 (1:00)\n"
        assert [e.title for e in store.load("feed", 10)] == ["E1"]
        store.close()


def test_delete_last_entry_empties_feed():
    """Deleting the only entry reports an empty feed."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)
        _add_entries(store, 1)

        dispatcher.handle(_message("/del 1"))

        assert messenger.last_text == "🗑 Deleted: E1\n\nFeed is now empty."
        store.close()


def test_delete_rejects_bad_index():
    """Non-numeric, zero and out-of-range indexes are refused."""
    from audiofeed.dispatcher import DELETE_USAGE

    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)
        _add_entries(store, 2)

        dispatcher.handle(_message("/del abc"))
        assert messenger.last_text == DELETE_USAGE
        dispatcher.handle(_message("/del 0"))
        assert messenger.last_text == DELETE_USAGE
        dispatcher.handle(_message("/del 5"))
        assert messenger.last_text == "Only 2 entries in feed."
        assert len(store.load("feed", 10)) == 2
        store.close()


def test_voiceover_usage_and_invalid_url():
    """/vo needs a YouTube URL."""
    from audiofeed.dispatcher import VOICEOVER_USAGE

    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)

        assert dispatcher.handle(_message("/vo")) is None
        assert messenger.last_text == VOICEOVER_USAGE
        assert dispatcher.handle(_message("/vo https://example.com/page")) is None
        assert messenger.last_text == "❌ Invalid YouTube URL"
        store.close()


def test_plain_text_without_url_gets_hint():
    """Text with no usable URL is answered with a hint."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir, tts_enabled=False)

        assert dispatcher.handle(_message("https://example.com/article")) is None

        assert messenger.last_text.startswith("No valid URL found.")
        assert "Article" not in messenger.last_text
        store.close()


def test_video_submission_runs_in_background():
    """A YouTube link is acknowledged, processed on a thread and the result edited in."""
    from audiofeed.models import ResourceKind
    from audiofeed.pipeline import PipelineResult, PipelineStatus

    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)
        pipeline = MagicMock()
        pipeline.run.return_value = PipelineResult(PipelineStatus.SUCCESS, "✅ Song (3:32)")

        with patch("audiofeed.dispatcher.make_pipeline", return_value=pipeline) as make_pipeline:
            thread = dispatcher.handle(_message("check https://youtu.be/dQw4w9WgXcQ", message_id=7))
            thread.join(timeout=5)

        assert not thread.is_alive()
        assert thread.name == "video-7"
        assert make_pipeline.call_args[0][0] is ResourceKind.VIDEO
        assert messenger.sent[0][1] == "⏳ Processing..."
        status_id = 101
        assert messenger.edits[-1] == (1, status_id, "✅ Song (3:32)")
        assert messenger.deleted_event.wait(5)
        assert messenger.deleted == [(1, 7)]
        assert dispatcher.active_pipelines() == 0
        store.close()


def test_failed_submission_still_deletes_message():
    """The inbound message is removed whatever the outcome."""
    from audiofeed.pipeline import PipelineResult, PipelineStatus

    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)
        pipeline = MagicMock()
        pipeline.run.return_value = PipelineResult(PipelineStatus.FAILURE, "❌ Error: boom")

        with patch("audiofeed.dispatcher.make_pipeline", return_value=pipeline):
            thread = dispatcher.handle(_message("/vo https://youtu.be/dQw4w9WgXcQ", message_id=9))
            thread.join(timeout=5)

        assert thread.name == "voiceover-9"
        assert messenger.sent[0][1] == "⏳ Preparing voiceover..."
        assert messenger.edits[-1][2] == "❌ Error: boom"
        assert messenger.deleted_event.wait(5)
        store.close()


def test_serve_stops_after_shutdown():
    """serve ignores messages once the cancel signal is set."""
    with tempfile.TemporaryDirectory() as tmpdir:
        dispatcher, messenger, store = _dispatcher(tmpdir)

        def messages():
            yield _message("/list")
            dispatcher.shutdown(timeout=1)
            yield _message("/list")

        dispatcher.serve(messages())

        assert len(messenger.sent) == 1
        store.close()
