"""Command dispatch for the single authorized user.

Commands are handled on the caller's thread. Every accepted submission gets
its own pipeline thread so the receive loop never waits on downloads.
"""
import logging
import sqlite3
import threading
from dataclasses import dataclass
from typing import Iterable, Protocol

from .database import format_duration
from .models import Entry, ResourceKind
from .pipeline import Adapters, Pipeline, PipelineContext, make_pipeline, remove_entry
from .resources import classify_resource, extract_video_id

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = "Unauthorized. This bot is private."
VOICEOVER_USAGE = "Usage: /vo <youtube_url>\nExample: /vo https://youtube.com/watch?v=xxx"
DELETE_USAGE = "Usage: /del [number]\nExample: /del 1 (delete most recent)"

# /history fallback when retention is disabled
HISTORY_LIMIT = 100


@dataclass
class IncomingMessage:
    sender_id: int
    chat_id: int
    message_id: int
    text: str


class Messenger(Protocol):
    """Outbound side of the chat transport. Implementations log their own errors."""

    def send(self, chat_id: int, text: str, preview: bool = True) -> int | None:
        ...

    def edit(self, chat_id: int, message_id: int, text: str) -> None:
        ...

    def delete(self, chat_id: int, message_id: int) -> None:
        ...


class Dispatcher:
    def __init__(
        self,
        messenger: Messenger,
        context: PipelineContext,
        adapters: Adapters,
        allowed_user_id: int,
        tts_enabled: bool = True,
        delete_delay: float = 5.0,
        list_limit: int = 10,
        feed_url: str = "",
    ):
        self.messenger = messenger
        self.context = context
        self.adapters = adapters
        self.allowed_user_id = allowed_user_id
        self.tts_enabled = tts_enabled
        self.delete_delay = delete_delay
        self.list_limit = list_limit
        self.feed_url = feed_url
        self.cancel_event = adapters.runner.cancel_event
        self._lock = threading.Lock()
        self._threads: set[threading.Thread] = set()
        self._timers: set[threading.Timer] = set()
        self._commands = {
            "/start": self.cmd_help,
            "/help": self.cmd_help,
            "/list": self.cmd_list,
            "/history": self.cmd_history,
            "/del": self.cmd_delete,
            "/vo": self.cmd_voiceover,
        }

    def is_authorized(self, sender_id: int) -> bool:
        return sender_id == self.allowed_user_id

    def serve(self, messages: Iterable[IncomingMessage]) -> None:
        """Handle messages until the source is exhausted or shutdown begins."""
        for message in messages:
            if self.cancel_event.is_set():
                break
            try:
                self.handle(message)
            except Exception:
                logger.exception(f"Failed to handle message {message.message_id}")

    def handle(self, message: IncomingMessage) -> threading.Thread | None:
        """Route one inbound message.

        Returns:
            The pipeline thread when a submission was accepted, else None
        """
        if not self.is_authorized(message.sender_id):
            logger.warning(f"Unauthorized user {message.sender_id} tried to send a message")
            self.messenger.send(message.chat_id, UNAUTHORIZED_MESSAGE)
            return None

        text = message.text.strip()
        if text.startswith("/"):
            command, _, argument = text.partition(" ")
            # Group chats address commands as /cmd@botname
            command = command.split("@", 1)[0].lower()
            handler = self._commands.get(command)
            if handler is None:
                self.messenger.send(message.chat_id, "Unknown command. Send /help for the list of commands.")
                return None
            return handler(message, argument.strip())

        kind = classify_resource(text)
        if kind is ResourceKind.VIDEO:
            return self.submit(message, ResourceKind.VIDEO, text, "⏳ Processing...")
        if kind is ResourceKind.ARTICLE and self.tts_enabled:
            return self.submit(message, ResourceKind.ARTICLE, text, "⏳ Narrating article...")

        hint = "No valid URL found. Send a link:\n• YouTube: https://youtube.com/watch?v=VIDEO_ID"
        if self.tts_enabled:
            hint += "\n• Article: any web page URL"
        self.messenger.send(message.chat_id, hint)
        return None

    # === Submissions ===

    def submit(self, message: IncomingMessage, kind: ResourceKind, source: str, ack: str) -> threading.Thread:
        """Acknowledge and start the pipeline on its own thread."""
        status_id = self.messenger.send(message.chat_id, ack)

        def reporter(text: str) -> None:
            if status_id is not None:
                self.messenger.edit(message.chat_id, status_id, text)

        pipeline = make_pipeline(kind, self.context, self.adapters, source, reporter)
        thread = threading.Thread(
            target=self._run_pipeline,
            args=(pipeline, message, reporter),
            name=f"{kind.value}-{message.message_id}",
            daemon=True,
        )
        with self._lock:
            self._threads.add(thread)
        thread.start()
        logger.info(f"Started {kind.value} pipeline for message {message.message_id}")
        return thread

    def _run_pipeline(self, pipeline: Pipeline, message: IncomingMessage, reporter) -> None:
        try:
            result = pipeline.run()
            reporter(result.message)
            self.delete_later(message)
        finally:
            with self._lock:
                self._threads.discard(threading.current_thread())

    def delete_later(self, message: IncomingMessage) -> None:
        """Delete the user's submission after ``delete_delay``; the status message stays."""

        def delete():
            with self._lock:
                self._timers.discard(timer)
            self.messenger.delete(message.chat_id, message.message_id)

        timer = threading.Timer(self.delete_delay, delete)
        timer.daemon = True
        with self._lock:
            self._timers.add(timer)
        timer.start()

    def active_pipelines(self) -> int:
        with self._lock:
            return len(self._threads)

    def shutdown(self, timeout: float = 30) -> None:
        """Cancel in-flight pipelines and wait for their threads."""
        logger.info("Shutting down dispatcher")
        self.cancel_event.set()
        with self._lock:
            timers = list(self._timers)
            threads = list(self._threads)
        for timer in timers:
            timer.cancel()
        for thread in threads:
            thread.join(timeout)
            if thread.is_alive():
                logger.warning(f"Pipeline thread {thread.name} did not stop in {timeout}s")

    # === Commands ===

    def cmd_help(self, message: IncomingMessage, _argument: str) -> None:
        lines = [
            "🎧 Audio Feed Bot",
            "",
            "Send a URL to add audio to your feed:",
            "• YouTube video → downloads audio",
            "• Article/webpage → TTS narration" + ("" if self.tts_enabled else " (disabled)"),
            "",
            "Commands:",
            "/vo <url> - translated voiceover of a YouTube video",
            "/list - recent entries in feed",
            "/history - all entries with links",
            "/del - delete most recent",
            "/del N - delete entry N",
            "/help - this help",
        ]
        if self.feed_url:
            lines += ["", f"RSS: {self.feed_url}"]
        self.messenger.send(message.chat_id, "\n".join(lines))

    def cmd_list(self, message: IncomingMessage, _argument: str) -> None:
        try:
            entries = self.context.store.load(self.context.feed_name, self.list_limit)
        except sqlite3.Error as e:
            logger.error(f"Failed to load entries: {e}")
            self.messenger.send(message.chat_id, f"Error loading entries: {e}")
            return

        if not entries:
            self.messenger.send(message.chat_id, "Feed is empty.")
            return
        self.messenger.send(message.chat_id, f"Recent entries ({len(entries)}):\n\n{format_entries(entries)}")

    def cmd_history(self, message: IncomingMessage, _argument: str) -> None:
        try:
            entries = self.context.store.load(self.context.feed_name, self._history_limit())
        except sqlite3.Error as e:
            logger.error(f"Failed to load entries: {e}")
            self.messenger.send(message.chat_id, f"Error: {e}")
            return

        if not entries:
            self.messenger.send(message.chat_id, "Nothing added yet.")
            return

        body = "".join(f"{i}. {entry.title}\n{entry.link}\n\n" for i, entry in enumerate(entries, 1))
        self.messenger.send(message.chat_id, f"📜 History ({len(entries)}):\n\n{body}", preview=False)

    def cmd_delete(self, message: IncomingMessage, argument: str) -> None:
        index = 1
        if argument:
            try:
                index = int(argument.split()[0])
            except ValueError:
                index = 0
            if index < 1:
                self.messenger.send(message.chat_id, DELETE_USAGE)
                return

        store = self.context.store
        try:
            entries = store.load(self.context.feed_name, self._history_limit())
            if not entries:
                self.messenger.send(message.chat_id, "Feed is empty.")
                return
            if index > len(entries):
                self.messenger.send(message.chat_id, f"Only {len(entries)} entries in feed.")
                return

            entry = entries[index - 1]
            remove_entry(store, entry)
            remaining = store.load(self.context.feed_name, self.list_limit)
        except sqlite3.Error as e:
            logger.error(f"Failed to delete entry: {e}")
            self.messenger.send(message.chat_id, f"Error removing: {e}")
            return

        reply = f"🗑 Deleted: {entry.title}\n\n"
        if remaining:
            reply += f"Remaining ({len(remaining)}):\n{format_entries(remaining)}"
        else:
            reply += "Feed is now empty."
        self.messenger.send(message.chat_id, reply)

    def cmd_voiceover(self, message: IncomingMessage, argument: str) -> threading.Thread | None:
        if not argument:
            self.messenger.send(message.chat_id, VOICEOVER_USAGE)
            return None
        if not extract_video_id(argument):
            self.messenger.send(message.chat_id, "❌ Invalid YouTube URL")
            return None
        return self.submit(message, ResourceKind.VOICEOVER, argument, "⏳ Preparing voiceover...")

    def _history_limit(self) -> int:
        return self.context.max_items if self.context.max_items > 0 else HISTORY_LIMIT


def format_entries(entries: list[Entry]) -> str:
    return "".join(
        f"{i}. {entry.title} ({format_duration(entry.duration_seconds)})\n" for i, entry in enumerate(entries, 1)
    )
