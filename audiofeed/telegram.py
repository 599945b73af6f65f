"""Telegram Bot API transport over requests."""
import logging
import threading
from typing import Any, Iterator

import requests

from .dispatcher import IncomingMessage

DEFAULT_API_URL = "https://api.telegram.org"

# Pause after a failed getUpdates before polling again
RETRY_DELAY = 5


class TelegramError(Exception):
    """Bot API returned ok=false or an HTTP error."""


class TelegramMessenger:
    """Send, edit and delete messages; receive them by long polling."""

    def __init__(
        self,
        token: str,
        api_url: str = DEFAULT_API_URL,
        poll_timeout: int = 30,
        request_timeout: float = 10,
        session: requests.Session | None = None,
    ):
        self.base_url = f"{api_url.rstrip('/')}/bot{token}"
        self.poll_timeout = poll_timeout
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.offset = 0
        self.logger = logging.getLogger(__name__)

    def _call(self, method: str, payload: dict[str, Any], timeout: float | None = None) -> Any:
        response = self.session.post(
            f"{self.base_url}/{method}",
            json=payload,
            timeout=timeout or self.request_timeout,
        )
        try:
            data = response.json()
        except ValueError:
            raise TelegramError(f"{method}: HTTP {response.status_code}, non-JSON response")
        if not data.get("ok"):
            raise TelegramError(f"{method}: {data.get('description', f'HTTP {response.status_code}')}")
        return data.get("result")

    def _safe_call(self, method: str, payload: dict[str, Any]) -> Any:
        try:
            return self._call(method, payload)
        except (requests.RequestException, TelegramError) as e:
            self.logger.warning(f"Telegram {method} failed: {e}")
            return None

    def send(self, chat_id: int, text: str, preview: bool = True) -> int | None:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if not preview:
            payload["disable_web_page_preview"] = True
        result = self._safe_call("sendMessage", payload)
        return result.get("message_id") if result else None

    def edit(self, chat_id: int, message_id: int, text: str) -> None:
        self._safe_call("editMessageText", {"chat_id": chat_id, "message_id": message_id, "text": text})

    def delete(self, chat_id: int, message_id: int) -> None:
        self._safe_call("deleteMessage", {"chat_id": chat_id, "message_id": message_id})

    def get_updates(self) -> list[dict]:
        """One long-poll request. Advances the offset past returned updates."""
        updates = self._call(
            "getUpdates",
            {"offset": self.offset, "timeout": self.poll_timeout, "allowed_updates": ["message"]},
            timeout=self.poll_timeout + self.request_timeout,
        )
        for update in updates or []:
            self.offset = max(self.offset, update["update_id"] + 1)
        return updates or []

    def poll(self, stop_event: threading.Event) -> Iterator[IncomingMessage]:
        """Yield text messages until ``stop_event`` is set."""
        self.logger.info("Polling Telegram for updates")
        while not stop_event.is_set():
            try:
                updates = self.get_updates()
            except (requests.RequestException, TelegramError) as e:
                self.logger.warning(f"getUpdates failed: {e}")
                stop_event.wait(RETRY_DELAY)
                continue

            for update in updates:
                message = parse_update(update)
                if message is not None:
                    yield message


def parse_update(update: dict) -> IncomingMessage | None:
    """Turn a Bot API update into an IncomingMessage; non-text updates give None."""
    message = update.get("message")
    if not message or "text" not in message:
        return None
    sender = message.get("from") or {}
    return IncomingMessage(
        sender_id=sender.get("id", 0),
        chat_id=message["chat"]["id"],
        message_id=message["message_id"],
        text=message["text"],
    )
