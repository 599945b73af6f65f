"""Tests for the Telegram transport."""
import threading
from unittest.mock import MagicMock

import requests


def _session(*payloads):
    session = MagicMock()
    session.post.side_effect = [MagicMock(status_code=200, json=MagicMock(return_value=p)) for p in payloads]
    return session


def test_parse_update_text_message():
    """Text messages become IncomingMessage."""
    from audiofeed.telegram import parse_update

    update = {
        "update_id": 10,
        "message": {"message_id": 5, "from": {"id": 42}, "chat": {"id": 1}, "text": "/list"},
    }
    message = parse_update(update)

    assert message.sender_id == 42
    assert message.chat_id == 1
    assert message.message_id == 5
    assert message.text == "/list"


def test_parse_update_ignores_non_text():
    """Stickers, edits and other updates are skipped."""
    from audiofeed.telegram import parse_update

    assert parse_update({"update_id": 1, "message": {"message_id": 1, "chat": {"id": 1}, "sticker": {}}}) is None
    assert parse_update({"update_id": 2, "edited_message": {}}) is None


def test_send_returns_message_id():
    """send posts sendMessage and returns the new message id."""
    from audiofeed.telegram import TelegramMessenger

    session = _session({"ok": True, "result": {"message_id": 77}})
    messenger = TelegramMessenger("TOKEN", session=session)

    assert messenger.send(1, "hi", preview=False) == 77
    url = session.post.call_args[0][0]
    payload = session.post.call_args[1]["json"]
    assert url == "https://api.telegram.org/botTOKEN/sendMessage"
    assert payload == {"chat_id": 1, "text": "hi", "disable_web_page_preview": True}


def test_send_failure_is_logged_not_raised():
    """API errors on send give None instead of an exception."""
    from audiofeed.telegram import TelegramMessenger

    session = _session({"ok": False, "description": "Bad Request: chat not found"})
    assert TelegramMessenger("TOKEN", session=session).send(1, "hi") is None

    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("down")
    assert TelegramMessenger("TOKEN", session=session).send(1, "hi") is None


def test_poll_advances_offset_and_yields_messages():
    """poll yields parsed messages and acknowledges updates by offset."""
    from audiofeed.telegram import TelegramMessenger

    updates = [
        {"update_id": 10, "message": {"message_id": 1, "from": {"id": 42}, "chat": {"id": 1}, "text": "a"}},
        {"update_id": 11, "message": {"message_id": 2, "from": {"id": 42}, "chat": {"id": 1}, "text": "b"}},
    ]
    session = _session({"ok": True, "result": updates})
    messenger = TelegramMessenger("TOKEN", session=session)
    stop = threading.Event()

    received = []
    for message in messenger.poll(stop):
        received.append(message.text)
        if len(received) == 2:
            stop.set()

    assert received == ["a", "b"]
    assert messenger.offset == 12
    assert session.post.call_args[1]["json"]["offset"] == 0
