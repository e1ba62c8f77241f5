"""Telegram Bot API messaging adapter.

Used by the webhook deployment, where the bot has no MTProto session. The
blocking urllib call runs in a worker thread so the event loop keeps serving
other chats while Telegram answers.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request

LOGGER = logging.getLogger(__name__)

API_BASE_URL = "https://api.telegram.org"


class TelegramBotMessenger:
    """Messenger adapter that sends messages via the Telegram Bot API."""

    def __init__(self, bot_token: str, timeout_seconds: float = 10.0) -> None:
        self._bot_token = bot_token
        self._timeout_seconds = timeout_seconds

    def _call(self, method: str, payload: dict) -> None:
        request = urllib.request.Request(
            f"{API_BASE_URL}/bot{self._bot_token}/{method}",
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
        )
        request.add_header("Content-Type", "application/json")
        with urllib.request.urlopen(request, timeout=self._timeout_seconds):
            pass

    async def send(self, chat_id: str, text: str, parse_mode: str = "HTML") -> None:
        """Send a message; delivery failures are logged and never raised."""

        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }
        try:
            await asyncio.to_thread(self._call, "sendMessage", payload)
        except urllib.error.HTTPError as e:
            # Telegram explains rejections (blocked bot, bad HTML) in the body.
            detail = e.read().decode("utf-8", errors="replace")
            LOGGER.warning("Bot API rejected message to %s (%s): %s", chat_id, e.code, detail)
        except (urllib.error.URLError, OSError) as e:
            LOGGER.warning("Bot API request to %s failed: %s", chat_id, e)
