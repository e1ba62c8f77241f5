"""Telethon messaging adapter.

Sends replies and notifications through the bot's own Telethon session, used
when the bot runs as a long-lived client instead of behind a webhook.
"""

from __future__ import annotations

import logging

from telethon import errors

LOGGER = logging.getLogger(__name__)


class TelethonMessenger:
    """Messenger adapter that sends messages with a connected Telethon client."""

    def __init__(self, client) -> None:
        self._client = client

    async def send(self, chat_id: str, text: str, parse_mode: str = "HTML") -> None:
        """Send a message; delivery failures are logged and never raised."""

        try:
            await self._client.send_message(int(chat_id), text, parse_mode=parse_mode.lower(), link_preview=False)
        except (errors.RPCError, ConnectionError, ValueError) as e:
            LOGGER.warning("Failed to send message to %s: %s", chat_id, e)
