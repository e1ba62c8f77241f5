"""Telethon client factory for the packtrack bot session.

The bot logs in with its BOT_TOKEN, but Telethon still speaks MTProto and so
needs application credentials (API_ID/API_HASH) plus a local .session file.
Only `packtrack run` needs this; the webhook deployment talks to the Bot API.
"""

from __future__ import annotations

import logging

from telethon import TelegramClient

import settings


def build_client() -> TelegramClient:
    """Create an unstarted Telethon client for the bot session."""

    if not settings.API_ID or not settings.API_HASH:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    try:
        api_id = int(settings.API_ID)
    except ValueError as exc:
        raise RuntimeError("API_ID must be an integer") from exc

    logging.getLogger(__name__).info("Initializing Telegram bot session %r", settings.SESSION_NAME)
    return TelegramClient(settings.SESSION_NAME, api_id, settings.API_HASH)
