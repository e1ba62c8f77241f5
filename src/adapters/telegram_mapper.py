"""Telegram-to-core message mapping adapter.

This keeps Telethon and Bot API payload details out of the core intake.
Both entry points produce the same InboundMessage; a missing sender or text
is carried through so the intake can acknowledge it as a no-op.
"""

from __future__ import annotations

from typing import Any, Optional

from core.models import InboundMessage, SenderProfile


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def sender_from_entity(entity: Any) -> Optional[SenderProfile]:
    """Build a SenderProfile from a Telethon User (or any look-alike)."""

    if entity is None:
        return None
    user_id = getattr(entity, "id", None)
    return SenderProfile(
        user_id=int(user_id) if user_id is not None else None,
        username=_optional_str(getattr(entity, "username", None)),
        first_name=_optional_str(getattr(entity, "first_name", None)),
        last_name=_optional_str(getattr(entity, "last_name", None)),
    )


async def build_inbound(event: Any) -> InboundMessage:
    """Build a core InboundMessage from a Telethon NewMessage event."""

    sender = await event.get_sender()
    message = event.message
    return InboundMessage(
        chat_id=str(event.chat_id),
        text=getattr(message, "raw_text", None),
        sender=sender_from_entity(sender),
    )


def sender_from_update(raw: Any) -> Optional[SenderProfile]:
    """Build a SenderProfile from a Bot API ``from`` object."""

    if not isinstance(raw, dict):
        return None
    user_id = raw.get("id")
    return SenderProfile(
        user_id=int(user_id) if isinstance(user_id, int) else None,
        username=_optional_str(raw.get("username")),
        first_name=_optional_str(raw.get("first_name")),
        last_name=_optional_str(raw.get("last_name")),
    )


def inbound_from_update(update: Any) -> Optional[InboundMessage]:
    """Map a Bot API webhook update to an InboundMessage.

    Returns None for updates that carry no message or chat at all (edited
    messages, callback queries, channel posts).
    """

    if not isinstance(update, dict):
        return None
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    chat = message.get("chat")
    if not isinstance(chat, dict) or chat.get("id") is None:
        return None
    text = message.get("text")
    return InboundMessage(
        chat_id=str(chat["id"]),
        text=text if isinstance(text, str) else None,
        sender=sender_from_update(message.get("from")),
    )
