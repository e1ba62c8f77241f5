"""Conversational intake dialog.

Each inbound chat message is handled in a fixed order:
1) Ignore envelopes without text or sender (acknowledged no-op)
2) Upsert the chat user from sender metadata
3) Dispatch exact commands (/start, /help, /list, /stop)
4) Treat anything else as a batch of tracking numbers when the chat is
   awaiting input or the first token passes format validation
5) Otherwise answer with the unknown-command prompt

Once a message is classified, the user always gets a reply.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from core import messages
from core.dialog import DialogStateCache
from core.errors import GatewayError, StorageError
from core.models import InboundMessage, Shipment, latest_first
from core.ports import MessengerPort, ShipmentStorePort, TrackingGatewayPort, UserStorePort
from core.validator import (
    is_valid_format,
    looks_like_tracking_input,
    normalize_tracking_number,
    split_tracking_input,
)

LOGGER = logging.getLogger(__name__)

START = "/start"
HELP = "/help"
LIST = "/list"
STOP = "/stop"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationalIntake:
    """Per-chat dialog that turns free text into tracked shipments."""

    def __init__(
        self,
        shipments: ShipmentStorePort,
        users: UserStorePort,
        gateway: TrackingGatewayPort,
        messenger: MessengerPort,
        dialogs: DialogStateCache,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._shipments = shipments
        self._users = users
        self._gateway = gateway
        self._messenger = messenger
        self._dialogs = dialogs
        self._clock = clock or _utcnow

    async def handle(self, message: InboundMessage) -> None:
        """Process one inbound chat message."""

        text = (message.text or "").strip()
        if not text or message.sender is None:
            return

        chat_id = message.chat_id
        sender = message.sender
        LOGGER.info(
            "Received message from %s (%s)",
            chat_id,
            sender.username or sender.first_name or "unknown",
        )
        self._upsert_user(message)

        if text == START:
            await self._reply(chat_id, messages.welcome_text())
            self._dialogs.await_input(chat_id)
        elif text == HELP:
            await self._reply(chat_id, messages.help_text())
        elif text == LIST:
            await self._handle_list(chat_id)
        elif text == STOP or text.startswith(STOP + " "):
            await self._handle_stop(chat_id, text)
        elif self._dialogs.is_awaiting(chat_id) or looks_like_tracking_input(text):
            await self._handle_tracking_input(chat_id, text)
        else:
            LOGGER.debug("Unknown command from %s", chat_id)
            await self._reply(chat_id, messages.unknown_command_text())

    def _upsert_user(self, message: InboundMessage) -> None:
        try:
            self._users.upsert_by_chat_id(message.chat_id, message.sender)
        except StorageError:
            # The dialog still answers; the next interaction retries the upsert.
            LOGGER.exception("Failed to upsert chat user %s", message.chat_id)

    async def _reply(self, chat_id: str, text: str) -> None:
        await self._messenger.send(chat_id, text, parse_mode=messages.PARSE_MODE)

    async def _handle_list(self, chat_id: str) -> None:
        try:
            shipments = self._shipments.find_by_owner(chat_id)
        except StorageError:
            LOGGER.exception("Failed to list shipments for %s", chat_id)
            await self._reply(chat_id, messages.error_text())
            return
        await self._reply(chat_id, messages.shipment_list_text(shipments))

    async def _handle_stop(self, chat_id: str, text: str) -> None:
        parts = text.split()
        if len(parts) < 2:
            await self._reply(chat_id, messages.stop_usage_text())
            return

        number = normalize_tracking_number(parts[1])
        try:
            shipment = self._shipments.find_by_tracking_number(number)
            if shipment is None or shipment.chat_id != chat_id:
                await self._reply(chat_id, messages.stop_not_found_text(number))
                return
            self._shipments.upsert(replace(shipment, notifications_enabled=False, updated_at=self._clock()))
        except StorageError:
            LOGGER.exception("Failed to stop notifications for %s", number)
            await self._reply(chat_id, messages.error_text())
            return
        LOGGER.info("Notifications stopped for %s by %s", number, chat_id)
        await self._reply(chat_id, messages.stop_done_text(number))

    async def _handle_tracking_input(self, chat_id: str, text: str) -> None:
        # Awaiting state is consumed by this turn whatever the outcome.
        self._dialogs.clear(chat_id)

        tracking_numbers = split_tracking_input(text)
        if not tracking_numbers:
            await self._reply(chat_id, messages.empty_batch_text())
            self._dialogs.await_input(chat_id)
            return

        entries = []
        for number in tracking_numbers:
            entries.append(await self._add_tracking_number(chat_id, number))

        await self._reply(chat_id, messages.join_entries(entries))
        await self._reply(chat_id, messages.more_packages_text())

    async def _add_tracking_number(self, chat_id: str, number: str) -> str:
        """Try to track one token and return its reply entry."""

        if not is_valid_format(number):
            return messages.invalid_format_entry(number)

        try:
            if self._shipments.find_by_tracking_number(number) is not None:
                return messages.already_tracked_entry(number)
        except StorageError:
            LOGGER.exception("Failed to look up %s", number)
            return messages.add_failed_entry(number)

        try:
            snapshot = await asyncio.to_thread(self._gateway.fetch_info, number)
        except GatewayError as exc:
            LOGGER.warning("Unable to fetch tracking info for %s: %s", number, exc)
            return messages.fetch_failed_entry(number)

        snapshot = replace(snapshot, events=latest_first(snapshot.events))
        now = self._clock()
        shipment = Shipment(
            tracking_number=number,
            carrier=snapshot.carrier,
            status=snapshot.status,
            events=snapshot.events,
            chat_id=chat_id,
            notifications_enabled=True,
            created_at=now,
            updated_at=now,
        )
        try:
            created = self._shipments.create(shipment)
        except StorageError:
            LOGGER.exception("Failed to save shipment %s", number)
            return messages.add_failed_entry(number)
        if not created:
            # Another chat stored the number while the provider was queried.
            LOGGER.info("Lost race to track %s for %s", number, chat_id)
            return messages.already_tracked_entry(number)

        try:
            self._users.add_tracked_number(chat_id, number)
        except StorageError:
            # The shipment row already carries the owner.
            LOGGER.exception("Failed to index %s for chat %s", number, chat_id)

        LOGGER.info("Tracking %s for %s (%s)", number, chat_id, snapshot.status.value)
        return messages.added_entry(snapshot)
