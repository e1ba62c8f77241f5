from __future__ import annotations

from dataclasses import replace
from typing import Optional

import pytest

from core.config import DialogConfig
from core.dialog import DialogStateCache
from core.errors import GatewayError, StorageError, TrackingNotFoundError
from core.models import ChatUser, SenderProfile, Shipment, TrackingSnapshot


class FakeStorage:
    """In-memory shipment and user store."""

    def __init__(self) -> None:
        self.shipments: dict[str, Shipment] = {}
        self.users: dict[str, ChatUser] = {}
        self.upserts: list[Shipment] = []
        self.user_upserts: list[str] = []
        self.fail_upsert_for: set[str] = set()
        self.fail_index_for: set[str] = set()

    def find_active_for_polling(self) -> list[Shipment]:
        return [shipment for shipment in self.shipments.values() if shipment.is_pollable]

    def find_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        return self.shipments.get(tracking_number)

    def find_by_owner(self, chat_id: str) -> list[Shipment]:
        return [shipment for shipment in self.shipments.values() if shipment.chat_id == chat_id]

    def create(self, shipment: Shipment) -> bool:
        if shipment.tracking_number in self.shipments:
            return False
        self.upsert(shipment)
        return True

    def upsert(self, shipment: Shipment) -> Shipment:
        if shipment.tracking_number in self.fail_upsert_for:
            raise StorageError("disk I/O error")
        self.upserts.append(shipment)
        self.shipments[shipment.tracking_number] = shipment
        return shipment

    def delete(self, tracking_number: str) -> bool:
        return self.shipments.pop(tracking_number, None) is not None

    def upsert_by_chat_id(self, chat_id: str, profile: SenderProfile) -> ChatUser:
        self.user_upserts.append(chat_id)
        existing = self.users.get(chat_id)
        numbers = existing.tracked_numbers if existing else ()
        user = ChatUser(
            chat_id=chat_id,
            user_id=profile.user_id,
            username=profile.username,
            first_name=profile.first_name,
            last_name=profile.last_name,
            tracked_numbers=numbers,
        )
        self.users[chat_id] = user
        return user

    def add_tracked_number(self, chat_id: str, tracking_number: str) -> None:
        if tracking_number in self.fail_index_for:
            raise StorageError("database is locked")
        user = self.users.get(chat_id) or ChatUser(chat_id=chat_id)
        if tracking_number not in user.tracked_numbers:
            user = replace(user, tracked_numbers=user.tracked_numbers + (tracking_number,))
        self.users[chat_id] = user


class FakeGateway:
    """Gateway returning canned snapshots; unknown numbers are not found."""

    def __init__(self) -> None:
        self.snapshots: dict[str, TrackingSnapshot] = {}
        self.failures: dict[str, GatewayError] = {}
        self.fetched: list[str] = []
        self.registered: list[tuple[str, Optional[str]]] = []
        self.register_result = True

    def register(self, tracking_number: str, carrier: Optional[str] = None) -> bool:
        self.registered.append((tracking_number, carrier))
        return self.register_result

    def fetch_info(self, tracking_number: str) -> TrackingSnapshot:
        self.fetched.append(tracking_number)
        if tracking_number in self.failures:
            raise self.failures[tracking_number]
        if tracking_number not in self.snapshots:
            raise TrackingNotFoundError(f"No tracking data found for {tracking_number}")
        return self.snapshots[tracking_number]


class FakeMessenger:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, chat_id: str, text: str, parse_mode: str = "HTML") -> None:
        self.sent.append((chat_id, text, parse_mode))

    def texts_for(self, chat_id: str) -> list[str]:
        return [text for sent_chat, text, _ in self.sent if sent_chat == chat_id]


class RecordingPacer:
    def __init__(self) -> None:
        self.waits = 0

    async def wait(self) -> None:
        self.waits += 1


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture
def pacer() -> RecordingPacer:
    return RecordingPacer()


@pytest.fixture
def dialogs() -> DialogStateCache:
    return DialogStateCache(DialogConfig(ttl_minutes=30, max_entries=100))
