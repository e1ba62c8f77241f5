from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from adapters.sqlite_storage import SQLiteStorage
from core.errors import StorageError
from core.models import Carrier, SenderProfile, Shipment, ShipmentStatus, TrackingEvent

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sqlite_storage(tmp_path) -> SQLiteStorage:
    store = SQLiteStorage(str(tmp_path / "packtrack.db"))
    store.init_db()
    return store


def _shipment(number: str, offset: int = 0, **kwargs) -> Shipment:
    return Shipment(
        tracking_number=number,
        carrier=kwargs.pop("carrier", Carrier.TEMU),
        created_at=BASE + timedelta(minutes=offset),
        updated_at=BASE + timedelta(minutes=offset),
        **kwargs,
    )


def test_upsert_round_trips_events(sqlite_storage) -> None:
    events = (
        TrackingEvent(
            timestamp=datetime(2024, 4, 30, 9, tzinfo=timezone.utc),
            description="Ankunft im Paketzentrum",
            location="Leipzig",
            status_code="2024-04-30T09:00:00+00:00",
        ),
        TrackingEvent(timestamp=None, description="Label created"),
    )
    stored = sqlite_storage.upsert(
        _shipment("YT1234567890", status=ShipmentStatus.IN_TRANSIT, events=events, chat_id="42", description="Lamp")
    )

    assert stored == sqlite_storage.find_by_tracking_number("YT1234567890")
    assert stored.events == events
    assert stored.carrier is Carrier.TEMU
    assert stored.status is ShipmentStatus.IN_TRANSIT
    assert stored.chat_id == "42"
    assert stored.description == "Lamp"
    assert stored.created_at == BASE


def test_upsert_keeps_created_at(sqlite_storage) -> None:
    original = sqlite_storage.upsert(_shipment("YT1234567890"))
    later = BASE + timedelta(hours=3)

    updated = sqlite_storage.upsert(
        replace(original, status=ShipmentStatus.DELIVERED, created_at=later, updated_at=later)
    )

    assert updated.created_at == BASE
    assert updated.updated_at == later
    assert updated.status is ShipmentStatus.DELIVERED


def test_create_never_overwrites(sqlite_storage) -> None:
    assert sqlite_storage.create(_shipment("YT1234567890", chat_id="1"))
    assert not sqlite_storage.create(_shipment("YT1234567890", 5, chat_id="2", status=ShipmentStatus.DELIVERED))

    stored = sqlite_storage.find_by_tracking_number("YT1234567890")
    assert stored.chat_id == "1"
    assert stored.status is ShipmentStatus.PENDING
    assert stored.created_at == BASE

def test_find_missing_returns_none(sqlite_storage) -> None:
    assert sqlite_storage.find_by_tracking_number("YT0000000000") is None


def test_active_for_polling_excludes_terminal_and_disabled(sqlite_storage) -> None:
    sqlite_storage.upsert(_shipment("YT1111111111", 0, status=ShipmentStatus.PENDING))
    sqlite_storage.upsert(_shipment("YT2222222222", 1, status=ShipmentStatus.DELIVERED))
    sqlite_storage.upsert(_shipment("YT3333333333", 2, status=ShipmentStatus.EXPIRED))
    sqlite_storage.upsert(_shipment("YT4444444444", 3, status=ShipmentStatus.EXCEPTION))
    sqlite_storage.upsert(_shipment("YT5555555555", 4, notifications_enabled=False))

    active = sqlite_storage.find_active_for_polling()

    assert [shipment.tracking_number for shipment in active] == ["YT1111111111", "YT4444444444"]


def test_shipment_reenters_polling_when_status_changes_back(sqlite_storage) -> None:
    delivered = sqlite_storage.upsert(_shipment("YT1234567890", status=ShipmentStatus.DELIVERED))
    assert sqlite_storage.find_active_for_polling() == []

    sqlite_storage.upsert(replace(delivered, status=ShipmentStatus.IN_TRANSIT))

    assert [shipment.tracking_number for shipment in sqlite_storage.find_active_for_polling()] == ["YT1234567890"]


def test_find_by_owner_newest_first(sqlite_storage) -> None:
    sqlite_storage.upsert(_shipment("YT1111111111", 0, chat_id="42"))
    sqlite_storage.upsert(_shipment("YT2222222222", 5, chat_id="42"))
    sqlite_storage.upsert(_shipment("YT3333333333", 9, chat_id="7"))

    owned = sqlite_storage.find_by_owner("42")

    assert [shipment.tracking_number for shipment in owned] == ["YT2222222222", "YT1111111111"]


def test_delete(sqlite_storage) -> None:
    sqlite_storage.upsert(_shipment("YT1234567890", chat_id="42"))
    sqlite_storage.add_tracked_number("42", "YT1234567890")

    assert sqlite_storage.delete("YT1234567890")
    assert not sqlite_storage.delete("YT1234567890")
    assert sqlite_storage.find_by_tracking_number("YT1234567890") is None
    assert sqlite_storage.get_user("42").tracked_numbers == ()


def test_user_upsert_is_idempotent_and_refreshes_profile(sqlite_storage) -> None:
    first = sqlite_storage.upsert_by_chat_id("42", SenderProfile(user_id=7, username="old_name"))
    second = sqlite_storage.upsert_by_chat_id(
        "42", SenderProfile(user_id=7, username="new_name", first_name="Sam")
    )

    assert first.created_at == second.created_at
    assert second.username == "new_name"
    assert second.first_name == "Sam"
    assert second.notifications_enabled


def test_tracked_numbers_are_kept_across_profile_updates(sqlite_storage) -> None:
    sqlite_storage.add_tracked_number("42", "YT1111111111")
    sqlite_storage.add_tracked_number("42", "YT1111111111")
    sqlite_storage.add_tracked_number("42", "LB123456789CN")

    user = sqlite_storage.upsert_by_chat_id("42", SenderProfile(user_id=7))

    assert set(user.tracked_numbers) == {"YT1111111111", "LB123456789CN"}
    assert len(user.tracked_numbers) == 2


def test_sqlite_errors_become_storage_errors(tmp_path) -> None:
    store = SQLiteStorage(str(tmp_path / "missing" / "packtrack.db"))

    with pytest.raises(StorageError):
        store.init_db()


def test_queries_before_init_raise_storage_error(tmp_path) -> None:
    store = SQLiteStorage(str(tmp_path / "packtrack.db"))

    with pytest.raises(StorageError):
        store.find_active_for_polling()
