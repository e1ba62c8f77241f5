from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from adapters.track17_gateway import decode_snapshot
from core.errors import ProviderError
from core.models import Carrier, Shipment, ShipmentStatus, TrackingEvent, TrackingSnapshot, latest_first
from core.reconciler import ReconciliationEngine

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _event(description: str, hour: int = 8) -> TrackingEvent:
    return TrackingEvent(
        timestamp=datetime(2024, 4, 30, hour, tzinfo=timezone.utc),
        description=description,
        location="Shenzhen",
    )


def _shipment(number: str, status: ShipmentStatus = ShipmentStatus.IN_TRANSIT, events=(), **kwargs) -> Shipment:
    kwargs.setdefault("chat_id", "42")
    return Shipment(
        tracking_number=number,
        carrier=Carrier.TEMU,
        status=status,
        events=tuple(events),
        created_at=FIXED_NOW,
        updated_at=FIXED_NOW,
        **kwargs,
    )


def _snapshot(number: str, status: ShipmentStatus, events=()) -> TrackingSnapshot:
    return TrackingSnapshot(tracking_number=number, carrier=Carrier.TEMU, status=status, events=tuple(events))


def _engine(storage, gateway, messenger, pacer) -> ReconciliationEngine:
    return ReconciliationEngine(storage, gateway, messenger, pacer, clock=lambda: FIXED_NOW)


def test_unchanged_shipment_is_not_written_or_notified(storage, gateway, messenger, pacer) -> None:
    events = [_event("Departed facility")]
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", events=events)
    gateway.snapshots["YT1234567890"] = _snapshot("YT1234567890", ShipmentStatus.IN_TRANSIT, events)

    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert report.total == 1
    assert report.updated == 0
    assert storage.upserts == []
    assert messenger.sent == []
    assert report.to_dict()["results"] == [
        {
            "trackingNumber": "YT1234567890",
            "updated": False,
            "status": "in_transit",
            "reason": "No changes detected",
        }
    ]


def test_delivery_notifies_once_and_stops_polling(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", events=[_event("Departed facility")])
    gateway.snapshots["YT1234567890"] = _snapshot(
        "YT1234567890",
        ShipmentStatus.DELIVERED,
        [_event("Delivered to front door", hour=9), _event("Departed facility")],
    )
    engine = _engine(storage, gateway, messenger, pacer)

    first = asyncio.run(engine.run_pass())
    second = asyncio.run(engine.run_pass())

    assert first.updated == 1
    assert first.outcomes[0].notified
    assert second.total == 0
    assert len(messenger.sent) == 1
    chat_id, text, parse_mode = messenger.sent[0]
    assert chat_id == "42"
    assert parse_mode == "HTML"
    assert "Package Delivered!" in text
    assert "Delivered to front door" in text
    assert storage.shipments["YT1234567890"].status is ShipmentStatus.DELIVERED


def test_status_change_sends_update_with_latest_description(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", status=ShipmentStatus.PENDING)
    gateway.snapshots["YT1234567890"] = _snapshot(
        "YT1234567890", ShipmentStatus.IN_TRANSIT, [_event("Arrived at <hub>")]
    )

    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    outcome = report.outcomes[0]
    assert outcome.old_status is ShipmentStatus.PENDING
    assert outcome.new_status is ShipmentStatus.IN_TRANSIT
    assert outcome.has_new_events
    text = messenger.texts_for("42")[0]
    assert "Package Update" in text
    assert "IN_TRANSIT" in text
    assert "Arrived at &lt;hub&gt;" in text
    assert "New tracking event detected!" in text
    assert storage.shipments["YT1234567890"].updated_at == FIXED_NOW


def test_status_change_without_events_uses_fallback_description(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", status=ShipmentStatus.PENDING)
    gateway.snapshots["YT1234567890"] = _snapshot("YT1234567890", ShipmentStatus.EXCEPTION)

    asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    text = messenger.texts_for("42")[0]
    assert "Status updated" in text
    assert "New tracking event detected!" not in text


def test_new_events_alone_trigger_update(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", events=[_event("Departed facility")])
    gateway.snapshots["YT1234567890"] = _snapshot(
        "YT1234567890",
        ShipmentStatus.IN_TRANSIT,
        [_event("Departed facility"), _event("Customs cleared", hour=11)],
    )

    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert report.outcomes[0].updated
    stored = storage.shipments["YT1234567890"]
    assert [event.description for event in stored.events] == ["Customs cleared", "Departed facility"]
    assert "Customs cleared" in messenger.texts_for("42")[0]


def test_provider_failures_are_recorded_and_pass_continues(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1111111111"] = _shipment("YT1111111111")
    storage.shipments["YT2222222222"] = _shipment("YT2222222222")
    storage.shipments["YT3333333333"] = _shipment("YT3333333333", status=ShipmentStatus.PENDING)
    gateway.failures["YT1111111111"] = ProviderError("17TRACK API error 503: unavailable")
    gateway.snapshots["YT3333333333"] = _snapshot("YT3333333333", ShipmentStatus.IN_TRANSIT)

    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert report.total == 3
    assert report.errors == 2
    assert report.updated == 1
    by_number = {outcome.tracking_number: outcome for outcome in report.outcomes}
    assert by_number["YT1111111111"].error == "17TRACK API error 503: unavailable"
    assert by_number["YT2222222222"].error == "No tracking data found"
    assert storage.shipments["YT1111111111"].status is ShipmentStatus.IN_TRANSIT
    assert [shipment.tracking_number for shipment in storage.upserts] == ["YT3333333333"]
    assert report.to_dict()["summary"] == {"total": 3, "updated": 1, "errors": 2}


def test_pacer_runs_between_shipments_only(storage, gateway, messenger, pacer) -> None:
    for number in ("YT1111111111", "YT2222222222", "YT3333333333"):
        storage.shipments[number] = _shipment(number)

    asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert gateway.fetched == ["YT1111111111", "YT2222222222", "YT3333333333"]
    assert pacer.waits == 2


def test_empty_pass(storage, gateway, messenger, pacer) -> None:
    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert report.to_dict() == {
        "success": True,
        "message": "Processed 0 packages",
        "summary": {"total": 0, "updated": 0, "errors": 0},
        "results": [],
    }
    assert pacer.waits == 0


def test_unowned_shipment_is_updated_without_notification(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", status=ShipmentStatus.PENDING, chat_id=None)
    gateway.snapshots["YT1234567890"] = _snapshot("YT1234567890", ShipmentStatus.IN_TRANSIT)

    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert report.outcomes[0].updated
    assert not report.outcomes[0].notified
    assert messenger.sent == []


def test_disabled_and_terminal_shipments_are_not_polled(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1111111111"] = _shipment("YT1111111111", notifications_enabled=False)
    storage.shipments["YT2222222222"] = _shipment("YT2222222222", status=ShipmentStatus.EXPIRED)
    storage.shipments["YT3333333333"] = _shipment("YT3333333333", status=ShipmentStatus.EXCEPTION)

    asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert gateway.fetched == ["YT3333333333"]


def test_store_failure_is_recorded_without_notification(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", status=ShipmentStatus.PENDING)
    storage.fail_upsert_for.add("YT1234567890")
    gateway.snapshots["YT1234567890"] = _snapshot("YT1234567890", ShipmentStatus.DELIVERED)

    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert report.errors == 1
    assert report.outcomes[0].error == "disk I/O error"
    assert messenger.sent == []
    assert storage.shipments["YT1234567890"].status is ShipmentStatus.PENDING


def test_latest_first_sorts_by_timestamp() -> None:
    events = [_event("Label created", hour=6), _event("Customs cleared", hour=11), _event("Departed facility")]

    assert [event.description for event in latest_first(events)] == [
        "Customs cleared",
        "Departed facility",
        "Label created",
    ]


def test_latest_first_keeps_provider_order_when_a_timestamp_is_missing() -> None:
    events = [
        _event("Label created", hour=6),
        TrackingEvent(timestamp=None, description="Held at customs"),
        _event("Customs cleared", hour=11),
    ]

    assert latest_first(events) == tuple(events)


def test_latest_first_keeps_provider_order_for_mixed_offsets() -> None:
    events = [
        TrackingEvent(timestamp=datetime(2024, 4, 30, 6), description="Label created"),
        _event("Customs cleared", hour=11),
    ]

    assert latest_first(events) == tuple(events)


def test_mixed_offset_timestamps_do_not_break_the_pass(storage, gateway, messenger, pacer) -> None:
    storage.shipments["YT1234567890"] = _shipment("YT1234567890", status=ShipmentStatus.PENDING)
    body = {
        "code": 0,
        "data": [
            {
                "number": "YT1234567890",
                "carrier": 2003,
                "track": {
                    "e": 10,
                    "z": [
                        {"a": "2024-04-30T09:00:00+08:00", "z": "Picked up"},
                        {"a": "2024-04-30 08:00", "z": "Arrived at sorting center"},
                    ],
                },
            }
        ],
    }
    gateway.snapshots["YT1234567890"] = decode_snapshot("YT1234567890", body)

    report = asyncio.run(_engine(storage, gateway, messenger, pacer).run_pass())

    assert report.errors == 0
    assert report.outcomes[0].updated
    stored = storage.shipments["YT1234567890"]
    assert [event.description for event in stored.events] == ["Arrived at sorting center", "Picked up"]
    assert "Arrived at sorting center" in messenger.texts_for("42")[0]
