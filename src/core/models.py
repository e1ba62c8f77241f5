"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional


class ShipmentStatus(str, Enum):
    """Canonical, provider-independent shipment status."""

    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    EXCEPTION = "exception"
    EXPIRED = "expired"


# Shipments in this set are no longer polled.
TERMINAL_STATUSES = frozenset({ShipmentStatus.DELIVERED, ShipmentStatus.EXPIRED})


class Carrier(str, Enum):
    """Canonical carrier names accepted at intake."""

    TEMU = "temu"
    SHEIN = "shein"
    ALIEXPRESS = "aliexpress"
    ALIBABA = "alibaba"
    DHL = "dhl"
    FEDEX = "fedex"
    UPS = "ups"
    USPS = "usps"
    AMAZON = "amazon"
    CHINA_POST = "china_post"
    SINGAPORE_POST = "singapore_post"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Carrier":
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class TrackingEvent:
    """One provider-reported checkpoint. Descriptions are provider-verbatim."""

    timestamp: Optional[datetime]
    description: str
    location: Optional[str] = None
    status_code: Optional[str] = None


@dataclass(frozen=True)
class TrackingSnapshot:
    """Fresh provider view of a shipment; events are latest-first."""

    tracking_number: str
    carrier: Carrier
    status: ShipmentStatus
    events: tuple[TrackingEvent, ...] = ()

    @property
    def latest_event(self) -> Optional[TrackingEvent]:
        return self.events[0] if self.events else None


@dataclass(frozen=True)
class Shipment:
    """Persisted shipment keyed by its tracking number."""

    tracking_number: str
    carrier: Carrier = Carrier.UNKNOWN
    status: ShipmentStatus = ShipmentStatus.PENDING
    events: tuple[TrackingEvent, ...] = ()
    chat_id: Optional[str] = None
    notifications_enabled: bool = True
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def latest_event(self) -> Optional[TrackingEvent]:
        return self.events[0] if self.events else None

    @property
    def is_pollable(self) -> bool:
        return self.notifications_enabled and self.status not in TERMINAL_STATUSES


@dataclass(frozen=True)
class SenderProfile:
    """Sender metadata as reported by the chat channel."""

    user_id: Optional[int]
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True)
class ChatUser:
    """Chat participant, upserted on every observed interaction."""

    chat_id: str
    user_id: Optional[int] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    tracked_numbers: tuple[str, ...] = ()
    notifications_enabled: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class InboundMessage:
    """Minimal inbound chat message used by the intake dialog."""

    chat_id: str
    text: Optional[str]
    sender: Optional[SenderProfile]


@dataclass(frozen=True)
class ShipmentOutcome:
    """Per-shipment result of a reconciliation pass."""

    tracking_number: str
    updated: bool
    old_status: Optional[ShipmentStatus] = None
    new_status: Optional[ShipmentStatus] = None
    has_new_events: bool = False
    notified: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        payload: dict = {"trackingNumber": self.tracking_number, "updated": self.updated}
        if self.error:
            payload["error"] = self.error
            return payload
        if self.updated:
            payload.update(
                oldStatus=self.old_status.value if self.old_status else None,
                newStatus=self.new_status.value if self.new_status else None,
                hasNewEvents=self.has_new_events,
                notified=self.notified,
            )
        else:
            payload.update(
                status=self.old_status.value if self.old_status else None,
                reason="No changes detected",
            )
        return payload


@dataclass
class ReconcileReport:
    """Observability report for one reconciliation pass (never persisted)."""

    outcomes: list[ShipmentOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def updated(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.updated)

    @property
    def errors(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.error)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "message": f"Processed {self.total} packages",
            "summary": {"total": self.total, "updated": self.updated, "errors": self.errors},
            "results": [outcome.to_dict() for outcome in self.outcomes],
        }


def latest_first(events: Iterable[TrackingEvent]) -> tuple[TrackingEvent, ...]:
    """Order events newest-first.

    Sorting by timestamp only happens when every event carries one and all of
    them agree on being offset-aware or naive; the sort is stable so ties keep
    provider order. Otherwise provider order is trusted.
    """

    ordered = tuple(events)
    if not ordered or any(event.timestamp is None for event in ordered):
        return ordered
    aware = {event.timestamp.tzinfo is not None for event in ordered}
    if len(aware) > 1:
        return ordered
    return tuple(sorted(ordered, key=lambda event: event.timestamp, reverse=True))
