"""Ports (interfaces) used by the core.

Ports define the minimal contracts for storage, provider, messaging and pacing
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from core.models import ChatUser, SenderProfile, Shipment, TrackingSnapshot


class ShipmentStorePort(Protocol):
    """Shipment persistence keyed by tracking number."""

    def find_active_for_polling(self) -> List[Shipment]:
        ...

    def find_by_tracking_number(self, tracking_number: str) -> Optional[Shipment]:
        ...

    def find_by_owner(self, chat_id: str) -> List[Shipment]:
        ...

    def create(self, shipment: Shipment) -> bool:
        """Insert only; False when the tracking number is already stored."""
        ...

    def upsert(self, shipment: Shipment) -> Shipment:
        ...

    def delete(self, tracking_number: str) -> bool:
        ...


class UserStorePort(Protocol):
    """Chat user persistence keyed by chat identity."""

    def upsert_by_chat_id(self, chat_id: str, profile: SenderProfile) -> ChatUser:
        ...

    def add_tracked_number(self, chat_id: str, tracking_number: str) -> None:
        ...


class TrackingGatewayPort(Protocol):
    """Synchronous tracking provider operations.

    ``register`` fails soft and returns False. ``fetch_info`` raises a
    ``GatewayError`` subclass on failure.
    """

    def register(self, tracking_number: str, carrier: Optional[str] = None) -> bool:
        ...

    def fetch_info(self, tracking_number: str) -> TrackingSnapshot:
        ...


class MessengerPort(Protocol):
    """Outbound chat delivery. Fire-and-forget: failures are logged, not raised."""

    async def send(self, chat_id: str, text: str, parse_mode: str = "HTML") -> None:
        ...


class PacerPort(Protocol):
    """Pacing primitive awaited between provider calls."""

    async def wait(self) -> None:
        ...
