"""Form-submission intake.

Unlike the chat intake, form submissions name a carrier up front, so the
number is checked against that carrier's stricter grammar and registered with
the provider (with a carrier hint) before the shipment is stored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from core import messages
from core.errors import DuplicateShipmentError, ProviderError, ValidationError
from core.models import Carrier, Shipment, ShipmentStatus
from core.ports import MessengerPort, ShipmentStorePort, TrackingGatewayPort, UserStorePort
from core.validator import normalize_tracking_number, validate_for_carrier

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShipmentForm:
    """Fields submitted by the registration form."""

    tracking_number: Optional[str]
    carrier: Optional[str]
    description: Optional[str] = None
    chat_id: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShipmentRegistrar:
    """Validate, register with the provider and store a submitted shipment."""

    def __init__(
        self,
        shipments: ShipmentStorePort,
        users: UserStorePort,
        gateway: TrackingGatewayPort,
        messenger: MessengerPort,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._shipments = shipments
        self._users = users
        self._gateway = gateway
        self._messenger = messenger
        self._clock = clock or _utcnow

    async def register(self, form: ShipmentForm) -> Shipment:
        if not form.tracking_number or not form.tracking_number.strip() or not form.carrier:
            raise ValidationError("Tracking number and carrier are required")

        number = normalize_tracking_number(form.tracking_number)
        carrier = Carrier.parse(form.carrier)
        validate_for_carrier(number, carrier)

        if self._shipments.find_by_tracking_number(number) is not None:
            raise DuplicateShipmentError(f"{number} is already tracked")

        registered = await asyncio.to_thread(self._gateway.register, number, carrier.value)
        if not registered:
            raise ProviderError("Failed to register package with tracking service")

        now = self._clock()
        chat_id = form.chat_id or None
        shipment = Shipment(
            tracking_number=number,
            carrier=carrier,
            status=ShipmentStatus.PENDING,
            events=(),
            chat_id=chat_id,
            notifications_enabled=True,
            description=form.description or None,
            created_at=now,
            updated_at=now,
        )
        if not self._shipments.create(shipment):
            raise DuplicateShipmentError(f"{number} is already tracked")
        LOGGER.info("Registered %s (%s) via form", number, carrier.value)

        if chat_id:
            self._users.add_tracked_number(chat_id, number)
            await self._messenger.send(chat_id, messages.package_added_text(shipment), parse_mode=messages.PARSE_MODE)
        return shipment
