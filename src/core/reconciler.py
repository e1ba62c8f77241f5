"""Reconciliation engine.

One pass runs a strict order per eligible shipment:
1) Fetch a fresh snapshot from the tracking provider
2) Record provider failures without touching stored state
3) Diff status and event count against the stored shipment
4) Skip unchanged shipments without writing
5) Replace status and events with the snapshot and persist
6) Notify the owning chat (delivery or generic update)

Shipments are processed sequentially with a pacer between them to stay under
provider rate limits. Each shipment commits independently, so a pass can be
interrupted between shipments without corruption. The engine holds no timer;
passes are triggered from outside.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from core import messages
from core.errors import GatewayError, StorageError, TrackingNotFoundError
from core.models import (
    ReconcileReport,
    Shipment,
    ShipmentOutcome,
    ShipmentStatus,
    TrackingSnapshot,
    latest_first,
)
from core.ports import MessengerPort, PacerPort, ShipmentStorePort, TrackingGatewayPort

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationEngine:
    """Diffs stored shipments against the provider and notifies on change."""

    def __init__(
        self,
        shipments: ShipmentStorePort,
        gateway: TrackingGatewayPort,
        messenger: MessengerPort,
        pacer: PacerPort,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._shipments = shipments
        self._gateway = gateway
        self._messenger = messenger
        self._pacer = pacer
        self._clock = clock or _utcnow

    async def run_pass(self) -> ReconcileReport:
        """Run one reconciliation pass over every shipment eligible for polling."""

        candidates = self._shipments.find_active_for_polling()
        LOGGER.info("Reconciliation pass started: %s shipments to check", len(candidates))

        report = ReconcileReport()
        for index, shipment in enumerate(candidates):
            # Pace between shipments only, never after the last one.
            if index:
                await self._pacer.wait()
            try:
                outcome = await self.reconcile(shipment)
            except Exception as exc:
                LOGGER.exception("Unexpected error while reconciling %s", shipment.tracking_number)
                outcome = ShipmentOutcome(
                    tracking_number=shipment.tracking_number,
                    updated=False,
                    error=str(exc) or exc.__class__.__name__,
                )
            report.outcomes.append(outcome)

        LOGGER.info(
            "Reconciliation pass complete: total=%s, updated=%s, errors=%s",
            report.total,
            report.updated,
            report.errors,
        )
        return report

    async def reconcile(self, shipment: Shipment) -> ShipmentOutcome:
        """Reconcile a single shipment and return its outcome."""

        number = shipment.tracking_number
        try:
            snapshot = await asyncio.to_thread(self._gateway.fetch_info, number)
        except TrackingNotFoundError:
            LOGGER.warning("No tracking data for %s; retrying next pass", number)
            return ShipmentOutcome(tracking_number=number, updated=False, error="No tracking data found")
        except GatewayError as exc:
            LOGGER.warning("Failed to get tracking info for %s: %s", number, exc)
            return ShipmentOutcome(tracking_number=number, updated=False, error=str(exc) or "API request failed")

        events = latest_first(snapshot.events)
        status_changed = shipment.status != snapshot.status
        has_new_events = len(events) > len(shipment.events)

        if not status_changed and not has_new_events:
            return ShipmentOutcome(tracking_number=number, updated=False, old_status=shipment.status)

        # The provider is the source of truth for the event list: full replace.
        updated = replace(shipment, status=snapshot.status, events=events, updated_at=self._clock())
        try:
            self._shipments.upsert(updated)
        except StorageError as exc:
            LOGGER.warning("Failed to persist update for %s: %s", number, exc)
            return ShipmentOutcome(tracking_number=number, updated=False, error=str(exc))

        LOGGER.info("Updated %s: %s -> %s", number, shipment.status.value, snapshot.status.value)
        notified = await self._notify(updated, snapshot, has_new_events)
        return ShipmentOutcome(
            tracking_number=number,
            updated=True,
            old_status=shipment.status,
            new_status=snapshot.status,
            has_new_events=has_new_events,
            notified=notified,
        )

    async def _notify(self, shipment: Shipment, snapshot: TrackingSnapshot, has_new_events: bool) -> bool:
        # Only the shipment-level flag gates notifications.
        if not shipment.chat_id or not shipment.notifications_enabled:
            return False

        latest = shipment.latest_event
        description = latest.description if latest and latest.description else messages.STATUS_UPDATED_FALLBACK
        now = self._clock()
        if snapshot.status == ShipmentStatus.DELIVERED:
            text = messages.delivered_text(shipment, description, now)
        else:
            text = messages.update_text(shipment, description, has_new_events, now)
        await self._messenger.send(shipment.chat_id, text, parse_mode=messages.PARSE_MODE)
        return True
