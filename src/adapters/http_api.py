"""HTTP surface: Telegram webhook, reconciliation trigger and form intake."""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from adapters.telegram_mapper import inbound_from_update
from core import errors
from core.intake import ConversationalIntake
from core.models import Shipment
from core.reconciler import ReconciliationEngine
from core.registration import ShipmentForm, ShipmentRegistrar

LOGGER = logging.getLogger(__name__)


class PackageCreateRequest(BaseModel):
    """Form submission body."""

    model_config = ConfigDict(populate_by_name=True)

    tracking_number: Optional[str] = Field(None, alias="trackingNumber")
    carrier: Optional[str] = None
    description: Optional[str] = None
    chat_id: Optional[str] = Field(None, alias="telegramChatId")


class TrackingEventResponse(BaseModel):
    date: Optional[str]
    description: str
    location: Optional[str]
    status: Optional[str]


class ShipmentResponse(BaseModel):
    """Shipment response."""

    trackingNumber: str
    carrier: str
    description: Optional[str]
    status: str
    events: list[TrackingEventResponse]
    telegramChatId: Optional[str]
    notificationEnabled: bool
    createdAt: Optional[str]
    updatedAt: Optional[str]

    @classmethod
    def from_shipment(cls, shipment: Shipment) -> "ShipmentResponse":
        return cls(
            trackingNumber=shipment.tracking_number,
            carrier=shipment.carrier.value,
            description=shipment.description,
            status=shipment.status.value,
            events=[
                TrackingEventResponse(
                    date=event.timestamp.isoformat() if event.timestamp else None,
                    description=event.description,
                    location=event.location,
                    status=event.status_code,
                )
                for event in shipment.events
            ],
            telegramChatId=shipment.chat_id,
            notificationEnabled=shipment.notifications_enabled,
            createdAt=shipment.created_at.isoformat() if shipment.created_at else None,
            updatedAt=shipment.updated_at.isoformat() if shipment.updated_at else None,
        )


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def create_app(
    intake: ConversationalIntake,
    engine: ReconciliationEngine,
    registrar: ShipmentRegistrar,
    cron_secret: str,
) -> FastAPI:
    """Build the FastAPI application around already-wired core services."""

    if not cron_secret:
        raise RuntimeError("cron_secret must not be empty")

    app = FastAPI(title="PackTrack")

    async def verify_cron_secret(request: Request) -> None:
        """Reject the trigger before any work unless the bearer secret matches."""

        auth_header = request.headers.get("authorization", "")
        token = auth_header[7:] if auth_header.startswith("Bearer ") else ""
        if not token or not hmac.compare_digest(token.encode("utf-8"), cron_secret.encode("utf-8")):
            raise HTTPException(401, "Unauthorized")

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        return {"status": "healthy", "service": "packtrack"}

    @app.post("/webhook/telegram")
    async def telegram_webhook(request: Request):
        try:
            update = await request.json()
        except ValueError:
            LOGGER.warning("Webhook body is not valid JSON")
            return _error(400, "Invalid JSON body")

        message = inbound_from_update(update)
        if message is None:
            return {"success": True}
        try:
            await intake.handle(message)
        except Exception:
            LOGGER.exception("Webhook processing failed for chat %s", message.chat_id)
            return JSONResponse({"error": "Webhook processing failed"}, status_code=500)
        return {"success": True}

    @app.get("/webhook/telegram")
    async def telegram_webhook_status() -> dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "Telegram webhook endpoint is running",
        }

    @app.post("/api/cron/update-packages", dependencies=[Depends(verify_cron_secret)])
    async def run_reconciliation():
        try:
            report = await engine.run_pass()
        except errors.StorageError:
            LOGGER.exception("Reconciliation pass failed to load shipments")
            return _error(500, "Cron job failed")
        return report.to_dict()

    @app.post("/api/packages", status_code=201)
    async def create_package(body: PackageCreateRequest):
        form = ShipmentForm(
            tracking_number=body.tracking_number,
            carrier=body.carrier,
            description=body.description,
            chat_id=body.chat_id,
        )
        try:
            shipment = await registrar.register(form)
        except errors.ValidationError as exc:
            return _error(400, str(exc))
        except errors.DuplicateShipmentError:
            return _error(409, "Package already exists")
        except errors.ProviderError as exc:
            return _error(502, str(exc))
        except errors.StorageError:
            LOGGER.exception("Failed to create package")
            return _error(500, "Failed to create package")
        return {"success": True, "data": ShipmentResponse.from_shipment(shipment).model_dump()}

    return app
