"""Carrier and status normalization (core domain).

Maps 17TRACK numeric codes onto canonical enums. Unknown codes never fail a
response: statuses fall back to pending and carriers to "unspecified".
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Mapping, Optional

from core.models import Carrier, ShipmentStatus

# Sentinel carrier id: the provider auto-detects the carrier.
UNSPECIFIED_CARRIER = 0

STATUS_CODES: Mapping[int, ShipmentStatus] = MappingProxyType(
    {
        0: ShipmentStatus.PENDING,
        10: ShipmentStatus.IN_TRANSIT,
        20: ShipmentStatus.EXCEPTION,
        30: ShipmentStatus.IN_TRANSIT,
        40: ShipmentStatus.DELIVERED,
        50: ShipmentStatus.EXPIRED,
    }
)

CARRIER_CODES: Mapping[Carrier, int] = MappingProxyType(
    {
        Carrier.TEMU: 2003,
        Carrier.SHEIN: 2108,
        Carrier.ALIEXPRESS: 2031,
        Carrier.DHL: 7,
        Carrier.FEDEX: 8,
        Carrier.UPS: 9,
        Carrier.USPS: 36,
    }
)

_CARRIERS_BY_CODE: Mapping[int, Carrier] = MappingProxyType(
    {code: carrier for carrier, code in CARRIER_CODES.items()}
)

STATUS_EMOJI: Mapping[ShipmentStatus, str] = MappingProxyType(
    {
        ShipmentStatus.PENDING: "⏳",
        ShipmentStatus.IN_TRANSIT: "🚚",
        ShipmentStatus.DELIVERED: "✅",
        ShipmentStatus.EXCEPTION: "⚠️",
        ShipmentStatus.EXPIRED: "⏰",
    }
)
FALLBACK_EMOJI = "📦"


def normalize_status(code: Any) -> ShipmentStatus:
    """Return the canonical status for a provider status code."""

    try:
        return STATUS_CODES.get(int(code), ShipmentStatus.PENDING)
    except (TypeError, ValueError):
        return ShipmentStatus.PENDING


def carrier_code(carrier: Optional[str]) -> int:
    """Return the provider carrier id, or UNSPECIFIED_CARRIER when unmapped."""

    return CARRIER_CODES.get(Carrier.parse(carrier), UNSPECIFIED_CARRIER)


def carrier_from_code(code: Any) -> Carrier:
    """Reverse lookup used when decoding provider responses."""

    try:
        return _CARRIERS_BY_CODE.get(int(code), Carrier.UNKNOWN)
    except (TypeError, ValueError):
        return Carrier.UNKNOWN


def status_emoji(status: Any) -> str:
    try:
        return STATUS_EMOJI.get(ShipmentStatus(status), FALLBACK_EMOJI)
    except ValueError:
        return FALLBACK_EMOJI
