"""17TRACK provider gateway.

Thin synchronous wrapper over the 17TRACK HTTP API. Only the shipment-level
status goes through the normalizer; checkpoint descriptions are kept verbatim.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Any, Optional

from core.errors import ProviderError, TrackingNotFoundError
from core.models import TrackingEvent, TrackingSnapshot
from core.normalizer import UNSPECIFIED_CARRIER, carrier_code, carrier_from_code, normalize_status

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.17track.net/track/v2.2"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_time(value: Any) -> Optional[datetime]:
    text = _text(value)
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Offset-less checkpoint times are read as UTC.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _decode_event(item: dict) -> TrackingEvent:
    # Checkpoint keys: a = time, z = description, c = location.
    return TrackingEvent(
        timestamp=_parse_time(item.get("a")),
        description=_text(item.get("z")) or "",
        location=_text(item.get("c")),
        status_code=_text(item.get("a")),
    )


def _data_rows(body: dict) -> list:
    data = body.get("data")
    if isinstance(data, dict):
        data = data.get("accepted")
    return data if isinstance(data, list) else []


def decode_snapshot(tracking_number: str, body: dict) -> TrackingSnapshot:
    """Decode a gettrackinfo response body into a snapshot."""

    if body.get("code") != 0:
        raise ProviderError(f"Provider rejected request (code {body.get('code')})")

    rows = _data_rows(body)
    if not rows:
        raise TrackingNotFoundError(f"No tracking data found for {tracking_number}")

    row = rows[0]
    track = row.get("track") or {}
    events = tuple(_decode_event(item) for item in (track.get("z") or []) if isinstance(item, dict))
    return TrackingSnapshot(
        tracking_number=_text(row.get("number")) or tracking_number,
        carrier=carrier_from_code(row.get("carrier")),
        status=normalize_status(track.get("e")),
        events=events,
    )


class Track17Gateway:
    """Gateway adapter that talks to the 17TRACK API."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, timeout_seconds: float = 15.0) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    def _post(self, path: str, payload: list) -> dict:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(f"{self._base_url}/{path}", data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        request.add_header("17token", self._api_key)
        try:
            with urllib.request.urlopen(request, timeout=self._timeout_seconds) as response:
                raw = response.read()
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise ProviderError(f"17TRACK API error {e.code}: {body}") from e
        except (urllib.error.URLError, OSError) as e:
            raise ProviderError(f"17TRACK API request failed: {e}") from e

        try:
            decoded = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ProviderError("17TRACK API returned an invalid body") from e
        if not isinstance(decoded, dict):
            raise ProviderError("17TRACK API returned an unexpected body")
        return decoded

    def register(self, tracking_number: str, carrier: Optional[str] = None) -> bool:
        """Register a number for tracking. Never raises; False on any failure."""

        entry: dict[str, Any] = {"number": tracking_number}
        code = carrier_code(carrier)
        # Omitting the carrier lets the provider auto-detect it.
        if code != UNSPECIFIED_CARRIER:
            entry["carrier"] = code
        try:
            body = self._post("register", [entry])
        except ProviderError as exc:
            LOGGER.warning("Error registering %s: %s", tracking_number, exc)
            return False
        if body.get("code") != 0:
            LOGGER.warning("Provider refused registration of %s (code %s)", tracking_number, body.get("code"))
            return False
        return True

    def fetch_info(self, tracking_number: str) -> TrackingSnapshot:
        """Fetch the current tracking snapshot; raises GatewayError subclasses."""

        body = self._post("gettrackinfo", [{"number": tracking_number}])
        return decode_snapshot(tracking_number, body)
