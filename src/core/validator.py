"""Tracking number format checks (core domain).

Two families of grammars live here:
- generic grammars used by the chat intake, both to reject junk early and to
  tell tracking input apart from unknown commands;
- stricter per-carrier grammars used only by form submission.
"""

from __future__ import annotations

import re
from types import MappingProxyType
from typing import List, Mapping, Optional

from core.errors import ValidationError
from core.models import Carrier

# Ordered; the first match wins.
FORMAT_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"^YT\d{10,20}$"),  # Temu, AliExpress
    re.compile(r"^LB\d{9}CN$"),  # Shein
    re.compile(r"^LP\d{9}CN$"),  # Alibaba
    re.compile(r"^[A-Z]{2}\d{9}[A-Z]{2}$"),  # UPU S10
)

CARRIER_PATTERNS: Mapping[Carrier, re.Pattern] = MappingProxyType(
    {
        Carrier.TEMU: re.compile(r"^[A-Z0-9]{10,20}$", re.IGNORECASE),
        Carrier.SHEIN: re.compile(r"^[A-Z0-9]{10,25}$", re.IGNORECASE),
        Carrier.ALIEXPRESS: re.compile(r"^[A-Z]{2}[0-9]{9}[A-Z]{2}$", re.IGNORECASE),
        Carrier.DHL: re.compile(r"^[0-9]{10,11}$"),
        Carrier.FEDEX: re.compile(r"^[0-9]{12,14}$"),
        Carrier.UPS: re.compile(r"^1Z[A-Z0-9]{16}$", re.IGNORECASE),
        Carrier.USPS: re.compile(r"^[0-9]{20,22}$"),
        Carrier.AMAZON: re.compile(r"^TBA[0-9]{12}$", re.IGNORECASE),
        Carrier.CHINA_POST: re.compile(r"^[A-Z]{2}[0-9]{9}[A-Z]{2}$", re.IGNORECASE),
        Carrier.SINGAPORE_POST: re.compile(r"^[A-Z]{2}[0-9]{9}[A-Z]{2}$", re.IGNORECASE),
    }
)

# Carriers without a grammar only need a plausible length.
MIN_UNKNOWN_LENGTH = 6

_SEPARATORS = re.compile(r"[\s,]+")


def normalize_tracking_number(candidate: str) -> str:
    return candidate.strip().upper()


def is_valid_format(candidate: Optional[str]) -> bool:
    """Return True when the candidate matches one of the generic grammars."""

    if not candidate:
        return False
    normalized = normalize_tracking_number(candidate)
    return any(pattern.match(normalized) for pattern in FORMAT_PATTERNS)


def split_tracking_input(text: str) -> List[str]:
    """Split free text on whitespace/commas/newlines into uppercased tokens."""

    return [token.upper() for token in _SEPARATORS.split(text.strip()) if token]


def looks_like_tracking_input(text: str) -> bool:
    """Heuristic: the first token of the message passes format validation."""

    tokens = split_tracking_input(text)
    return bool(tokens) and is_valid_format(tokens[0])


def validate_for_carrier(tracking_number: str, carrier: Carrier) -> None:
    """Raise ValidationError when the number does not fit the carrier grammar."""

    pattern = CARRIER_PATTERNS.get(carrier)
    if pattern is None:
        if len(tracking_number) >= MIN_UNKNOWN_LENGTH:
            return
        raise ValidationError(
            f"Tracking number must be at least {MIN_UNKNOWN_LENGTH} characters long"
        )
    if not pattern.match(tracking_number):
        raise ValidationError(f"Invalid tracking number format for {carrier.value}")
