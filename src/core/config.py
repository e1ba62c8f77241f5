"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconcileConfig:
    """Pacing settings for reconciliation passes."""

    delay_seconds: float = 1.0


@dataclass(frozen=True)
class DialogConfig:
    """Bounds for the ephemeral per-chat dialog state."""

    ttl_minutes: int = 30
    max_entries: int = 10000
