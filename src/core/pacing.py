"""Pacing primitives for provider calls."""

from __future__ import annotations

import asyncio


class FixedDelayPacer:
    """Sleep a fixed delay on every wait; a zero delay only yields."""

    def __init__(self, delay_seconds: float) -> None:
        if delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        self.delay_seconds = delay_seconds

    async def wait(self) -> None:
        await asyncio.sleep(self.delay_seconds)
