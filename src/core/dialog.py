"""Ephemeral per-chat dialog state.

Absence of an entry means Idle. Entries are process-local, bounded in count
and expire after an idle TTL, so losing them on restart is harmless: the
intake classifier reinterprets resent input the same way.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from enum import Enum
from typing import Callable, Optional

from core.config import DialogConfig


class DialogState(str, Enum):
    IDLE = "idle"
    AWAITING_TRACKING_INPUT = "awaiting_tracking_input"


class DialogStateCache:
    """Bounded TTL map of chat identity -> awaiting-input flag."""

    def __init__(self, config: DialogConfig, clock: Optional[Callable[[], float]] = None) -> None:
        if config.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._ttl_seconds = config.ttl_minutes * 60
        self._max_entries = config.max_entries
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def state(self, chat_id: str) -> DialogState:
        with self._lock:
            stamp = self._entries.get(chat_id)
            if stamp is None:
                return DialogState.IDLE
            if self._clock() - stamp > self._ttl_seconds:
                del self._entries[chat_id]
                return DialogState.IDLE
            return DialogState.AWAITING_TRACKING_INPUT

    def is_awaiting(self, chat_id: str) -> bool:
        return self.state(chat_id) is DialogState.AWAITING_TRACKING_INPUT

    def await_input(self, chat_id: str) -> None:
        with self._lock:
            self._entries[chat_id] = self._clock()
            self._entries.move_to_end(chat_id)
            # Oldest dialogs fall back to Idle first.
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self, chat_id: str) -> None:
        with self._lock:
            self._entries.pop(chat_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
