"""Shared wall-clock reference and movement epoch generation."""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class EpochClock:
    """Epoch-millisecond clock that never hands out the same epoch twice."""

    def __init__(self, time_source: Callable[[], int] | None = None) -> None:
        self._time_source = time_source or wall_clock_ms
        self._last_issued = 0
        self._lock = threading.Lock()

    def now_ms(self) -> int:
        return int(self._time_source())

    def next_epoch(self, previous: Optional[int] = None) -> int:
        """Fresh epoch strictly greater than ``previous`` and any epoch issued before."""
        with self._lock:
            floor = max(self._last_issued, previous or 0)
            epoch = max(self.now_ms(), floor + 1)
            self._last_issued = epoch
            return epoch
