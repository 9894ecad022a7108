"""
Time sources for the cache engine.

All cache timestamps are milliseconds since an arbitrary origin.
"""

import time
from typing import Protocol


class Clock(Protocol):
    """Anything that can report the current time in milliseconds."""

    def now(self) -> float:
        ...


class SystemClock:
    """Wall-clock time in milliseconds since the epoch."""

    def now(self) -> float:
        return time.time() * 1000


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, timestamp: float) -> None:
        self._now = float(timestamp)

    def advance(self, milliseconds: float) -> float:
        self._now += milliseconds
        return self._now
