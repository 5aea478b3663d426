"""Injectable clocks.

The manager reads wall-clock time for record timestamps and monotonic time
for retry scheduling.  Both come from a ``Clock`` so tests can pin them.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    """Source of wall-clock and monotonic time."""

    def now(self) -> datetime:
        """Current timezone-aware UTC time."""
        ...

    def monotonic(self) -> float:
        """Seconds on a clock that never goes backwards."""
        ...


class SystemClock:
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(tz=UTC)

    def monotonic(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to.

    ``advance`` moves both the wall clock and the monotonic clock together.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=UTC)
        self._monotonic = 0.0

    def now(self) -> datetime:
        return self._now

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, *, seconds: float = 0.0, milliseconds: float = 0.0) -> None:
        delta = seconds + milliseconds / 1000
        self._now += timedelta(seconds=delta)
        self._monotonic += delta
