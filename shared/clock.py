"""Clock abstraction used for probation and flap-cooldown timing."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current time as a timezone-aware UTC datetime."""
        ...


class SystemClock:
    """Wall clock backed by the host's system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to.

    Used by tests and by offline replays that need deterministic probation and
    cooldown behaviour without sleeping.
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        if start is None:
            start = datetime(2000, 1, 1, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        self._lock = threading.Lock()
        self._now = start

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> datetime:
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        with self._lock:
            self._now = self._now + timedelta(seconds=seconds)
            return self._now

    def set(self, when: datetime) -> None:
        if when.tzinfo is None:
            raise ValueError("when must be timezone-aware")
        with self._lock:
            self._now = when


__all__ = ["Clock", "SystemClock", "ManualClock"]
