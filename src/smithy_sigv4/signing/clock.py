"""
Clock sources for request signing

Signing reads the current time once per operation from a ClockSource. Fixed
and skewed clocks are provided for tests and for clock-skew correction.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


def ensure_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to an aware UTC datetime.

    Naive datetimes are interpreted as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ClockSource(ABC):
    """Supplies the current time"""

    @abstractmethod
    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""


class SystemClock(ClockSource):
    """Wall clock in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return "SystemClock()"


class FixedClock(ClockSource):
    """
    Clock frozen at a given instant, movable by tests
    """

    def __init__(self, instant: datetime):
        self._lock = threading.Lock()
        self._instant = ensure_utc(instant)

    def now(self) -> datetime:
        with self._lock:
            return self._instant

    def set(self, instant: datetime) -> None:
        with self._lock:
            self._instant = ensure_utc(instant)

    def advance(self, delta: timedelta) -> None:
        with self._lock:
            self._instant = self._instant + delta

    def __repr__(self) -> str:
        return f"FixedClock({self._instant.isoformat()})"


class SkewedClock(ClockSource):
    """
    Wraps another clock and applies an offset.

    Used when the transport layer has measured skew against the service.
    """

    def __init__(self, offset: timedelta, base: Optional[ClockSource] = None):
        self.base = base or SystemClock()
        self.offset = offset

    def now(self) -> datetime:
        return self.base.now() + self.offset

    def __repr__(self) -> str:
        return f"SkewedClock(offset={self.offset!r}, base={self.base!r})"


DEFAULT_CLOCK = SystemClock()
