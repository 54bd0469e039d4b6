"""
Core Module - Clock Source.

============================================================
RESPONSIBILITY
============================================================
Provides the wall-clock abstraction the trade core reads time from.

- Every time-dependent decision takes "now" from a ClockProtocol
- The clock is passed in by the caller, never looked up globally
- Enables deterministic testing of lockout boundaries

============================================================
DESIGN PRINCIPLES
============================================================
- UTC only - no timezone conversions in business logic
- All datetimes are timezone-aware
- Mockable for testing
- Thread-safe

============================================================
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """Source of the current instant. Always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...


# ============================================================
# SYSTEM CLOCK (PRODUCTION)
# ============================================================

class SystemClock(ClockProtocol):
    """Reads the host's wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


# ============================================================
# MOCK CLOCK (TESTING)
# ============================================================

class MockClock(ClockProtocol):
    """
    Settable clock for tests.

    Lets a test stand exactly on a lockout boundary, step across
    it, and come back, without sleeping.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        """
        Args:
            initial_time: Instant to start at (defaults to the real current time)
        """
        self._time = ensure_utc(initial_time or datetime.now(timezone.utc))
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._time

    def set_time(self, new_time: datetime) -> None:
        """Jump to an instant; naive values are taken as UTC."""
        with self._lock:
            self._time = ensure_utc(new_time)

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """
        Move forward by a timedelta built from the arguments.

        Args:
            seconds: Seconds to add
            **kwargs: Extra timedelta fields (days, hours, ...)
        """
        with self._lock:
            self._time += timedelta(seconds=seconds, **kwargs)

    @contextmanager
    def freeze(self, at_time: Optional[datetime] = None) -> Iterator[None]:
        """Pin the clock inside a block and restore the previous instant after it."""
        with self._lock:
            saved = self._time
            if at_time is not None:
                self._time = ensure_utc(at_time)
        try:
            yield
        finally:
            with self._lock:
                self._time = saved


# ============================================================
# TIMESTAMP UTILITIES
# ============================================================

def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalize aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso8601(dt: datetime) -> str:
    """Serialize as ISO 8601 with an explicit +00:00 offset."""
    return ensure_utc(dt).isoformat()


def from_iso8601(iso_string: str) -> datetime:
    """Parse a stored ISO 8601 timestamp back to UTC."""
    # Python < 3.11 does not accept a trailing "Z"
    if iso_string.endswith("Z"):
        iso_string = iso_string[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(iso_string))


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ensure_utc",
    "to_iso8601",
    "from_iso8601",
]
