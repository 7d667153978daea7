"""
Clock -- injectable time source.

Responsibility:
    Services that stamp records (reservation created/completed times,
    batch approval times) or compare ages (stale reservation reclaim)
    receive a ``Clock`` through their constructor instead of calling
    ``datetime.now()`` themselves.

Failure modes:
    None.  ``DeterministicClock`` never advances on its own.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """
    Abstract clock interface.

    Guarantees:
        ``now()`` returns a timezone-aware UTC ``datetime``.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` keeps returning the same instant until ``advance()`` or
    ``set_time()`` is called, which makes staleness thresholds testable
    without sleeping.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific instant."""
        self._current = time

    def advance(self, seconds: float = 0, *, minutes: float = 0) -> datetime:
        """Move the clock forward and return the new time."""
        self._current = self._current + timedelta(seconds=seconds, minutes=minutes)
        return self._current


def as_utc(value: datetime) -> datetime:
    """Normalize a stored timestamp to aware UTC.

    Some backends (SQLite) return naive datetimes; everything is written
    in UTC, so a naive value is taken to be UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
