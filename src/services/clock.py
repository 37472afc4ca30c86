"""
Clock Abstraction

Every timestamp the ledger writes comes from an injected clock, so tests can
pin "now" instead of depending on the wall clock.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Source of the current instant."""

    @abstractmethod
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""
        pass

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    A clock that only moves when told to.

    Naive datetimes are taken to be UTC.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = _as_utc(start or datetime(2024, 1, 1, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set(self, instant: datetime) -> None:
        self._now = _as_utc(instant)

    def advance(self, **delta) -> datetime:
        """Move forward by timedelta keyword arguments (days=, seconds=, ...)."""
        self._now = self._now + timedelta(**delta)
        return self._now


def _as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)
