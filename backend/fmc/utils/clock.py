from __future__ import annotations
"""Injectable time source.

Services never call ``datetime.now()`` directly; they receive a Clock so that
expiry checks (approval codes, invite codes) can be exercised deterministically.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


def as_utc(dt: datetime) -> datetime:
    """Return a tz-aware UTC datetime (naive values are assumed to already be UTC).

    SQLite hands back naive datetimes even for ``DateTime(timezone=True)`` columns.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a tz-aware UTC datetime."""
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant until moved with ``advance`` or ``set_time``."""

    def __init__(self, fixed_time: Optional[datetime] = None):
        self._now = as_utc(fixed_time or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._now

    def set_time(self, value: datetime) -> None:
        self._now = as_utc(value)

    def advance(self, **delta) -> datetime:
        """Move forward by ``timedelta(**delta)`` and return the new time."""
        self._now = self._now + timedelta(**delta)
        return self._now


__all__ = ['Clock', 'SystemClock', 'FixedClock', 'as_utc']
