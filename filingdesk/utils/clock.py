"""
FilingDesk - Clock and Calendar Helpers

Services never call ``datetime.now()`` directly; they receive a ``Clock``
so that day counts and milestone stamps are reproducible in tests.

All statutory day counting happens on London calendar dates: a transition
at 23:30 BST and one at 00:30 BST the next morning are one day apart.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from filingdesk.config import settings


def business_tz() -> ZoneInfo:
    return ZoneInfo(settings.business_timezone)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def london_date(value: datetime) -> date:
    """Calendar date of an instant in the business timezone."""
    return as_utc(value).astimezone(business_tz()).date()


def calendar_days_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    """
    Whole calendar days between two instants, evaluated in London time.

    Returns None when either side is unknown.
    """
    if start is None or end is None:
        return None
    return (london_date(end) - london_date(start)).days


class Clock(ABC):
    """Injectable source of the current instant (always UTC-aware)."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        """Today's date in the business timezone."""
        return london_date(self.now())


class SystemClock(Clock):
    """Production clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``
    is called.
    """

    def __init__(self, fixed_time: Optional[datetime] = None):
        self._fixed_time = as_utc(
            fixed_time or datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        )

    def now(self) -> datetime:
        return self._fixed_time

    def set_time(self, time: datetime) -> None:
        self._fixed_time = as_utc(time)

    def advance(self, days: int = 0, seconds: int = 0) -> datetime:
        """Move the clock forward and return the new instant."""
        self._fixed_time = self._fixed_time + timedelta(days=days, seconds=seconds)
        return self._fixed_time
