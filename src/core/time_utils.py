"""Date arithmetic and the injectable clock."""

from datetime import date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo

from src.core.config import settings


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock in the configured timezone."""

    def __init__(self, timezone: str | None = None) -> None:
        self.tz = ZoneInfo(timezone or settings.timezone)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


def start_of_day(value: date | datetime) -> date:
    """Truncate a timestamp to its calendar day."""
    if isinstance(value, datetime):
        return value.date()
    return value


def start_of_year(value: date | datetime) -> date:
    return date(value.year, 1, 1)


def end_of_year(value: date | datetime) -> date:
    return date(value.year, 12, 31)


def add_days(value: date, days: int) -> date:
    return start_of_day(value) + timedelta(days=days)


def min_date(*values: date | None) -> date | None:
    """Earliest of the given dates, ignoring None."""
    present = [v for v in values if v is not None]
    return min(present) if present else None
