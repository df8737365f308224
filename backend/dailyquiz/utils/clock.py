"""Calendar helpers that define what "today" means for the daily quiz."""

import calendar
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from ..config import settings


class Clock:
    """Wall clock bound to the quiz timezone."""

    def __init__(self, tz_name: str = None):
        self.tz = ZoneInfo(tz_name or settings.QUIZ_TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def utcnow(self) -> datetime:
        return self.now().astimezone(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def add_months(value: datetime, months: int) -> datetime:
    """Shift `value` by calendar months, clamping the day to the month end."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
