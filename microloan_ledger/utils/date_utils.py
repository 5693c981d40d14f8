"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta

from microloan_ledger.config import settings


def add_months(from_date: date, months: int) -> date:
    """Add calendar months, clamping the day to the target month (Jan 31 + 1 -> Feb 28/29)"""
    return from_date + relativedelta(months=months)


def local_today(offset_hours: Optional[int] = None, now: Optional[datetime] = None) -> date:
    """
    Calendar date at a fixed UTC offset.

    Every caller resolves "today" the same way regardless of the host or
    client locale, so cycle boundaries never drift by a day.
    """
    if offset_hours is None:
        offset_hours = settings.timezone_offset_hours
    tz = timezone(timedelta(hours=offset_hours))
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def as_date(value: date | datetime) -> date:
    """Drop time-of-day; datetimes are first converted to the engine's fixed offset."""
    if isinstance(value, datetime):
        return local_today(now=value)
    return value


def days_after(later: date, earlier: date) -> int:
    """Whole days from earlier to later, never negative"""
    return max((later - earlier).days, 0)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime, so naive and aware timestamps compare; naive values are read as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
