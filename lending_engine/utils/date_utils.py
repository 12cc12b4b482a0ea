"""Date manipulation utilities"""

import calendar
from datetime import date, datetime, timezone


def add_months(from_date: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the last day of shorter months"""
    month_index = from_date.month - 1 + months
    year = from_date.year + month_index // 12
    month = month_index % 12 + 1
    day = min(from_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_date(value: date | datetime) -> date:
    """Calendar date of a date or datetime (naive datetimes from SQLite included)"""
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Whole calendar days from start to end, never negative"""
    return max((as_date(end) - as_date(start)).days, 0)
