from __future__ import annotations

import calendar
from datetime import date, datetime


def add_month(year: int, month: int, delta: int) -> tuple[int, int]:
    total = year * 12 + (month - 1) + delta
    new_year = total // 12
    new_month = total % 12 + 1
    return new_year, new_month


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def clamp_day(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, days_in_month(year, month)))


def as_calendar_date(value: date | datetime) -> date:
    """Strip the time of day; ``datetime`` is a ``date`` subclass so check it first."""
    if isinstance(value, datetime):
        return value.date()
    return value
