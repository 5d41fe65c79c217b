"""
Utils package
"""

from .dates import add_month, as_calendar_date, clamp_day, days_in_month

__all__ = [
    "add_month",
    "as_calendar_date",
    "clamp_day",
    "days_in_month",
]
