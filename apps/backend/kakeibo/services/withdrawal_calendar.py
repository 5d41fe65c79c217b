"""Card withdrawal date arithmetic.

A purchase falls into the billing month ending on the card's closing day; the
amount is debited ``withdrawal_month_offset`` months after that billing month
on ``withdrawal_day`` (clamped to the month's last day), moved forward to the
next business day. Only weekends are skipped unless a different
``is_business_day`` predicate is supplied; there is no holiday calendar.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from kakeibo.models import today_local
from kakeibo.utils.dates import add_month, as_calendar_date, clamp_day

BusinessDayPredicate = Callable[[date], bool]

# an always-False predicate must not spin forever
_MAX_BUSINESS_DAY_SCAN = 31


class CardBillingConfig(BaseModel):
    closing_day: int = Field(ge=1, le=31)
    withdrawal_day: int = Field(ge=1, le=31)
    withdrawal_month_offset: int = Field(default=1, ge=1, le=2)
    withdrawal_bank_id: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class OverdueStatus(BaseModel):
    is_overdue: bool
    days_until: int


class WithdrawalInfo(BaseModel):
    withdrawal_date: date
    config: CardBillingConfig
    is_overdue: bool
    days_until_withdrawal: int


def is_weekday(value: date) -> bool:
    return value.weekday() < 5


def next_business_day(value: date, is_business_day: BusinessDayPredicate = is_weekday) -> date:
    current = value
    for _ in range(_MAX_BUSINESS_DAY_SCAN):
        if is_business_day(current):
            return current
        current += timedelta(days=1)
    raise ValueError(f"no business day within {_MAX_BUSINESS_DAY_SCAN} days of {value.isoformat()}")


def billing_month(purchase_date: date, closing_day: int) -> tuple[int, int]:
    # a purchase on the closing day itself still belongs to the current period
    if purchase_date.day <= closing_day:
        return purchase_date.year, purchase_date.month
    return add_month(purchase_date.year, purchase_date.month, 1)


def scheduled_withdrawal_date(purchase_date: date | datetime, config: CardBillingConfig) -> date:
    """Nominal debit date before business-day adjustment."""
    purchased = as_calendar_date(purchase_date)
    bill_year, bill_month = billing_month(purchased, config.closing_day)
    year, month = add_month(bill_year, bill_month, config.withdrawal_month_offset)
    return clamp_day(year, month, config.withdrawal_day)


def compute_withdrawal_date(
    purchase_date: date | datetime,
    config: CardBillingConfig,
    *,
    is_business_day: BusinessDayPredicate = is_weekday,
) -> date:
    """Return the bank withdrawal date for a purchase made with ``config``'s card.

    The adjusted date is not re-clamped: a month-end falling on a weekend
    rolls into the following month.
    """
    return next_business_day(scheduled_withdrawal_date(purchase_date, config), is_business_day)


def compute_overdue_status(
    withdrawal_date: date | datetime,
    reference_date: date | datetime | None = None,
) -> OverdueStatus:
    """Due today counts as overdue so same-day processing picks it up."""
    due = as_calendar_date(withdrawal_date)
    reference = as_calendar_date(reference_date) if reference_date is not None else today_local()
    return OverdueStatus(is_overdue=due <= reference, days_until=(due - reference).days)


def get_withdrawal_info(
    purchase_date: date | datetime,
    config: CardBillingConfig,
    reference_date: date | datetime | None = None,
    *,
    is_business_day: BusinessDayPredicate = is_weekday,
) -> WithdrawalInfo:
    withdrawal_date = compute_withdrawal_date(purchase_date, config, is_business_day=is_business_day)
    status = compute_overdue_status(withdrawal_date, reference_date)
    return WithdrawalInfo(
        withdrawal_date=withdrawal_date,
        config=config,
        is_overdue=status.is_overdue,
        days_until_withdrawal=status.days_until,
    )
