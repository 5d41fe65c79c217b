from __future__ import annotations

from collections import OrderedDict
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session, joinedload

from kakeibo import models, schemas
from kakeibo.services.balance_service import ZERO, to_decimal
from kakeibo.services.card_withdrawal_service import OPEN_WITHDRAWAL_STATUS


class WithdrawalScheduleService:
    """Upcoming card withdrawals, grouped by date and debited bank."""

    def __init__(self, db: Session, *, today: Optional[Callable[[], date]] = None) -> None:
        self.db = db
        self._today = today or models.today_local

    def build_schedule(
        self,
        user_id: int,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> schemas.WithdrawalSchedule:
        q = (
            self.db.query(models.Transaction)
            .join(models.PaymentMethod, models.Transaction.payment_method_id == models.PaymentMethod.id)
            .options(
                joinedload(models.Transaction.payment_method)
                .joinedload(models.PaymentMethod.card)
                .joinedload(models.Card.withdrawal_bank)
            )
            .filter(
                models.Transaction.user_id == user_id,
                models.PaymentMethod.type == models.PaymentMethodType.CARD,
                OPEN_WITHDRAWAL_STATUS,
                models.Transaction.card_withdrawal_date.is_not(None),
            )
        )
        if start_date is not None:
            q = q.filter(models.Transaction.card_withdrawal_date >= start_date)
        if end_date is not None:
            q = q.filter(models.Transaction.card_withdrawal_date <= end_date)
        charges = q.order_by(models.Transaction.card_withdrawal_date, models.Transaction.id).all()

        # date -> bank_id -> (bank name, charges)
        grouped: "OrderedDict[date, OrderedDict[int, tuple[str, list[models.Transaction]]]]" = OrderedDict()
        for charge in charges:
            card = charge.payment_method.card
            banks = grouped.setdefault(charge.card_withdrawal_date, OrderedDict())
            _, rows = banks.setdefault(card.withdrawal_bank_id, (card.withdrawal_bank.name, []))
            rows.append(charge)

        today = self._today()
        days: list[schemas.ScheduleDay] = []
        grand_total = ZERO
        for withdrawal_date, banks in grouped.items():
            bank_rows: list[schemas.BankWithdrawal] = []
            day_total = ZERO
            for bank_id, (bank_name, rows) in sorted(banks.items(), key=lambda item: item[1][0]):
                bank_total = sum((to_decimal(c.amount) for c in rows), ZERO)
                day_total += bank_total
                bank_rows.append(
                    schemas.BankWithdrawal(
                        bank_id=bank_id,
                        bank_name=bank_name,
                        total=bank_total,
                        charges=[_scheduled(c) for c in rows],
                    )
                )
            grand_total += day_total
            days.append(
                schemas.ScheduleDay(
                    withdrawal_date=withdrawal_date,
                    is_overdue=withdrawal_date <= today,
                    total=day_total,
                    banks=bank_rows,
                )
            )
        return schemas.WithdrawalSchedule(
            start_date=start_date,
            end_date=end_date,
            total=grand_total,
            days=days,
        )


def _scheduled(charge: models.Transaction) -> schemas.ScheduledCharge:
    card = charge.payment_method.card
    return schemas.ScheduledCharge(
        charge_id=charge.id,
        occurred_at=charge.occurred_at,
        card_id=card.id,
        card_name=card.name,
        store=charge.store,
        amount=to_decimal(charge.amount),
    )
