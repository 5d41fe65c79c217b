from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from kakeibo import models, schemas
from kakeibo.services.balance_service import BalanceLedgerService, to_decimal
from kakeibo.services.exceptions import InvalidTransactionError, PaymentMethodNotFoundError
from kakeibo.services.withdrawal_calendar import BusinessDayPredicate, compute_withdrawal_date, is_weekday

logger = logging.getLogger(__name__)


class TransactionService:
    """Record purchases, income and expenses.

    Card purchases get their withdrawal date and PENDING state up front and
    leave balances untouched; cash and bank transactions hit the ledger in the
    same commit as the row itself.
    """

    def __init__(
        self,
        db: Session,
        ledger: Optional[BalanceLedgerService] = None,
        *,
        is_business_day: BusinessDayPredicate = is_weekday,
    ) -> None:
        self.db = db
        self.ledger = ledger or BalanceLedgerService(db)
        self.is_business_day = is_business_day

    def create_transaction(self, user_id: int, payload: schemas.TransactionCreate) -> models.Transaction:
        method = self._active_payment_method(user_id, payload.payment_method_id)
        if method.type == models.PaymentMethodType.CARD and payload.type != models.TxnType.EXPENSE:
            raise InvalidTransactionError()

        txn = models.Transaction(
            user_id=user_id,
            occurred_at=payload.occurred_at,
            payment_method_id=method.id,
            store=payload.store,
            purpose=payload.purpose,
            type=payload.type,
            amount=to_decimal(payload.amount),
        )
        try:
            if method.type == models.PaymentMethodType.CARD:
                txn.card_withdrawal_date = compute_withdrawal_date(
                    payload.occurred_at,
                    method.card.billing_config,
                    is_business_day=self.is_business_day,
                )
                txn.withdrawal_status = models.WithdrawalStatus.PENDING
                self.db.add(txn)
                self.db.flush()
            else:
                self.db.add(txn)
                self.db.flush()
                self.ledger.apply_transaction(txn)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(txn)
        logger.info(
            "transaction recorded",
            extra={
                "user_id": user_id,
                "transaction_id": txn.id,
                "payment_method_type": method.type.value,
                "amount": str(txn.amount),
                "card_withdrawal_date": txn.card_withdrawal_date.isoformat() if txn.card_withdrawal_date else None,
            },
        )
        return txn

    def get_transaction(self, user_id: int, transaction_id: int) -> models.Transaction | None:
        return (
            self.db.query(models.Transaction)
            .filter(models.Transaction.id == transaction_id, models.Transaction.user_id == user_id)
            .first()
        )

    def list_transactions(
        self,
        user_id: int,
        filters: Optional[schemas.TransactionFilter] = None,
    ) -> tuple[list[models.Transaction], int]:
        filters = filters or schemas.TransactionFilter()
        q = self.db.query(models.Transaction).filter(models.Transaction.user_id == user_id)
        if filters.start:
            q = q.filter(models.Transaction.occurred_at >= filters.start)
        if filters.end:
            q = q.filter(models.Transaction.occurred_at <= filters.end)
        if filters.payment_method_id:
            q = q.filter(models.Transaction.payment_method_id == filters.payment_method_id)
        if filters.type:
            q = q.filter(models.Transaction.type == filters.type)
        if filters.withdrawal_status:
            q = q.filter(models.Transaction.withdrawal_status == filters.withdrawal_status)

        total = q.count()
        rows = (
            q.order_by(models.Transaction.occurred_at.desc(), models.Transaction.id.desc())
            .offset((filters.page - 1) * filters.page_size)
            .limit(filters.page_size)
            .all()
        )
        return rows, total

    def _active_payment_method(self, user_id: int, payment_method_id: int) -> models.PaymentMethod:
        method = (
            self.db.query(models.PaymentMethod)
            .options(joinedload(models.PaymentMethod.card))
            .filter(
                models.PaymentMethod.id == payment_method_id,
                models.PaymentMethod.user_id == user_id,
                models.PaymentMethod.is_active.is_(True),
            )
            .first()
        )
        if method is None:
            raise PaymentMethodNotFoundError()
        if method.type == models.PaymentMethodType.CARD and method.card is None:
            raise PaymentMethodNotFoundError("Card linked to the payment method was not found")
        return method
