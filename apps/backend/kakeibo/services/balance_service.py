from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session, selectinload

from kakeibo import models
from kakeibo.services.exceptions import LedgerError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


class BalanceLedgerService:
    """Running cash / per-bank balances for one owner.

    Methods never commit: callers own the unit of work so the ledger change
    lands in the same commit as the transaction rows it accompanies.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def apply_delta(
        self,
        user_id: int,
        kind: models.BalanceType,
        bank_id: Optional[int],
        amount,
        direction: models.TxnType,
    ) -> models.Balance:
        """Add ``amount`` for INCOME, subtract it for EXPENSE."""
        magnitude = abs(to_decimal(amount))
        if kind == models.BalanceType.BANK and bank_id is None:
            raise LedgerError("bank_id is required for a bank balance")
        if kind == models.BalanceType.CASH:
            bank_id = None
        signed = magnitude if direction == models.TxnType.INCOME else -magnitude
        balance = self._get_or_create(user_id, kind, bank_id)
        balance.amount = to_decimal(balance.amount) + signed
        self.db.flush()
        logger.debug(
            "balance delta applied",
            extra={"user_id": user_id, "kind": kind.value, "bank_id": bank_id, "delta": str(signed)},
        )
        return balance

    def apply_transaction(self, txn: models.Transaction, *, reverse: bool = False) -> Optional[models.Balance]:
        """Reflect a cash/bank transaction; card charges are deferred to conversion."""
        method = txn.payment_method
        if method is None or method.type == models.PaymentMethodType.CARD:
            return None
        direction = txn.type
        if reverse:
            direction = models.TxnType.INCOME if direction == models.TxnType.EXPENSE else models.TxnType.EXPENSE
        kind = models.BalanceType.CASH if method.type == models.PaymentMethodType.CASH else models.BalanceType.BANK
        return self.apply_delta(txn.user_id, kind, method.bank_id, txn.amount, direction)

    def set_balance(self, user_id: int, kind: models.BalanceType, bank_id: Optional[int], amount) -> models.Balance:
        """Manual override of a running total."""
        if kind == models.BalanceType.BANK:
            if bank_id is None:
                raise LedgerError("bank_id is required for a bank balance")
            bank = (
                self.db.query(models.Bank)
                .filter(models.Bank.id == bank_id, models.Bank.user_id == user_id)
                .first()
            )
            if not bank:
                raise LedgerError("Bank not found")
        else:
            bank_id = None
        balance = self._get_or_create(user_id, kind, bank_id)
        balance.amount = to_decimal(amount)
        balance.is_manual = True
        self.db.flush()
        return balance

    def recalculate_balances(self, user_id: int) -> list[models.Balance]:
        """Rebuild every balance of ``user_id`` from transaction history.

        Card charges are skipped; their bank impact is carried by the bank
        expense rows generated at conversion. Manual overrides are discarded
        and accounts without any history drop back to zero.
        """
        txns = (
            self.db.query(models.Transaction)
            .options(selectinload(models.Transaction.payment_method))
            .filter(models.Transaction.user_id == user_id)
            .order_by(models.Transaction.occurred_at, models.Transaction.id)
            .all()
        )
        totals: dict[tuple[models.BalanceType, Optional[int]], Decimal] = defaultdict(lambda: ZERO)
        for txn in txns:
            method = txn.payment_method
            if method.type == models.PaymentMethodType.CARD:
                continue
            key = (
                (models.BalanceType.CASH, None)
                if method.type == models.PaymentMethodType.CASH
                else (models.BalanceType.BANK, method.bank_id)
            )
            amount = to_decimal(txn.amount)
            totals[key] += amount if txn.type == models.TxnType.INCOME else -amount

        existing = {
            (row.type, row.bank_id): row
            for row in self.db.query(models.Balance).filter(models.Balance.user_id == user_id).all()
        }
        rows: list[models.Balance] = []
        for key in existing.keys() | totals.keys():
            kind, bank_id = key
            row = existing.get(key)
            if row is None:
                row = models.Balance(user_id=user_id, type=kind, bank_id=bank_id)
                self.db.add(row)
            row.amount = totals.get(key, ZERO)
            row.is_manual = False
            rows.append(row)
        self.db.flush()
        logger.info("balances recalculated", extra={"user_id": user_id, "accounts": len(rows)})
        return rows

    def get_balance(self, user_id: int, kind: models.BalanceType, bank_id: Optional[int] = None) -> Decimal:
        row = self._find(user_id, kind, bank_id if kind == models.BalanceType.BANK else None)
        return to_decimal(row.amount) if row else ZERO

    def get_balances(self, user_id: int) -> list[models.Balance]:
        return (
            self.db.query(models.Balance)
            .options(selectinload(models.Balance.bank))
            .filter(models.Balance.user_id == user_id)
            .order_by(models.Balance.type, models.Balance.bank_id)
            .all()
        )

    def get_summary(self, user_id: int) -> dict:
        cash = ZERO
        banks: list[dict] = []
        for row in self.get_balances(user_id):
            if row.type == models.BalanceType.CASH:
                cash = to_decimal(row.amount)
            elif row.bank is not None:
                banks.append(
                    {
                        "bank_id": row.bank_id,
                        "bank_name": row.bank.name,
                        "branch_name": row.bank.branch_name,
                        "balance": to_decimal(row.amount),
                    }
                )
        banks.sort(key=lambda b: b["bank_name"])
        total = cash + sum((b["balance"] for b in banks), ZERO)
        return {"cash_balance": cash, "bank_balances": banks, "total_balance": total}

    def _find(self, user_id: int, kind: models.BalanceType, bank_id: Optional[int]) -> models.Balance | None:
        q = self.db.query(models.Balance).filter(models.Balance.user_id == user_id, models.Balance.type == kind)
        if bank_id is None:
            q = q.filter(models.Balance.bank_id.is_(None))
        else:
            q = q.filter(models.Balance.bank_id == bank_id)
        return q.first()

    def _get_or_create(self, user_id: int, kind: models.BalanceType, bank_id: Optional[int]) -> models.Balance:
        row = self._find(user_id, kind, bank_id)
        if row is None:
            row = models.Balance(user_id=user_id, type=kind, bank_id=bank_id, amount=ZERO)
            self.db.add(row)
        return row
