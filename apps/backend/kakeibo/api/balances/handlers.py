from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from kakeibo import models
from kakeibo.api.errors import to_http_error
from kakeibo.core.database import get_db
from kakeibo.core.deps import get_current_user
from kakeibo.schemas import BalanceSummaryOut, BalanceUpdate
from kakeibo.services import BalanceLedgerService
from kakeibo.services.exceptions import LedgerError


def list_balances(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[models.Balance]:
    return BalanceLedgerService(db).get_balances(current_user.id)


def get_balance_summary(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> BalanceSummaryOut:
    return BalanceSummaryOut.model_validate(BalanceLedgerService(db).get_summary(current_user.id))


def update_balance(
    payload: BalanceUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.Balance:
    ledger = BalanceLedgerService(db)
    try:
        balance = ledger.set_balance(current_user.id, payload.type, payload.bank_id, payload.amount)
        db.commit()
    except LedgerError as exc:
        db.rollback()
        raise to_http_error(exc) from exc
    except Exception:
        db.rollback()
        raise
    db.refresh(balance)
    return balance


def recalculate_balances(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> BalanceSummaryOut:
    ledger = BalanceLedgerService(db)
    try:
        ledger.recalculate_balances(current_user.id)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return BalanceSummaryOut.model_validate(ledger.get_summary(current_user.id))
