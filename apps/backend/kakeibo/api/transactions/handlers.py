from __future__ import annotations

from datetime import date

from fastapi import Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from kakeibo import models
from kakeibo.api.errors import to_http_error
from kakeibo.core.database import get_db
from kakeibo.core.deps import get_current_user
from kakeibo.schemas import TransactionCreate, TransactionFilter
from kakeibo.services import TransactionService
from kakeibo.services.exceptions import KakeiboServiceError


def create_transaction(
    payload: TransactionCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.Transaction:
    try:
        return TransactionService(db).create_transaction(current_user.id, payload)
    except KakeiboServiceError as exc:
        raise to_http_error(exc) from exc


def list_transactions(
    response: Response,
    start: date | None = Query(None),
    end: date | None = Query(None),
    payment_method_id: int | None = Query(None),
    type: models.TxnType | None = Query(None),
    withdrawal_status: models.WithdrawalStatus | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[models.Transaction]:
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start must be on or before end")
    filters = TransactionFilter(
        start=start,
        end=end,
        payment_method_id=payment_method_id,
        type=type,
        withdrawal_status=withdrawal_status,
        page=page,
        page_size=page_size,
    )
    rows, total = TransactionService(db).list_transactions(current_user.id, filters)
    response.headers["X-Total-Count"] = str(total)
    return rows


def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.Transaction:
    txn = TransactionService(db).get_transaction(current_user.id, transaction_id)
    if not txn:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return txn
