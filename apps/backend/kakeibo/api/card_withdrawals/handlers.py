"""Card withdrawal handlers: batch processing, single conversions and reverts."""

from __future__ import annotations

from datetime import date

from fastapi import Depends, HTTPException, Query
from sqlalchemy.orm import Session

from kakeibo import models
from kakeibo.api.errors import to_http_error
from kakeibo.core.database import get_db
from kakeibo.core.deps import get_current_user
from kakeibo.schemas import CardWithdrawalResult, PendingChargeOut, WithdrawalDateOut, WithdrawalSchedule
from kakeibo.services import CardWithdrawalService, WithdrawalScheduleService
from kakeibo.services.exceptions import CardWithdrawalError


def process_card_withdrawals(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> CardWithdrawalResult:
    return CardWithdrawalService(db).process_overdue_charges(current_user.id)


def convert_charge(
    charge_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.Transaction:
    try:
        return CardWithdrawalService(db).convert_charge(charge_id, current_user.id)
    except CardWithdrawalError as exc:
        raise to_http_error(exc) from exc


def revert_conversion(
    charge_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.Transaction:
    try:
        return CardWithdrawalService(db).revert_conversion(charge_id, current_user.id)
    except CardWithdrawalError as exc:
        raise to_http_error(exc) from exc


def compute_withdrawal_date(
    charge_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> WithdrawalDateOut:
    try:
        charge = CardWithdrawalService(db).compute_and_store_withdrawal_date(charge_id, current_user.id)
    except CardWithdrawalError as exc:
        raise to_http_error(exc) from exc
    return WithdrawalDateOut(
        charge_id=charge.id,
        card_withdrawal_date=charge.card_withdrawal_date,
        withdrawal_status=charge.withdrawal_status,
    )


def list_pending_charges(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    overdue_only: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[PendingChargeOut]:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    service = CardWithdrawalService(db)
    charges = service.list_pending_charges(current_user.id, start_date=start_date, end_date=end_date)
    rows = [service.describe_pending(charge) for charge in charges]
    if overdue_only:
        rows = [row for row in rows if row.is_overdue]
    return rows


def get_withdrawal_schedule(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> WithdrawalSchedule:
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must be on or before end_date")
    return WithdrawalScheduleService(db).build_schedule(current_user.id, start_date, end_date)
