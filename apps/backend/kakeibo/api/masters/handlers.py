"""Master data handlers (banks, cards, payment methods)."""

from __future__ import annotations

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from kakeibo import models
from kakeibo.api.errors import to_http_error
from kakeibo.core.database import get_db
from kakeibo.core.deps import get_current_user
from kakeibo.schemas import BankCreate, CardCreate, PaymentMethodCreate
from kakeibo.services import MasterDataService
from kakeibo.services.exceptions import MasterDataError


def list_banks(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[models.Bank]:
    return MasterDataService(db).list_banks(current_user.id, include_inactive=include_inactive)


def create_bank(
    payload: BankCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.Bank:
    try:
        return MasterDataService(db).create_bank(current_user.id, payload)
    except MasterDataError as exc:
        raise to_http_error(exc) from exc


def list_cards(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[models.Card]:
    return MasterDataService(db).list_cards(current_user.id, include_inactive=include_inactive)


def create_card(
    payload: CardCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.Card:
    try:
        return MasterDataService(db).create_card(current_user.id, payload)
    except MasterDataError as exc:
        raise to_http_error(exc) from exc


def list_payment_methods(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> list[models.PaymentMethod]:
    return MasterDataService(db).list_payment_methods(current_user.id, include_inactive=include_inactive)


def create_payment_method(
    payload: PaymentMethodCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
) -> models.PaymentMethod:
    try:
        return MasterDataService(db).create_payment_method(current_user.id, payload)
    except MasterDataError as exc:
        raise to_http_error(exc) from exc
