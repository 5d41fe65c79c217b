from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from kakeibo import models, schemas
from kakeibo.services.exceptions import DuplicateNameError, MasterDataError

logger = logging.getLogger(__name__)


class MasterDataService:
    """Banks, cards and the payment methods transactions are recorded with."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---- Banks -------------------------------------------------------------------
    def list_banks(self, user_id: int, *, include_inactive: bool = False) -> list[models.Bank]:
        q = self.db.query(models.Bank).filter(models.Bank.user_id == user_id)
        if not include_inactive:
            q = q.filter(models.Bank.is_active.is_(True))
        return q.order_by(models.Bank.name, models.Bank.id).all()

    def create_bank(self, user_id: int, payload: schemas.BankCreate) -> models.Bank:
        bank = models.Bank(
            user_id=user_id,
            name=payload.name,
            branch_name=payload.branch_name,
            account_number=payload.account_number,
            memo=payload.memo,
        )
        method_name = payload.name if not payload.branch_name else f"{payload.name} {payload.branch_name}"
        if payload.create_payment_method:
            self._ensure_unique_method_name(user_id, method_name)
        try:
            self.db.add(bank)
            self.db.flush()
            if payload.create_payment_method:
                self.db.add(
                    models.PaymentMethod(
                        user_id=user_id,
                        name=method_name,
                        type=models.PaymentMethodType.BANK,
                        bank_id=bank.id,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(bank)
        logger.info("bank created", extra={"user_id": user_id, "bank_id": bank.id})
        return bank

    # ---- Cards -------------------------------------------------------------------
    def list_cards(self, user_id: int, *, include_inactive: bool = False) -> list[models.Card]:
        q = self.db.query(models.Card).filter(models.Card.user_id == user_id)
        if not include_inactive:
            q = q.filter(models.Card.is_active.is_(True))
        return q.order_by(models.Card.name, models.Card.id).all()

    def create_card(self, user_id: int, payload: schemas.CardCreate) -> models.Card:
        bank = (
            self.db.query(models.Bank)
            .filter(models.Bank.id == payload.withdrawal_bank_id, models.Bank.user_id == user_id)
            .first()
        )
        if bank is None:
            raise MasterDataError("Withdrawal bank must belong to the same user")
        if payload.create_payment_method:
            self._ensure_unique_method_name(user_id, payload.name)

        card = models.Card(
            user_id=user_id,
            name=payload.name,
            type=payload.type,
            closing_day=payload.closing_day,
            withdrawal_day=payload.withdrawal_day,
            withdrawal_month_offset=payload.withdrawal_month_offset,
            withdrawal_bank_id=bank.id,
            memo=payload.memo,
        )
        try:
            self.db.add(card)
            self.db.flush()
            if payload.create_payment_method:
                self.db.add(
                    models.PaymentMethod(
                        user_id=user_id,
                        name=payload.name,
                        type=models.PaymentMethodType.CARD,
                        card_id=card.id,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(card)
        logger.info("card created", extra={"user_id": user_id, "card_id": card.id, "withdrawal_bank_id": bank.id})
        return card

    # ---- Payment methods -------------------------------------------------------------
    def list_payment_methods(self, user_id: int, *, include_inactive: bool = False) -> list[models.PaymentMethod]:
        q = self.db.query(models.PaymentMethod).filter(models.PaymentMethod.user_id == user_id)
        if not include_inactive:
            q = q.filter(models.PaymentMethod.is_active.is_(True))
        return q.order_by(models.PaymentMethod.type, models.PaymentMethod.name).all()

    def create_payment_method(self, user_id: int, payload: schemas.PaymentMethodCreate) -> models.PaymentMethod:
        self._ensure_unique_method_name(user_id, payload.name)
        if payload.type == models.PaymentMethodType.CARD:
            owned = (
                self.db.query(models.Card.id)
                .filter(models.Card.id == payload.card_id, models.Card.user_id == user_id)
                .first()
            )
            if owned is None:
                raise MasterDataError("Card must belong to the same user")
        elif payload.type == models.PaymentMethodType.BANK:
            owned = (
                self.db.query(models.Bank.id)
                .filter(models.Bank.id == payload.bank_id, models.Bank.user_id == user_id)
                .first()
            )
            if owned is None:
                raise MasterDataError("Bank must belong to the same user")

        method = models.PaymentMethod(
            user_id=user_id,
            name=payload.name,
            type=payload.type,
            card_id=payload.card_id,
            bank_id=payload.bank_id,
            memo=payload.memo,
        )
        try:
            self.db.add(method)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(method)
        return method

    def _ensure_unique_method_name(self, user_id: int, name: str) -> None:
        exists = (
            self.db.query(models.PaymentMethod.id)
            .filter(models.PaymentMethod.user_id == user_id, models.PaymentMethod.name == name)
            .first()
        )
        if exists:
            raise DuplicateNameError("Payment method with same name already exists for user")
