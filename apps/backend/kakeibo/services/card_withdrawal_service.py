"""Card withdrawal processing.

Card charges sit in PENDING until their withdrawal date arrives. Conversion
creates the bank expense that actually debits the card's withdrawal bank,
flips the charge to CONVERTED and updates the bank balance, all in one commit.
Reversion undoes exactly that.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Callable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from kakeibo import models, schemas
from kakeibo.services.balance_service import BalanceLedgerService, to_decimal
from kakeibo.services.exceptions import (
    CardConfigNotFoundError,
    CardWithdrawalError,
    ChargeAlreadyConvertedError,
    ChargeNotConvertedError,
    ChargeNotFoundError,
    WithdrawalBankUnavailableError,
)
from kakeibo.services.withdrawal_calendar import (
    BusinessDayPredicate,
    compute_overdue_status,
    compute_withdrawal_date,
    is_weekday,
)
from kakeibo.utils.dates import as_calendar_date

logger = logging.getLogger(__name__)

# legacy conversions carry no back-reference; their bank rows are found by amount near the date
LEGACY_MATCH_WINDOW = timedelta(days=1)

# charges with no status predate withdrawal tracking and count as pending
OPEN_WITHDRAWAL_STATUS = or_(
    models.Transaction.withdrawal_status == models.WithdrawalStatus.PENDING,
    models.Transaction.withdrawal_status.is_(None),
)


class CardWithdrawalService:
    def __init__(
        self,
        db: Session,
        ledger: Optional[BalanceLedgerService] = None,
        *,
        today: Optional[Callable[[], date]] = None,
        is_business_day: BusinessDayPredicate = is_weekday,
    ) -> None:
        self.db = db
        self.ledger = ledger or BalanceLedgerService(db)
        self._today = today or models.today_local
        self.is_business_day = is_business_day

    # ---- Queries -------------------------------------------------------------
    def find_overdue_charges(self, user_id: int, reference_date: Optional[date] = None) -> list[models.Transaction]:
        """Pending card charges whose withdrawal date is on or before ``reference_date``."""
        reference = as_calendar_date(reference_date) if reference_date is not None else self._today()
        return (
            self._card_charges_query(user_id)
            .filter(
                OPEN_WITHDRAWAL_STATUS,
                models.Transaction.card_withdrawal_date.is_not(None),
                models.Transaction.card_withdrawal_date <= reference,
            )
            .order_by(models.Transaction.card_withdrawal_date, models.Transaction.id)
            .all()
        )

    def list_pending_charges(
        self,
        user_id: int,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[models.Transaction]:
        q = self._card_charges_query(user_id).filter(OPEN_WITHDRAWAL_STATUS)
        if start_date is not None:
            q = q.filter(models.Transaction.card_withdrawal_date >= start_date)
        if end_date is not None:
            q = q.filter(models.Transaction.card_withdrawal_date <= end_date)
        return q.order_by(models.Transaction.card_withdrawal_date, models.Transaction.id).all()

    def describe_pending(self, charge: models.Transaction) -> schemas.PendingChargeOut:
        out = schemas.PendingChargeOut.model_validate(charge)
        if charge.card_withdrawal_date is not None:
            status = compute_overdue_status(charge.card_withdrawal_date, self._today())
            out.is_overdue = status.is_overdue
            out.days_until = status.days_until
        card = charge.payment_method.card
        out.card_name = card.name if card else None
        return out

    # ---- Batch -----------------------------------------------------------------
    def process_overdue_charges(self, user_id: int) -> schemas.CardWithdrawalResult:
        """Convert every due charge of ``user_id``.

        Each charge is its own unit of work; a failing charge is reported in
        ``errors`` and the rest are still processed. A failure of the initial
        lookup propagates.
        """
        charge_ids = [charge.id for charge in self.find_overdue_charges(user_id)]
        result = schemas.CardWithdrawalResult()

        for charge_id in charge_ids:
            try:
                bank_txn = self.convert_charge(charge_id, user_id)
            except CardWithdrawalError as exc:
                logger.warning(
                    "card charge skipped",
                    extra={"user_id": user_id, "charge_id": charge_id, "code": exc.code, "reason": exc.reason},
                )
                result.errors.append(f"Transaction {charge_id}: {exc.reason}")
                continue
            except Exception as exc:
                self.db.rollback()
                logger.exception("card charge conversion failed", extra={"user_id": user_id, "charge_id": charge_id})
                result.errors.append(f"Transaction {charge_id}: {exc}")
                continue
            result.processed.append(
                schemas.ProcessedCharge(
                    charge_id=charge_id,
                    bank_transaction_id=bank_txn.id,
                    amount=bank_txn.amount,
                    withdrawal_date=bank_txn.occurred_at,
                )
            )

        result.processed_count = len(result.processed)
        logger.info(
            "card withdrawals processed",
            extra={
                "user_id": user_id,
                "candidates": len(charge_ids),
                "processed": result.processed_count,
                "failed": len(result.errors),
            },
        )
        return result

    # ---- Single charge -----------------------------------------------------------
    def convert_charge(self, charge_id: int, user_id: int) -> models.Transaction:
        """Turn one card charge into the bank expense that settles it."""
        charge = self._load_card_charge(charge_id, user_id)
        if charge.is_converted:
            raise ChargeAlreadyConvertedError()
        card = charge.payment_method.card
        bank_method = self._withdrawal_payment_method(card, user_id)

        try:
            withdrawal_date = charge.card_withdrawal_date
            if withdrawal_date is None:
                # charge saved without a date: uses the card's current config, not the one at purchase time
                withdrawal_date = compute_withdrawal_date(
                    charge.occurred_at,
                    card.billing_config,
                    is_business_day=self.is_business_day,
                )
                charge.card_withdrawal_date = withdrawal_date

            amount = to_decimal(charge.amount)
            bank_txn = models.Transaction(
                user_id=user_id,
                occurred_at=withdrawal_date,
                payment_method_id=bank_method.id,
                store=card.name,
                purpose=_withdrawal_label(card, charge),
                type=models.TxnType.EXPENSE,
                amount=amount,
                source_charge_id=charge.id,
            )
            self.db.add(bank_txn)
            self.db.flush()

            charge.mark_converted(bank_txn, amount)
            self.ledger.apply_delta(
                user_id,
                models.BalanceType.BANK,
                card.withdrawal_bank_id,
                amount,
                models.TxnType.EXPENSE,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(bank_txn)
        logger.info(
            "card charge converted",
            extra={
                "user_id": user_id,
                "charge_id": charge_id,
                "bank_transaction_id": bank_txn.id,
                "bank_id": card.withdrawal_bank_id,
                "amount": str(amount),
                "withdrawal_date": withdrawal_date.isoformat(),
            },
        )
        return bank_txn

    def revert_conversion(self, charge_id: int, user_id: int) -> models.Transaction:
        """Delete the generated bank expense(s) and put the charge back to PENDING."""
        charge = self._load_card_charge(charge_id, user_id)
        if not charge.is_converted:
            raise ChargeNotConvertedError()
        card = charge.payment_method.card

        try:
            bank_txns = self._generated_bank_transactions(charge, card)
            charge.mark_pending()
            self.db.flush()
            for bank_txn in bank_txns:
                self.ledger.apply_delta(
                    user_id,
                    models.BalanceType.BANK,
                    bank_txn.payment_method.bank_id,
                    bank_txn.amount,
                    models.TxnType.INCOME,
                )
                self.db.delete(bank_txn)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if not bank_txns:
            logger.warning(
                "converted charge had no bank expense to remove",
                extra={"user_id": user_id, "charge_id": charge_id},
            )
        self.db.refresh(charge)
        logger.info(
            "card charge conversion reverted",
            extra={"user_id": user_id, "charge_id": charge_id, "removed": len(bank_txns)},
        )
        return charge

    def compute_and_store_withdrawal_date(self, charge_id: int, user_id: int) -> models.Transaction:
        """(Re)compute a charge's withdrawal date from its card's current config."""
        charge = self._load_card_charge(charge_id, user_id)
        if charge.is_converted:
            # the bank expense is already dated; moving the charge would desync them
            raise ChargeAlreadyConvertedError()
        card = charge.payment_method.card
        try:
            charge.card_withdrawal_date = compute_withdrawal_date(
                charge.occurred_at,
                card.billing_config,
                is_business_day=self.is_business_day,
            )
            if charge.withdrawal_status is None:
                charge.withdrawal_status = models.WithdrawalStatus.PENDING
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(charge)
        return charge

    # ---- Helpers -------------------------------------------------------------------
    def _card_charges_query(self, user_id: int):
        return (
            self.db.query(models.Transaction)
            .join(models.PaymentMethod, models.Transaction.payment_method_id == models.PaymentMethod.id)
            .options(joinedload(models.Transaction.payment_method).joinedload(models.PaymentMethod.card))
            .filter(
                models.Transaction.user_id == user_id,
                models.PaymentMethod.type == models.PaymentMethodType.CARD,
            )
        )

    def _load_card_charge(self, charge_id: int, user_id: int) -> models.Transaction:
        charge = (
            self.db.query(models.Transaction)
            .options(joinedload(models.Transaction.payment_method).joinedload(models.PaymentMethod.card))
            .filter(models.Transaction.id == charge_id, models.Transaction.user_id == user_id)
            .first()
        )
        if charge is None or charge.payment_method.type != models.PaymentMethodType.CARD:
            raise ChargeNotFoundError()
        if charge.payment_method.card is None:
            raise CardConfigNotFoundError()
        return charge

    def _withdrawal_payment_method(self, card: models.Card, user_id: int) -> models.PaymentMethod:
        method = (
            self.db.query(models.PaymentMethod)
            .join(models.Bank, models.PaymentMethod.bank_id == models.Bank.id)
            .filter(
                models.PaymentMethod.user_id == user_id,
                models.PaymentMethod.type == models.PaymentMethodType.BANK,
                models.PaymentMethod.bank_id == card.withdrawal_bank_id,
                models.PaymentMethod.is_active.is_(True),
                models.Bank.user_id == user_id,
            )
            .order_by(models.PaymentMethod.id)
            .first()
        )
        if method is None:
            raise WithdrawalBankUnavailableError()
        return method

    def _generated_bank_transactions(self, charge: models.Transaction, card: models.Card) -> list[models.Transaction]:
        link = models.Transaction.source_charge_id == charge.id
        if charge.converted_transaction_id is not None:
            link = or_(link, models.Transaction.id == charge.converted_transaction_id)
        linked = (
            self.db.query(models.Transaction)
            .options(joinedload(models.Transaction.payment_method))
            .filter(models.Transaction.user_id == charge.user_id, link)
            .all()
        )
        if linked or charge.converted_transaction_id is not None or charge.converted_at is not None:
            # converted here but the bank expense is already gone (the FK may have been nulled)
            return linked
        return self._match_legacy_bank_transactions(charge, card)

    def _match_legacy_bank_transactions(self, charge: models.Transaction, card: models.Card) -> list[models.Transaction]:
        if charge.card_withdrawal_date is None:
            return []
        amount = to_decimal(charge.converted_amount if charge.converted_amount is not None else charge.amount)
        return (
            self.db.query(models.Transaction)
            .join(models.PaymentMethod, models.Transaction.payment_method_id == models.PaymentMethod.id)
            .options(joinedload(models.Transaction.payment_method))
            .filter(
                models.Transaction.user_id == charge.user_id,
                models.PaymentMethod.type == models.PaymentMethodType.BANK,
                models.PaymentMethod.bank_id == card.withdrawal_bank_id,
                models.Transaction.type == models.TxnType.EXPENSE,
                models.Transaction.amount == amount,
                models.Transaction.occurred_at >= charge.card_withdrawal_date - LEGACY_MATCH_WINDOW,
                models.Transaction.occurred_at <= charge.card_withdrawal_date + LEGACY_MATCH_WINDOW,
                models.Transaction.source_charge_id.is_(None),
                models.Transaction.withdrawal_status.is_(None),
            )
            .all()
        )


def _withdrawal_label(card: models.Card, charge: models.Transaction) -> str:
    label = f"Card withdrawal: {card.name} (charge #{charge.id}"
    if charge.store:
        label += f", {charge.store}"
    return label[:199] + ")"
