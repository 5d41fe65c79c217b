from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo
from enum import Enum
from typing import Union

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Index,
    Boolean,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base


try:
    LOCAL_ZONE = ZoneInfo(getattr(settings, "TIMEZONE", "Asia/Tokyo"))
except Exception:
    LOCAL_ZONE = ZoneInfo("Asia/Tokyo")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class User(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)


class Bank(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    branch_name: Mapped[str | None] = mapped_column(String(100))
    account_number: Mapped[str | None] = mapped_column(String(50))
    memo: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_bank_user", "user_id"),
    )


class CardType(str, Enum):
    CREDIT_CARD = "CREDIT_CARD"
    PREPAID_CARD = "PREPAID_CARD"


class Card(Base, TimestampMixin):
    """A card and its billing cycle (closing day, withdrawal day/month, debited bank)."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CardType] = mapped_column(SAEnum(CardType, name="card_type"), nullable=False, default=CardType.CREDIT_CARD)
    closing_day: Mapped[int] = mapped_column(Integer, nullable=False)
    withdrawal_day: Mapped[int] = mapped_column(Integer, nullable=False)
    withdrawal_month_offset: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    withdrawal_bank_id: Mapped[int] = mapped_column(ForeignKey("bank.id"), nullable=False)
    memo: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    withdrawal_bank: Mapped["Bank"] = relationship("Bank", foreign_keys=[withdrawal_bank_id])

    __table_args__ = (
        CheckConstraint("closing_day BETWEEN 1 AND 31", name="ck_card_closing_day"),
        CheckConstraint("withdrawal_day BETWEEN 1 AND 31", name="ck_card_withdrawal_day"),
        CheckConstraint("withdrawal_month_offset IN (1, 2)", name="ck_card_withdrawal_month_offset"),
    )

    @property
    def billing_config(self):
        # local import: services depend on models, not the other way around
        from .services.withdrawal_calendar import CardBillingConfig

        return CardBillingConfig(
            closing_day=self.closing_day,
            withdrawal_day=self.withdrawal_day,
            withdrawal_month_offset=self.withdrawal_month_offset,
            withdrawal_bank_id=self.withdrawal_bank_id,
        )


class PaymentMethodType(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    BANK = "BANK"


class PaymentMethod(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[PaymentMethodType] = mapped_column(SAEnum(PaymentMethodType, name="payment_method_type"), nullable=False)
    card_id: Mapped[int | None] = mapped_column(ForeignKey("card.id"))
    bank_id: Mapped[int | None] = mapped_column(ForeignKey("bank.id"))
    memo: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    card: Mapped["Card | None"] = relationship("Card", foreign_keys=[card_id])
    bank: Mapped["Bank | None"] = relationship("Bank", foreign_keys=[bank_id])

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_payment_method_name"),
        CheckConstraint("type != 'CARD' OR card_id IS NOT NULL", name="ck_payment_method_card_link"),
        CheckConstraint("type != 'BANK' OR bank_id IS NOT NULL", name="ck_payment_method_bank_link"),
    )


class TxnType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class WithdrawalStatus(str, Enum):
    PENDING = "PENDING"
    CONVERTED = "CONVERTED"


@dataclass(frozen=True)
class PendingWithdrawal:
    withdrawal_date: date | None


@dataclass(frozen=True)
class ConvertedWithdrawal:
    withdrawal_date: date
    bank_transaction_id: int | None
    converted_amount: Decimal


WithdrawalState = Union[PendingWithdrawal, ConvertedWithdrawal]


class Transaction(Base, TimestampMixin):
    """A ledger row.

    Three shapes share this table:

    * card charges: payment method of type CARD, ``withdrawal_status`` set;
    * plain cash/bank income and expenses;
    * bank expenses generated by a card withdrawal, pointing back at the
      originating charge through ``source_charge_id``.
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    occurred_at: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method_id: Mapped[int] = mapped_column(ForeignKey("paymentmethod.id"), nullable=False)
    store: Mapped[str | None] = mapped_column(String(200))
    purpose: Mapped[str | None] = mapped_column(String(200))
    type: Mapped[TxnType] = mapped_column(SAEnum(TxnType, name="txn_type"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False)

    # --- card charge lifecycle ---------------------------------------------
    card_withdrawal_date: Mapped[date | None] = mapped_column(Date)
    withdrawal_status: Mapped[WithdrawalStatus | None] = mapped_column(
        SAEnum(WithdrawalStatus, name="withdrawal_status"),
    )
    converted_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 4))
    converted_at: Mapped[datetime | None] = mapped_column(DateTime)
    converted_transaction_id: Mapped[int | None] = mapped_column(
        ForeignKey("transaction.id", ondelete="SET NULL"),
    )
    # --- generated bank expense back-reference -------------------------------
    source_charge_id: Mapped[int | None] = mapped_column(
        ForeignKey("transaction.id", ondelete="SET NULL"),
    )

    payment_method: Mapped["PaymentMethod"] = relationship("PaymentMethod", foreign_keys=[payment_method_id])

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_txn_amount_positive"),
        CheckConstraint(
            "withdrawal_status IS NULL OR withdrawal_status != 'CONVERTED'"
            " OR (card_withdrawal_date IS NOT NULL AND converted_amount IS NOT NULL)",
            name="ck_txn_converted_requires_date",
        ),
        CheckConstraint(
            "withdrawal_status = 'CONVERTED' OR converted_transaction_id IS NULL",
            name="ck_txn_link_only_when_converted",
        ),
        CheckConstraint("source_charge_id IS NULL OR source_charge_id != id", name="ck_txn_not_source_self"),
        Index("ix_txn_user_date", "user_id", "occurred_at"),
        Index("ix_txn_user_withdrawal", "user_id", "withdrawal_status", "card_withdrawal_date"),
        Index("ix_txn_source_charge", "source_charge_id"),
    )

    @property
    def is_card_charge(self) -> bool:
        return self.withdrawal_status is not None

    @property
    def is_converted(self) -> bool:
        return self.withdrawal_status == WithdrawalStatus.CONVERTED

    @property
    def withdrawal_state(self) -> WithdrawalState | None:
        if self.withdrawal_status is None:
            return None
        if self.withdrawal_status == WithdrawalStatus.CONVERTED:
            return ConvertedWithdrawal(
                withdrawal_date=self.card_withdrawal_date,  # type: ignore[arg-type]
                bank_transaction_id=self.converted_transaction_id,
                converted_amount=Decimal(self.converted_amount or 0),
            )
        return PendingWithdrawal(withdrawal_date=self.card_withdrawal_date)

    def mark_converted(self, bank_transaction: "Transaction", amount: Decimal) -> None:
        self.withdrawal_status = WithdrawalStatus.CONVERTED
        self.converted_transaction_id = bank_transaction.id
        self.converted_amount = amount
        self.converted_at = now_local_naive()

    def mark_pending(self) -> None:
        self.withdrawal_status = WithdrawalStatus.PENDING
        self.converted_transaction_id = None
        self.converted_amount = None
        self.converted_at = None


class BalanceType(str, Enum):
    CASH = "CASH"
    BANK = "BANK"


class Balance(Base, TimestampMixin):
    """Running total for the owner's cash or one of their bank accounts."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("user.id"), nullable=False)
    type: Mapped[BalanceType] = mapped_column(SAEnum(BalanceType, name="balance_type"), nullable=False)
    bank_id: Mapped[int | None] = mapped_column(ForeignKey("bank.id"))
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 4), nullable=False, default=0)
    is_manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    bank: Mapped["Bank | None"] = relationship("Bank", foreign_keys=[bank_id])

    __table_args__ = (
        UniqueConstraint("user_id", "type", "bank_id", name="uq_balance_account"),
        CheckConstraint(
            "(type = 'CASH' AND bank_id IS NULL) OR (type = 'BANK' AND bank_id IS NOT NULL)",
            name="ck_balance_bank_link",
        ),
    )
