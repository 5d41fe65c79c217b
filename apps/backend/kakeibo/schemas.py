from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from .models import BalanceType, CardType, PaymentMethodType, TxnType, WithdrawalStatus


# ---- Masters -----------------------------------------------------------------

class BankCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    branch_name: Optional[str] = Field(default=None, max_length=100)
    account_number: Optional[str] = Field(default=None, max_length=50)
    memo: Optional[str] = None
    # also register the BANK payment method card withdrawals debit through
    create_payment_method: bool = True


class BankOut(BaseModel):
    id: int
    user_id: int
    name: str
    branch_name: Optional[str]
    account_number: Optional[str]
    memo: Optional[str]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class CardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CardType = CardType.CREDIT_CARD
    closing_day: int = Field(..., ge=1, le=31)
    withdrawal_day: int = Field(..., ge=1, le=31)
    withdrawal_month_offset: int = Field(default=1, ge=1, le=2)
    withdrawal_bank_id: int = Field(..., gt=0)
    memo: Optional[str] = None
    # also register the CARD payment method purchases are recorded with
    create_payment_method: bool = True


class CardOut(BaseModel):
    id: int
    user_id: int
    name: str
    type: CardType
    closing_day: int
    withdrawal_day: int
    withdrawal_month_offset: int
    withdrawal_bank_id: int
    memo: Optional[str]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class PaymentMethodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: PaymentMethodType
    card_id: Optional[int] = None
    bank_id: Optional[int] = None
    memo: Optional[str] = None

    @model_validator(mode="after")
    def _check_links(self):
        if self.type == PaymentMethodType.CARD:
            if self.card_id is None:
                raise ValueError("card_id is required for CARD payment methods")
            self.bank_id = None
        elif self.type == PaymentMethodType.BANK:
            if self.bank_id is None:
                raise ValueError("bank_id is required for BANK payment methods")
            self.card_id = None
        else:
            self.card_id = None
            self.bank_id = None
        return self


class PaymentMethodOut(BaseModel):
    id: int
    user_id: int
    name: str
    type: PaymentMethodType
    card_id: Optional[int]
    bank_id: Optional[int]
    memo: Optional[str]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# ---- Transactions --------------------------------------------------------------

class TransactionCreate(BaseModel):
    occurred_at: date
    payment_method_id: int = Field(..., gt=0)
    type: TxnType = TxnType.EXPENSE
    amount: float = Field(..., gt=0)
    store: Optional[str] = Field(default=None, max_length=200)
    purpose: Optional[str] = Field(default=None, max_length=200)


class TransactionFilter(BaseModel):
    start: Optional[date] = None
    end: Optional[date] = None
    payment_method_id: Optional[int] = None
    type: Optional[TxnType] = None
    withdrawal_status: Optional[WithdrawalStatus] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=50, ge=1, le=500)

    @model_validator(mode="after")
    def _check_range(self):
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must be on or before end")
        return self


class TransactionOut(BaseModel):
    id: int
    user_id: int
    occurred_at: date
    payment_method_id: int
    store: Optional[str]
    purpose: Optional[str]
    type: TxnType
    amount: float
    card_withdrawal_date: Optional[date]
    withdrawal_status: Optional[WithdrawalStatus]
    converted_amount: Optional[float]
    converted_at: Optional[datetime]
    converted_transaction_id: Optional[int]
    source_charge_id: Optional[int]

    model_config = ConfigDict(from_attributes=True)

    @computed_field(return_type=bool)
    def is_card_charge(self) -> bool:
        return self.withdrawal_status is not None


class TransactionPage(BaseModel):
    items: list[TransactionOut]
    total: int
    page: int
    page_size: int


# ---- Card withdrawals ------------------------------------------------------------

class ProcessedCharge(BaseModel):
    charge_id: int
    bank_transaction_id: int
    amount: float
    withdrawal_date: date


class CardWithdrawalResult(BaseModel):
    success: bool = True
    processed_count: int = 0
    errors: list[str] = Field(default_factory=list)
    processed: list[ProcessedCharge] = Field(default_factory=list)

    @computed_field(return_type=list[int])
    def converted_transactions(self) -> list[int]:
        return [item.bank_transaction_id for item in self.processed]


class PendingChargeOut(TransactionOut):
    card_name: Optional[str] = None
    is_overdue: bool = False
    days_until: Optional[int] = None


class WithdrawalDateOut(BaseModel):
    charge_id: int
    card_withdrawal_date: date
    withdrawal_status: WithdrawalStatus


class ScheduledCharge(BaseModel):
    charge_id: int
    occurred_at: date
    card_id: int
    card_name: str
    store: Optional[str]
    amount: float


class BankWithdrawal(BaseModel):
    bank_id: int
    bank_name: str
    total: float
    charges: list[ScheduledCharge]


class ScheduleDay(BaseModel):
    withdrawal_date: date
    is_overdue: bool
    total: float
    banks: list[BankWithdrawal]


class WithdrawalSchedule(BaseModel):
    start_date: Optional[date]
    end_date: Optional[date]
    total: float
    days: list[ScheduleDay]


# ---- Balances ------------------------------------------------------------------

class BalanceOut(BaseModel):
    id: int
    user_id: int
    type: BalanceType
    bank_id: Optional[int]
    amount: float
    is_manual: bool

    model_config = ConfigDict(from_attributes=True)


class BalanceUpdate(BaseModel):
    type: BalanceType
    bank_id: Optional[int] = None
    amount: float

    @model_validator(mode="after")
    def _check_bank(self):
        if self.type == BalanceType.BANK and self.bank_id is None:
            raise ValueError("bank_id is required for BANK balances")
        if self.type == BalanceType.CASH:
            self.bank_id = None
        return self


class BankBalanceOut(BaseModel):
    bank_id: int
    bank_name: str
    branch_name: Optional[str]
    balance: float


class BalanceSummaryOut(BaseModel):
    cash_balance: float
    bank_balances: list[BankBalanceOut]
    total_balance: float


class HealthOut(BaseModel):
    status: str
    env: str
