"""initial schema: masters, transactions with card withdrawal state, balances

Revision ID: 7a1e3c9d2b40
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "7a1e3c9d2b40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "bank",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("branch_name", sa.String(length=100), nullable=True),
        sa.Column("account_number", sa.String(length=50), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ),
    )
    op.create_index("ix_bank_user", "bank", ["user_id"], unique=False)

    op.create_table(
        "card",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", sa.Enum("CREDIT_CARD", "PREPAID_CARD", name="card_type"), nullable=False),
        sa.Column("closing_day", sa.Integer(), nullable=False),
        sa.Column("withdrawal_day", sa.Integer(), nullable=False),
        sa.Column("withdrawal_month_offset", sa.Integer(), nullable=False),
        sa.Column("withdrawal_bank_id", sa.Integer(), nullable=False),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ),
        sa.ForeignKeyConstraint(["withdrawal_bank_id"], ["bank.id"], ),
        sa.CheckConstraint("closing_day BETWEEN 1 AND 31", name="ck_card_closing_day"),
        sa.CheckConstraint("withdrawal_day BETWEEN 1 AND 31", name="ck_card_withdrawal_day"),
        sa.CheckConstraint("withdrawal_month_offset IN (1, 2)", name="ck_card_withdrawal_month_offset"),
    )

    op.create_table(
        "paymentmethod",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", sa.Enum("CASH", "CARD", "BANK", name="payment_method_type"), nullable=False),
        sa.Column("card_id", sa.Integer(), nullable=True),
        sa.Column("bank_id", sa.Integer(), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ),
        sa.ForeignKeyConstraint(["card_id"], ["card.id"], ),
        sa.ForeignKeyConstraint(["bank_id"], ["bank.id"], ),
        sa.UniqueConstraint("user_id", "name", name="uq_payment_method_name"),
        sa.CheckConstraint("type != 'CARD' OR card_id IS NOT NULL", name="ck_payment_method_card_link"),
        sa.CheckConstraint("type != 'BANK' OR bank_id IS NOT NULL", name="ck_payment_method_bank_link"),
    )

    op.create_table(
        "transaction",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.Date(), nullable=False),
        sa.Column("payment_method_id", sa.Integer(), nullable=False),
        sa.Column("store", sa.String(length=200), nullable=True),
        sa.Column("purpose", sa.String(length=200), nullable=True),
        sa.Column("type", sa.Enum("INCOME", "EXPENSE", name="txn_type"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("card_withdrawal_date", sa.Date(), nullable=True),
        sa.Column("withdrawal_status", sa.Enum("PENDING", "CONVERTED", name="withdrawal_status"), nullable=True),
        sa.Column("converted_amount", sa.Numeric(18, 4), nullable=True),
        sa.Column("converted_at", sa.DateTime(), nullable=True),
        sa.Column("converted_transaction_id", sa.Integer(), nullable=True),
        sa.Column("source_charge_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ),
        sa.ForeignKeyConstraint(["payment_method_id"], ["paymentmethod.id"], ),
        sa.ForeignKeyConstraint(["converted_transaction_id"], ["transaction.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["source_charge_id"], ["transaction.id"], ondelete="SET NULL"),
        sa.CheckConstraint("amount > 0", name="ck_txn_amount_positive"),
        sa.CheckConstraint(
            "withdrawal_status IS NULL OR withdrawal_status != 'CONVERTED'"
            " OR (card_withdrawal_date IS NOT NULL AND converted_amount IS NOT NULL)",
            name="ck_txn_converted_requires_date",
        ),
        sa.CheckConstraint(
            "withdrawal_status = 'CONVERTED' OR converted_transaction_id IS NULL",
            name="ck_txn_link_only_when_converted",
        ),
        sa.CheckConstraint("source_charge_id IS NULL OR source_charge_id != id", name="ck_txn_not_source_self"),
    )
    op.create_index("ix_txn_user_date", "transaction", ["user_id", "occurred_at"], unique=False)
    op.create_index(
        "ix_txn_user_withdrawal",
        "transaction",
        ["user_id", "withdrawal_status", "card_withdrawal_date"],
        unique=False,
    )
    op.create_index("ix_txn_source_charge", "transaction", ["source_charge_id"], unique=False)

    op.create_table(
        "balance",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.Enum("CASH", "BANK", name="balance_type"), nullable=False),
        sa.Column("bank_id", sa.Integer(), nullable=True),
        sa.Column("amount", sa.Numeric(18, 4), nullable=False),
        sa.Column("is_manual", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"], ),
        sa.ForeignKeyConstraint(["bank_id"], ["bank.id"], ),
        sa.UniqueConstraint("user_id", "type", "bank_id", name="uq_balance_account"),
        sa.CheckConstraint(
            "(type = 'CASH' AND bank_id IS NULL) OR (type = 'BANK' AND bank_id IS NOT NULL)",
            name="ck_balance_bank_link",
        ),
    )


def downgrade() -> None:
    op.drop_table("balance")
    op.drop_index("ix_txn_source_charge", table_name="transaction")
    op.drop_index("ix_txn_user_withdrawal", table_name="transaction")
    op.drop_index("ix_txn_user_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_table("paymentmethod")
    op.drop_table("card")
    op.drop_index("ix_bank_user", table_name="bank")
    op.drop_table("bank")
    op.drop_table("user")
