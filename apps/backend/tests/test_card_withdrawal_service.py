"""
カード引き落とし処理 (CardWithdrawalService) のテスト
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from kakeibo import models
from kakeibo.services import BalanceLedgerService, CardWithdrawalService
from kakeibo.services.exceptions import (
    ChargeAlreadyConvertedError,
    ChargeNotConvertedError,
    ChargeNotFoundError,
    WithdrawalBankUnavailableError,
)

from conftest import make_bank, make_card, make_charge

TODAY = date(2024, 3, 1)


class FailingLedger(BalanceLedgerService):
    def apply_delta(self, *args, **kwargs):
        raise RuntimeError("ledger unavailable")


def bank_balance(db, user_id: int, bank_id: int) -> Decimal:
    return BalanceLedgerService(db).get_balance(user_id, models.BalanceType.BANK, bank_id)


def generated_for(db, charge_id: int) -> list[models.Transaction]:
    return db.query(models.Transaction).filter(models.Transaction.source_charge_id == charge_id).all()


class TestProcessOverdueCharges:
    @pytest.fixture
    def service(self, db_session):
        return CardWithdrawalService(db_session, today=lambda: TODAY)

    def test_converts_only_due_charges(self, db_session, service, card_setup):
        user_id = card_setup.user.id
        due = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        not_yet = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 20), 8000, date(2024, 3, 27))

        result = service.process_overdue_charges(user_id)

        assert result.success is True
        assert result.errors == []
        assert result.processed_count == 1
        processed = result.processed[0]
        assert processed.charge_id == due.id
        assert processed.amount == 5000
        assert processed.withdrawal_date == date(2024, 2, 27)
        assert result.converted_transactions == [processed.bank_transaction_id]

        db_session.expire_all()
        bank_txn = db_session.get(models.Transaction, processed.bank_transaction_id)
        assert bank_txn.type == models.TxnType.EXPENSE
        assert bank_txn.occurred_at == date(2024, 2, 27)
        assert bank_txn.amount == Decimal("5000")
        assert bank_txn.payment_method_id == card_setup.bank_method.id
        assert bank_txn.source_charge_id == due.id
        assert bank_txn.store == "楽天カード"

        charge = db_session.get(models.Transaction, due.id)
        assert charge.withdrawal_status == models.WithdrawalStatus.CONVERTED
        assert charge.converted_transaction_id == bank_txn.id
        assert charge.converted_amount == Decimal("5000")
        assert charge.converted_at is not None
        state = charge.withdrawal_state
        assert isinstance(state, models.ConvertedWithdrawal)
        assert state.bank_transaction_id == bank_txn.id

        assert db_session.get(models.Transaction, not_yet.id).withdrawal_status == models.WithdrawalStatus.PENDING
        assert bank_balance(db_session, user_id, card_setup.bank.id) == Decimal("-5000")

    def test_charge_due_today_is_processed(self, db_session, service, card_setup):
        make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 1000, TODAY)
        assert service.process_overdue_charges(card_setup.user.id).processed_count == 1

    def test_second_run_processes_nothing(self, db_session, service, card_setup):
        user_id = card_setup.user.id
        make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 12), 700, date(2024, 2, 27))

        first = service.process_overdue_charges(user_id)
        second = service.process_overdue_charges(user_id)

        assert first.processed_count == 2
        assert second.processed_count == 0
        assert second.errors == []
        generated = (
            db_session.query(models.Transaction)
            .filter(models.Transaction.source_charge_id.is_not(None))
            .count()
        )
        assert generated == 2
        assert bank_balance(db_session, user_id, card_setup.bank.id) == Decimal("-5700")

    def test_failing_charge_does_not_abort_batch(self, db_session, service, card_setup):
        user_id = card_setup.user.id
        closed = make_bank(db_session, user_id, "閉鎖銀行", method_active=False)
        other_card = make_card(db_session, user_id, closed.bank, "旧カード")
        ok = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        broken = make_charge(db_session, user_id, other_card.method, date(2024, 1, 11), 3000, date(2024, 2, 27))

        result = service.process_overdue_charges(user_id)

        assert result.success is True
        assert result.processed_count == 1
        assert result.processed[0].charge_id == ok.id
        assert result.errors == [f"Transaction {broken.id}: No active payment method for the withdrawal bank"]
        db_session.expire_all()
        assert db_session.get(models.Transaction, broken.id).withdrawal_status == models.WithdrawalStatus.PENDING
        assert generated_for(db_session, broken.id) == []

    def test_storage_failure_is_reported_per_charge(self, db_session, card_setup):
        user_id = card_setup.user.id
        charge = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        service = CardWithdrawalService(db_session, FailingLedger(db_session), today=lambda: TODAY)

        result = service.process_overdue_charges(user_id)

        assert result.processed_count == 0
        assert result.errors == [f"Transaction {charge.id}: ledger unavailable"]

    def test_unexpected_failure_rolls_back_before_next_charge(self, db_session, card_setup, monkeypatch):
        user_id = card_setup.user.id
        other_bank = make_bank(db_session, user_id, "みずほ")
        other_card = make_card(db_session, user_id, other_bank.bank, "JCB")
        broken = make_charge(db_session, user_id, other_card.method, date(2024, 1, 5), 3000, date(2024, 2, 26))
        ok = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))

        class BrokenLookupService(CardWithdrawalService):
            def _withdrawal_payment_method(self, card, user_id):
                if card.id == other_card.card.id:
                    raise RuntimeError("connection reset")
                return super()._withdrawal_payment_method(card, user_id)

        rollbacks = []
        original_rollback = db_session.rollback

        def counting_rollback():
            rollbacks.append(True)
            original_rollback()

        monkeypatch.setattr(db_session, "rollback", counting_rollback)
        service = BrokenLookupService(db_session, today=lambda: TODAY)

        result = service.process_overdue_charges(user_id)

        assert rollbacks
        assert result.errors == [f"Transaction {broken.id}: connection reset"]
        assert [p.charge_id for p in result.processed] == [ok.id]

    def test_other_owners_charges_are_ignored(self, db_session, service, card_setup):
        other = models.User(email="other@example.com", is_active=True)
        db_session.add(other)
        db_session.commit()
        make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))

        assert service.process_overdue_charges(other.id).processed_count == 0
        assert service.find_overdue_charges(card_setup.user.id)[0].user_id == card_setup.user.id


class TestConvertCharge:
    @pytest.fixture
    def service(self, db_session):
        return CardWithdrawalService(db_session, today=lambda: TODAY)

    def test_converting_twice_fails_already_converted(self, db_session, service, card_setup):
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        service.convert_charge(charge.id, card_setup.user.id)

        with pytest.raises(ChargeAlreadyConvertedError) as excinfo:
            service.convert_charge(charge.id, card_setup.user.id)
        assert excinfo.value.code == "already_converted"
        assert len(generated_for(db_session, charge.id)) == 1

    def test_unknown_or_foreign_charge_is_not_found(self, db_session, service, card_setup):
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        with pytest.raises(ChargeNotFoundError):
            service.convert_charge(999999, card_setup.user.id)
        with pytest.raises(ChargeNotFoundError):
            service.convert_charge(charge.id, card_setup.user.id + 1000)

    def test_non_card_transaction_is_not_found(self, db_session, service, card_setup):
        income = models.Transaction(
            user_id=card_setup.user.id,
            occurred_at=date(2024, 1, 25),
            payment_method_id=card_setup.bank_method.id,
            type=models.TxnType.INCOME,
            amount=Decimal("250000"),
        )
        db_session.add(income)
        db_session.commit()
        with pytest.raises(ChargeNotFoundError):
            service.convert_charge(income.id, card_setup.user.id)

    def test_missing_withdrawal_payment_method(self, db_session, service, card_setup):
        card_setup.bank_method.is_active = False
        db_session.commit()
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))

        with pytest.raises(WithdrawalBankUnavailableError):
            service.convert_charge(charge.id, card_setup.user.id)

    def test_ledger_failure_rolls_back_everything(self, db_session, card_setup):
        user_id = card_setup.user.id
        charge = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        charge_id = charge.id
        service = CardWithdrawalService(db_session, FailingLedger(db_session), today=lambda: TODAY)

        with pytest.raises(RuntimeError):
            service.convert_charge(charge_id, user_id)

        db_session.expire_all()
        reloaded = db_session.get(models.Transaction, charge_id)
        assert reloaded.withdrawal_status == models.WithdrawalStatus.PENDING
        assert reloaded.converted_transaction_id is None
        assert generated_for(db_session, charge_id) == []
        assert db_session.query(models.Transaction).count() == 1
        assert db_session.query(models.Balance).count() == 0

    def test_missing_withdrawal_date_uses_current_card_config(self, db_session, service, card_setup):
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 4200, None)

        bank_txn = service.convert_charge(charge.id, card_setup.user.id)

        assert bank_txn.occurred_at == date(2024, 2, 27)
        db_session.expire_all()
        assert db_session.get(models.Transaction, charge.id).card_withdrawal_date == date(2024, 2, 27)

    def test_stored_date_survives_card_config_change(self, db_session, service, card_setup):
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 4200, date(2024, 2, 27))
        card_setup.card.withdrawal_day = 10
        db_session.commit()

        bank_txn = service.convert_charge(charge.id, card_setup.user.id)
        assert bank_txn.occurred_at == date(2024, 2, 27)


class TestRevertConversion:
    @pytest.fixture
    def service(self, db_session):
        return CardWithdrawalService(db_session, today=lambda: TODAY)

    def test_revert_restores_pending_and_balance(self, db_session, service, card_setup):
        user_id = card_setup.user.id
        charge = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        bank_txn = service.convert_charge(charge.id, user_id)
        bank_txn_id = bank_txn.id
        assert bank_balance(db_session, user_id, card_setup.bank.id) == Decimal("-5000")

        reverted = service.revert_conversion(charge.id, user_id)

        assert reverted.withdrawal_status == models.WithdrawalStatus.PENDING
        assert reverted.converted_transaction_id is None
        assert reverted.converted_amount is None
        assert reverted.converted_at is None
        assert reverted.card_withdrawal_date == date(2024, 2, 27)
        assert isinstance(reverted.withdrawal_state, models.PendingWithdrawal)
        assert db_session.get(models.Transaction, bank_txn_id) is None
        assert bank_balance(db_session, user_id, card_setup.bank.id) == Decimal("0")

        # and it can be converted again
        assert service.process_overdue_charges(user_id).processed_count == 1

    def test_revert_pending_charge_fails(self, db_session, service, card_setup):
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        with pytest.raises(ChargeNotConvertedError):
            service.revert_conversion(charge.id, card_setup.user.id)

    def test_revert_legacy_conversion_matches_by_amount_and_date(self, db_session, service, card_setup):
        user_id = card_setup.user.id
        charge = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        charge.withdrawal_status = models.WithdrawalStatus.CONVERTED
        charge.converted_amount = Decimal("5000")
        legacy = models.Transaction(
            user_id=user_id,
            occurred_at=date(2024, 2, 28),
            payment_method_id=card_setup.bank_method.id,
            type=models.TxnType.EXPENSE,
            amount=Decimal("5000"),
            store="楽天カード",
        )
        unrelated = models.Transaction(
            user_id=user_id,
            occurred_at=date(2024, 3, 5),
            payment_method_id=card_setup.bank_method.id,
            type=models.TxnType.EXPENSE,
            amount=Decimal("5000"),
            store="家賃",
        )
        db_session.add_all([legacy, unrelated])
        db_session.commit()
        legacy_id, unrelated_id = legacy.id, unrelated.id
        BalanceLedgerService(db_session).set_balance(user_id, models.BalanceType.BANK, card_setup.bank.id, -10000)
        db_session.commit()

        service.revert_conversion(charge.id, user_id)

        assert db_session.get(models.Transaction, legacy_id) is None
        assert db_session.get(models.Transaction, unrelated_id) is not None
        assert bank_balance(db_session, user_id, card_setup.bank.id) == Decimal("-5000")

    def test_ledger_failure_during_revert_rolls_back_everything(self, db_session, card_setup):
        user_id = card_setup.user.id
        charge = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        charge_id = charge.id
        bank_txn_id = CardWithdrawalService(db_session, today=lambda: TODAY).convert_charge(charge_id, user_id).id
        service = CardWithdrawalService(db_session, FailingLedger(db_session), today=lambda: TODAY)

        with pytest.raises(RuntimeError):
            service.revert_conversion(charge_id, user_id)

        db_session.expire_all()
        reloaded = db_session.get(models.Transaction, charge_id)
        assert reloaded.withdrawal_status == models.WithdrawalStatus.CONVERTED
        assert reloaded.converted_transaction_id == bank_txn_id
        assert reloaded.converted_at is not None
        assert db_session.get(models.Transaction, bank_txn_id) is not None
        assert bank_balance(db_session, user_id, card_setup.bank.id) == Decimal("-5000")

    def test_revert_with_deleted_bank_expense_leaves_unrelated_expense_alone(self, db_session, service, card_setup):
        user_id = card_setup.user.id
        charge = make_charge(db_session, user_id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
        bank_txn = service.convert_charge(charge.id, user_id)
        db_session.delete(bank_txn)
        db_session.commit()
        rent = models.Transaction(
            user_id=user_id,
            occurred_at=date(2024, 2, 27),
            payment_method_id=card_setup.bank_method.id,
            type=models.TxnType.EXPENSE,
            amount=Decimal("5000"),
            store="家賃",
        )
        db_session.add(rent)
        db_session.commit()
        rent_id = rent.id
        balance_before = bank_balance(db_session, user_id, card_setup.bank.id)

        reverted = service.revert_conversion(charge.id, user_id)

        assert reverted.withdrawal_status == models.WithdrawalStatus.PENDING
        assert reverted.converted_at is None
        assert db_session.get(models.Transaction, rent_id) is not None
        assert bank_balance(db_session, user_id, card_setup.bank.id) == balance_before


class TestComputeAndStoreWithdrawalDate:
    def test_stores_date_for_charge_without_one(self, db_session, card_setup):
        service = CardWithdrawalService(db_session)
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2023, 12, 10), 3000, None)

        updated = service.compute_and_store_withdrawal_date(charge.id, card_setup.user.id)

        assert updated.card_withdrawal_date == date(2024, 1, 29)
        assert updated.withdrawal_status == models.WithdrawalStatus.PENDING

    def test_unknown_charge_fails(self, db_session, card_setup):
        with pytest.raises(ChargeNotFoundError):
            CardWithdrawalService(db_session).compute_and_store_withdrawal_date(424242, card_setup.user.id)

    def test_converted_charge_keeps_its_date(self, db_session, card_setup):
        service = CardWithdrawalService(db_session, today=lambda: TODAY)
        charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 3000, date(2024, 2, 27))
        service.convert_charge(charge.id, card_setup.user.id)
        with pytest.raises(ChargeAlreadyConvertedError):
            service.compute_and_store_withdrawal_date(charge.id, card_setup.user.id)
