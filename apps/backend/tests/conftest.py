from __future__ import annotations

import os
import tempfile
from decimal import Decimal
from types import SimpleNamespace
from typing import Generator, Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from kakeibo.core.database import Base, enable_sqlite_pragmas, get_db
from kakeibo.main import app
from kakeibo import models


@pytest.fixture(scope="session")
def test_db_url() -> Generator[str, Any, Any]:
    # temporary file so the developer database is never touched
    fd, path = tempfile.mkstemp(prefix="kakeibo_test_", suffix=".sqlite3")
    os.close(fd)
    url = f"sqlite:///{path}"
    yield url
    for suffix in ("", "-wal", "-shm"):
        try:
            os.remove(path + suffix)
        except OSError:
            pass


@pytest.fixture(scope="session")
def engine(test_db_url: str):
    eng = create_engine(test_db_url, connect_args={"check_same_thread": False})
    enable_sqlite_pragmas(eng)
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Any, Any, Any]:
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = TestingSessionLocal()
    # demo owner (id 1) plus a cash payment method
    user = models.User(email="demo@example.com", name="Demo", is_active=True)
    session.add(user)
    session.flush()
    session.add(models.PaymentMethod(user_id=user.id, name="現金", type=models.PaymentMethodType.CASH))
    session.commit()

    try:
        yield session
    finally:
        session.close()
        # wipe all rows (SQLAlchemy 2.x style)
        with engine.begin() as conn:
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
            for tbl in reversed(Base.metadata.sorted_tables):
                conn.execute(tbl.delete())
            if engine.dialect.name == "sqlite":
                conn.exec_driver_sql("PRAGMA foreign_keys=ON")


@pytest.fixture(autouse=True)
def override_dependency(db_session):
    # FastAPI DI override
    def _get_db_override():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db_override
    yield
    app.dependency_overrides.clear()


@pytest.fixture()
def client(db_session):
    from fastapi.testclient import TestClient
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def demo_user(db_session) -> models.User:
    return db_session.query(models.User).filter_by(email="demo@example.com").one()


def make_bank(db, user_id: int, name: str, *, method_active: bool = True) -> SimpleNamespace:
    bank = models.Bank(user_id=user_id, name=name)
    db.add(bank)
    db.flush()
    method = models.PaymentMethod(
        user_id=user_id,
        name=f"{name} 口座",
        type=models.PaymentMethodType.BANK,
        bank_id=bank.id,
        is_active=method_active,
    )
    db.add(method)
    db.commit()
    return SimpleNamespace(bank=bank, method=method)


def make_card(
    db,
    user_id: int,
    bank: models.Bank,
    name: str,
    *,
    closing_day: int = 15,
    withdrawal_day: int = 27,
    withdrawal_month_offset: int = 1,
) -> SimpleNamespace:
    card = models.Card(
        user_id=user_id,
        name=name,
        closing_day=closing_day,
        withdrawal_day=withdrawal_day,
        withdrawal_month_offset=withdrawal_month_offset,
        withdrawal_bank_id=bank.id,
    )
    db.add(card)
    db.flush()
    method = models.PaymentMethod(
        user_id=user_id,
        name=name,
        type=models.PaymentMethodType.CARD,
        card_id=card.id,
    )
    db.add(method)
    db.commit()
    return SimpleNamespace(card=card, method=method)


def make_charge(
    db,
    user_id: int,
    card_method: models.PaymentMethod,
    occurred_at,
    amount,
    withdrawal_date,
    *,
    store: str | None = "スーパー",
) -> models.Transaction:
    charge = models.Transaction(
        user_id=user_id,
        occurred_at=occurred_at,
        payment_method_id=card_method.id,
        store=store,
        type=models.TxnType.EXPENSE,
        amount=Decimal(str(amount)),
        card_withdrawal_date=withdrawal_date,
        withdrawal_status=models.WithdrawalStatus.PENDING,
    )
    db.add(charge)
    db.commit()
    return charge


@pytest.fixture()
def card_setup(db_session, demo_user) -> SimpleNamespace:
    """Bank "三井住友" with its BANK payment method and card "楽天カード" (15/27/+1) debiting it."""
    bank = make_bank(db_session, demo_user.id, "三井住友")
    card = make_card(db_session, demo_user.id, bank.bank, "楽天カード")
    return SimpleNamespace(
        user=demo_user,
        bank=bank.bank,
        bank_method=bank.method,
        card=card.card,
        card_method=card.method,
    )
