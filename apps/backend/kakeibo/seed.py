from __future__ import annotations

from sqlalchemy.orm import Session

from .core.database import SessionLocal
from .models import Balance, BalanceType, PaymentMethod, PaymentMethodType, User


def seed() -> None:
    db: Session = SessionLocal()
    try:
        # demo owner
        user = db.query(User).filter_by(email="demo@example.com").first()
        if not user:
            user = User(email="demo@example.com", name="Demo", is_active=True)
            db.add(user)
            db.flush()

        # every owner pays cash
        cash = db.query(PaymentMethod).filter_by(user_id=user.id, type=PaymentMethodType.CASH).first()
        if not cash:
            db.add(PaymentMethod(user_id=user.id, name="現金", type=PaymentMethodType.CASH))

        balance = db.query(Balance).filter_by(user_id=user.id, type=BalanceType.CASH).first()
        if not balance:
            db.add(Balance(user_id=user.id, type=BalanceType.CASH, amount=0))

        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()
