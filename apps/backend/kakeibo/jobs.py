"""Batch entry point: convert every user's due card charges.

Meant to be run once a day by cron or a systemd timer::

    python -m kakeibo.jobs
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from . import models, schemas
from .core.database import SessionLocal
from .core.logging import configure_logging
from .services import CardWithdrawalService

logger = logging.getLogger(__name__)


def run_card_withdrawals(session_factory: Callable[[], Session] = SessionLocal) -> dict[int, schemas.CardWithdrawalResult]:
    """Process overdue charges for each active user, one session per user.

    A user whose run fails is recorded with ``success=False`` and the job
    moves on to the next user.
    """
    with session_factory() as db:
        user_ids = [
            row.id
            for row in db.query(models.User.id).filter(models.User.is_active.is_(True)).order_by(models.User.id)
        ]

    results: dict[int, schemas.CardWithdrawalResult] = {}
    for user_id in user_ids:
        with session_factory() as db:
            try:
                results[user_id] = CardWithdrawalService(db).process_overdue_charges(user_id)
            except Exception as exc:
                db.rollback()
                logger.exception("card withdrawal run failed for user", extra={"user_id": user_id})
                results[user_id] = schemas.CardWithdrawalResult(success=False, errors=[f"User {user_id}: {exc}"])

    logger.info(
        "card withdrawal job finished",
        extra={
            "users": len(results),
            "processed": sum(r.processed_count for r in results.values()),
            "failed": sum(len(r.errors) for r in results.values()),
        },
    )
    return results


def main() -> int:
    configure_logging()
    results = run_card_withdrawals()
    return 1 if any(r.errors for r in results.values()) else 0


if __name__ == "__main__":
    raise SystemExit(main())
