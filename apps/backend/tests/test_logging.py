import json
import logging
from datetime import date

from pythonjsonlogger.json import JsonFormatter

from kakeibo.core.config import settings
from kakeibo.core.logging import KakeiboJsonFormatter
from kakeibo.services import CardWithdrawalService

from conftest import make_charge


def test_json_formatter_emits_extra_fields():
    formatter = KakeiboJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord(
        name="kakeibo.services.card_withdrawal_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="card charge converted",
        args=(),
        exc_info=None,
    )
    record.charge_id = 7
    record.amount = "5000"

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "card charge converted"
    assert payload["level"] == "INFO"
    assert payload["service"] == settings.APP_NAME
    assert payload["charge_id"] == 7
    assert payload["amount"] == "5000"
    assert "timestamp" in payload


def test_conversion_is_logged_with_context(caplog, db_session, card_setup):
    charge = make_charge(db_session, card_setup.user.id, card_setup.card_method, date(2024, 1, 10), 5000, date(2024, 2, 27))
    service = CardWithdrawalService(db_session, today=lambda: date(2024, 3, 1))

    with caplog.at_level(logging.INFO, logger="kakeibo"):
        bank_txn = service.convert_charge(charge.id, card_setup.user.id)

    records = [r for r in caplog.records if r.getMessage() == "card charge converted"]
    assert len(records) == 1
    assert records[0].charge_id == charge.id
    assert records[0].bank_transaction_id == bank_txn.id
    assert records[0].user_id == card_setup.user.id


def test_formatter_uses_current_json_module():
    assert issubclass(KakeiboJsonFormatter, JsonFormatter)
