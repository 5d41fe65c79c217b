"""Logging setup for the ``kakeibo`` package.

``configure_logging`` attaches a single stdout handler to the package logger
and is meant to be called once by entry points (the FastAPI app, the batch
job). Library modules only call ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger.json import JsonFormatter

from .config import settings

_PKG_LOGGER_NAME = "kakeibo"
_CONFIGURED = False


class KakeiboJsonFormatter(JsonFormatter):
    """JSON formatter adding timestamp, level and service name."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.APP_NAME


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        level = settings.LOG_LEVEL
    level = str(level).strip().upper()
    if level.isdigit():
        return int(level)
    numeric = getattr(logging, level, None)
    if isinstance(numeric, int):
        return numeric
    return logging.INFO


def configure_logging(level: int | str | None = None, *, json: bool | None = None) -> None:
    """Configure the package logger exactly once."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    logger.setLevel(_parse_level(level))

    handler = logging.StreamHandler(sys.stdout)
    use_json = settings.LOG_JSON if json is None else json
    if use_json:
        handler.setFormatter(KakeiboJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    _CONFIGURED = True
