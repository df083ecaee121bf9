"""JSON logging for the Helpline API and its background sweeps."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pythonjsonlogger import jsonlogger

from helpline.config import ENV
from helpline.utils.time import isoformat_z

SERVICE_NAME = "helpline-api"

# Request and alert identifiers the services pass through ``extra=``.
CONTEXT_FIELDS = (
    "user_id",
    "alert_id",
    "profile_id",
    "action",
    "identity",
    "retry_after",
    "channel",
    "from_status",
    "to_status",
    "attempt",
    "job",
)

# Interval-job loggers; they log every run at INFO.
QUIET_LOGGERS = ("apscheduler", "apscheduler.scheduler", "apscheduler.executors.default")


class HelplineJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per record.

    ``timestamp``, ``level``, ``logger``, ``service`` and ``env`` are always
    present. Known identifiers from ``extra=`` are grouped under ``context``;
    any other extra keys stay at the top level.
    """

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = isoformat_z(datetime.fromtimestamp(record.created, tz=timezone.utc))
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["service"] = SERVICE_NAME
        log_record.setdefault("env", ENV)
        context = {key: log_record.pop(key) for key in CONTEXT_FIELDS if key in log_record}
        if context:
            log_record["context"] = context


def setup_logging(level: str = "INFO") -> None:
    """Route every logger through a single JSON handler on stderr."""

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
    root_logger.setLevel(level.upper())

    handler = logging.StreamHandler()
    handler.setFormatter(HelplineJsonFormatter("%(message)s"))
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level.upper())
    return logger


__all__ = ["CONTEXT_FIELDS", "HelplineJsonFormatter", "get_logger", "setup_logging"]
