"""
JSON logs for the ledger service.

Every line carries the record's own timestamp, the level, the service name and
the calling user when known. Warnings about ledger rows the aggregator had to
skip group their row index, id and reason under ``skipped_record`` so a log
query can find every unreadable row without knowing which module logged it.
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

SERVICE_NAME = "ledgerlens"
LOG_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"
SKIPPED_RECORD_FIELDS = ("record_index", "record_id", "reason")


class LedgerJsonFormatter(jsonlogger.JsonFormatter):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        # Amounts and dates show up in extras as Decimal/date values.
        kwargs.setdefault("json_default", str)
        super().__init__(*args, **kwargs)

    def add_fields(
        self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME

        skipped = {
            field: log_record.pop(field)
            for field in SKIPPED_RECORD_FIELDS
            if field in log_record
        }
        if skipped:
            log_record["skipped_record"] = skipped


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LedgerJsonFormatter(LOG_FORMAT))
    root.addHandler(handler)
