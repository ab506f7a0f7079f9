import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Mapping

from http_handlers.core.transaction import TRANSACTION_ID_KEY, transaction_id_var

LOG_FORMAT = (
    "%(asctime)s %(levelname)s %(name)s "
    "transaction_id=%(transaction_id)s %(message)s"
)

ACCESS_LOGGER_NAME = "http_handlers.access"


class TransactionIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, TRANSACTION_ID_KEY):
            record.transaction_id = transaction_id_var.get() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record.

    The structured ``fields`` of the record come first; ``level``,
    ``service_name`` and ``time`` are always stamped here, so callers never
    set them.
    """

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = dict(getattr(record, "fields", None) or {})

        message = record.getMessage()
        if message:
            entry["msg"] = message
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)

        transaction_id = getattr(record, TRANSACTION_ID_KEY, "-")
        if transaction_id != "-":
            entry.setdefault(TRANSACTION_ID_KEY, transaction_id)

        entry["level"] = record.levelname.lower()
        entry["service_name"] = self.service_name
        entry["time"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        return json.dumps(entry, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """Logger carrying a set of fields that end up on every record it emits."""

    def __init__(self, logger: logging.Logger, fields: Mapping[str, Any] | None = None):
        super().__init__(logger, dict(fields or {}))

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        extra["fields"] = {**self.extra, **extra.get("fields", {})}
        return msg, kwargs

    @property
    def fields(self) -> dict[str, Any]:
        return dict(self.extra)

    def with_field(self, key: str, value: Any) -> "StructuredLogger":
        return StructuredLogger(self.logger, {**self.extra, key: value})

    def with_fields(self, fields: Mapping[str, Any]) -> "StructuredLogger":
        return StructuredLogger(self.logger, {**self.extra, **fields})

    def with_transaction_id(self, transaction_id: str) -> "StructuredLogger":
        return self.with_field(TRANSACTION_ID_KEY, transaction_id)

    def with_uuid(self, uuid: str) -> "StructuredLogger":
        return self.with_field("uuid", uuid)


def get_logger(name: str = ACCESS_LOGGER_NAME) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name))


def configure_logging(
    level: str = "INFO",
    service_name: str = "http-handlers",
    json_format: bool = True,
) -> None:
    root = logging.getLogger()
    root.setLevel(level)

    # already configured, avoid duplicate handlers
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)

    if json_format:
        formatter = JSONFormatter(service_name)
    else:
        formatter = logging.Formatter(
            LOG_FORMAT,
            defaults={TRANSACTION_ID_KEY: "-"},
        )
    handler.setFormatter(formatter)

    # the filter sits on the handler so records from any logger get the ID
    handler.addFilter(TransactionIdFilter())

    root.addHandler(handler)
