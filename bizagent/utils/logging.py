"""
Structured logging for the calendar service.

Production output is one JSON object per line. Development can switch to
plain text (LOG_JSON=false) without losing the correlation id. Any keyword
passed through `extra={...}` ends up in the JSON line, so call sites can add
slot_id, remote_event_id or provider without touching this module.
"""
import json
import logging
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "correlation_id"}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpcore", "httpx")


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


class CorrelationIdFilter(logging.Filter):
    """Stamps the current correlation id onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True


def record_extras(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_") and value is not None
    }


class StructuredJsonFormatter(logging.Formatter):
    """
    {"timestamp": "...", "level": "INFO", "correlation_id": "...",
     "module": "...", "message": "...", "slot_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        cid = getattr(record, "correlation_id", None)
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "correlation_id": None if cid in (None, "-") else cid,
            "module": record.name,
            "message": record.getMessage(),
        }
        entry.update(record_extras(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        # Slovak slot titles stay readable in log search
        return json.dumps(entry, default=str, ensure_ascii=False)


def configure_structured_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Install a single stdout handler on the root logger. Call once at startup."""
    handler = logging.StreamHandler()
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(StructuredJsonFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
