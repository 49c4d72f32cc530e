"""
Structured logging for the shortlet service.

Log lines carry the per-request context (request id, caller) bound by the
middleware and the auth dependency, plus the booking / payment / ledger row a
line is about. ``LOG_JSON=true`` switches the root handler to one JSON object
per line.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from contextvars import ContextVar

_log_context: ContextVar[Dict[str, str]] = ContextVar('shortlet_log_context', default={})

PLAIN_FORMAT = '%(asctime)s %(levelname)-7s [%(request_id)s] %(name)s: %(message)s'

# Chatty third-party loggers kept at WARNING
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "stripe", "multipart")


def bind_log_context(**values: Optional[str]) -> None:
    """Attach values (request_id, user_id, ...) to every log line of the current request."""
    merged = dict(_log_context.get())
    merged.update({key: str(value) for key, value in values.items() if value})
    _log_context.set(merged)


def clear_log_context() -> None:
    _log_context.set({})


def current_log_context() -> Dict[str, str]:
    return dict(_log_context.get())


class ContextFilter(logging.Filter):
    """Copies the bound request id onto records so the plain format can print it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _log_context.get().get("request_id", "-")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, ready for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "src": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_log_context.get())

        entity_type = getattr(record, "entity_type", None)
        if entity_type:
            entry["entity"] = {"type": entity_type, "id": getattr(record, "entity_id", None)}

        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """
    Adapter with helpers for the events operators search for:
    booking status moves and webhook delivery outcomes.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs['extra'] = {**self.extra, **kwargs.get('extra', {})}
        return msg, kwargs

    def log_with_context(
        self,
        level: int,
        msg: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        **extra_data
    ):
        extra: Dict[str, Any] = {"extra_data": extra_data} if extra_data else {}
        if entity_type:
            extra["entity_type"] = entity_type
            extra["entity_id"] = entity_id
        self.log(level, msg, extra=extra)

    def booking_status_changed(self, booking_id: str, old_status: str, new_status: str, **extra_data):
        self.log_with_context(
            logging.INFO,
            f"Booking {booking_id}: {old_status} -> {new_status}",
            entity_type="booking",
            entity_id=booking_id,
            from_status=old_status,
            to_status=new_status,
            **extra_data
        )

    def webhook_outcome(self, provider: str, ledger_id: Optional[str], outcome: str, **extra_data):
        """Signature failures and failed deliveries log at WARNING, everything else at INFO."""
        level = logging.WARNING if outcome in ("invalid_signature", "failed") else logging.INFO
        self.log_with_context(
            level,
            f"{provider} webhook {outcome}",
            entity_type="payment_webhook_event",
            entity_id=ledger_id,
            provider=provider,
            outcome=outcome,
            **extra_data
        )


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Install a single stdout handler on the root and uvicorn loggers.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        json_format: JSON lines (production) instead of the plain format
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).handlers = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(name), {})
