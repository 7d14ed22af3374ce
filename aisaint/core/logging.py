"""
Structured logging for the `aisaint` logger.

- JSON lines in production, `key=value` lines elsewhere
- request_id bound per request through a context variable and stamped
  onto every record by RequestContextFilter
- log_event() for chat/storage events with bounded field sizes
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

LOGGER_NAME = "aisaint"
MAX_FIELD_LENGTH = 500

_request_id: ContextVar[Optional[str]] = ContextVar("aisaint_request_id", default=None)

# Record attributes rendered by both formatters, in this order
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "conversation_id",
    "event_type",
    "error_code",
    "operation",
    "tier",
    "status",
)


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    rid = _request_id.get()
    return default if rid is None else rid


@contextmanager
def request_context(request_id: str) -> Iterator[str]:
    """Bind request_id for everything logged inside the block."""
    token = _request_id.set(request_id)
    try:
        yield request_id
    finally:
        _request_id.reset(token)


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    for ceiling, label in ((10, "<10ms"), (100, "10-100ms"), (500, "100-500ms"), (1000, "500-1000ms")):
        if latency_ms < ceiling:
            return label
    return ">=1000ms"


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


def _iso(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _context(record: logging.LogRecord) -> dict:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": _iso(record),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        line.update(_context(record))
        if record.exc_info:
            line["exc"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


class KeyValueFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        pairs = " ".join(f"{key}={value}" for key, value in _context(record).items())
        text = f"{_iso(record)} {record.levelname:<7} {record.getMessage()}"
        if pairs:
            text = f"{text} {pairs}"
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        return text


def configure_logging(env: str = "development", level: int = logging.INFO) -> logging.Logger:
    """Install a single stdout handler on the aisaint logger. Safe to call twice."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if env.lower() == "production" else KeyValueFormatter())
    handler.addFilter(RequestContextFilter())
    logger.handlers = [handler]
    logger.propagate = True
    return logger


def _bounded(value):
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    text = str(value)
    if len(text) > MAX_FIELD_LENGTH:
        return text[:MAX_FIELD_LENGTH] + "...<truncated>"
    return text


def log_event(
    level: str,
    event: str,
    *,
    user_id: Optional[str] = None,
    conversation_id: Optional[str] = None,
    error_code: Optional[str] = None,
    **fields,
) -> None:
    """Log one structured event on the aisaint logger.

    Extra keyword fields are attached to the record, with long values cut
    to MAX_FIELD_LENGTH characters.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        configure_logging(os.getenv("ENV", "development"))

    extra = {key: _bounded(value) for key, value in fields.items()}
    extra.update(
        request_id=get_request_id(),
        user_id=user_id,
        conversation_id=conversation_id,
        error_code=error_code,
    )
    logger.log(logging.getLevelName(level.upper()), event, extra=extra)
