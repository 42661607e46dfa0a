"""
Structured logging configuration.

Every log line carries the context it was emitted in:
    • HTTP requests    → request_id, method, path
    • Scheduled sends  → notification_id, channel (set by the dispatch
                         worker, so sender modules inherit it)

Production writes one JSON object per line; other environments write a
single plain text line with the context appended in brackets.

Usage:
    from backend.app.core.logging_config import log_context, setup_logging

    setup_logging()
    with log_context(notification_id=n.id, channel="slack"):
        logger.info("Posting to webhook")
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

from backend.app.core.config import settings

_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes passed via ``extra=`` that are worth keeping in JSON output
_EXTRA_FIELDS = ("recipient_count", "scheduled_at", "duration_ms", "status_code")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s%(context_suffix)s"


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach fields to every record logged inside the block (nested blocks merge)."""
    token = _log_context.set({**_log_context.get(), **fields})
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextFilter(logging.Filter):
    """Copy the active log context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        ctx = _log_context.get()
        for key, value in ctx.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        record.log_context = dict(ctx)
        record.context_suffix = (
            " [" + " ".join(f"{k}={v}" for k, v in ctx.items()) + "]" if ctx else ""
        )
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record, context fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        entry.update(getattr(record, "log_context", {}))
        for key in ("notification_id", "channel", *_EXTRA_FIELDS):
            if key not in entry and hasattr(record, key):
                entry[key] = getattr(record, key)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(entry, default=str)


def setup_logging() -> None:
    """Configure the root logger for the current environment."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())
    if settings.is_production:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))
    root.addHandler(handler)

    # APScheduler logs every job run at INFO; dispatch logs its own outcome
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger — call once per module."""
    return logging.getLogger(name)
