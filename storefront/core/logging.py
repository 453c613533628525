"""Structured JSON logging.

Every record carries the request id and caller bound by the request
middleware (or by a task), so service code logs plain ``extra=`` fields and
still ends up correlated with the request that caused it.
"""

from __future__ import annotations

import json
import logging
import logging.config
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any

from storefront.core.config import settings

_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_log_context: ContextVar[dict[str, Any]] = ContextVar("storefront_log_context", default={})


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach ``fields`` to every record logged inside the block."""
    bound = {key: value for key, value in fields.items() if value is not None}
    token = _log_context.set({**_log_context.get(), **bound})
    try:
        yield
    finally:
        _log_context.reset(token)


def current_log_context() -> dict[str, Any]:
    return dict(_log_context.get())


class StorefrontJsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
            **_log_context.get(),
        }
        fields = {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}
        if fields:
            payload["fields"] = fields
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(level: str | None = None) -> None:
    resolved = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"json": {"()": StorefrontJsonFormatter}},
            "handlers": {"stdout": {"class": "logging.StreamHandler", "formatter": "json"}},
            "root": {"handlers": ["stdout"], "level": resolved},
            "loggers": {
                "uvicorn.access": {"handlers": ["stdout"], "level": resolved, "propagate": False},
                "sqlalchemy.engine": {"level": logging.WARNING},
                "celery": {"level": resolved},
            },
        }
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def internal_error(message: str, **context: Any) -> None:
    """Log a failure that points at a bug or a lost race rather than bad input."""
    get_logger("storefront.internal").error(message, extra={"internal": True, **context})
