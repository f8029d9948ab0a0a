"""JSON logging for the dashboard process.

Every module logs short snake_case events (`signal_accepted`, `persist_failed`,
`subscriber_closed`, ...) and passes context through ``extra``; the formatter
flattens those fields into one JSON object per line. Uvicorn is started with
``log_config=None`` so its access and error logs go through the same handler.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import UTC, datetime
from typing import Any

_DEFAULT_LEVEL = "INFO"
_SERVICE_NAME = "signal-dashboard"

_RESERVED_ATTRS = {
    "args",
    "exc_info",
    "exc_text",
    "message",
    "msg",
    "levelno",
    "levelname",
    "name",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "stack_info",
    "taskName",
}


class JsonFormatter(logging.Formatter):
    """Render a record as one JSON line tagged with the service name."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "service": _SERVICE_NAME,
            "message": record.getMessage(),
        }

        # Merge extra properties if they are simple types
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                payload[key] = value
            except (TypeError, ValueError):
                payload[key] = repr(value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str | None = None) -> None:
    """Configure root logger with JSON formatter."""

    root = logging.getLogger()
    resolved = (level or os.environ.get("LOG_LEVEL") or _DEFAULT_LEVEL).upper()
    if getattr(root, "_structured_configured", False):  # type: ignore[attr-defined]
        if level is not None:
            root.setLevel(resolved)
        return

    root.setLevel(resolved)
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)

    root._structured_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
