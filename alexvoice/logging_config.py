"""Logging for the assistant service.

Development gets one colored line per record, tagged with the request id
and, for stage timings, the stage and its duration. Anything else gets
NDJSON with the same fields as top-level keys.
"""

from __future__ import annotations

import json
import logging
import logging.config
import traceback
from datetime import datetime, timezone
from typing import Any

# Per-request attributes passed through `extra=` by the router and telemetry
REQUEST_FIELDS = ("request_id", "method", "path", "status_code")
PIPELINE_FIELDS = ("stage", "command", "upstream", "duration_ms")

NOISY_LOGGERS = ("botocore", "httpx", "httpcore", "groq", "uvicorn.access")


def record_fields(record: logging.LogRecord) -> dict[str, Any]:
    """The request and pipeline attributes actually set on a record."""
    fields: dict[str, Any] = {}
    for key in REQUEST_FIELDS + PIPELINE_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            fields[key] = value
    return fields


def _timestamp(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class JSONFormatter(logging.Formatter):
    """One JSON object per record: ts, level, logger, msg, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": _timestamp(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **record_fields(record),
        }

        if record.levelno >= logging.WARNING:
            entry.update(file=record.pathname, line=record.lineno, func=record.funcName)

        exc = record.exc_info[1] if record.exc_info else None
        if exc is not None:
            entry["exception"] = {
                "type": type(exc).__name__,
                "message": str(exc),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Colored single-line output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        fields = record_fields(record)

        line = f"{color}{_timestamp(record):%H:%M:%S} {record.levelname:<8}{self.RESET} {record.name}"
        if "request_id" in fields:
            line += f" [{fields['request_id']}]"
        if "command" in fields:
            line += f" <{fields['command']}>"
        line += f" - {record.getMessage()}"

        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(*, is_dev: bool = True, level: str = "INFO") -> None:
    """Install a single stdout handler on the root logger."""
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"()": DevFormatter if is_dev else JSONFormatter},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "default",
            },
        },
        "root": {"level": level.upper(), "handlers": ["stdout"]},
        "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
    })
