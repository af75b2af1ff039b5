"""Structured JSON logging configuration."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

# Extra attributes copied onto the JSON line when a caller passes them.
_EXTRA_KEYS = (
    "source",
    "entity_type",
    "records",
    "page",
    "retry_after_s",
    "duration_s",
    "run_id",
)

_LOGGER_NAMES = ("portfolio_sync", "apscheduler")


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in _EXTRA_KEYS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            entry["stack"] = self.formatStack(record.stack_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO") -> None:
    """Route the package and APScheduler loggers to stderr as JSON lines."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter())
    resolved = getattr(logging, level.upper(), logging.INFO)
    for name in _LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(resolved)
        logger.handlers[:] = [handler]
        logger.propagate = False
