"""
Logging setup shared by the API process, the CLI and the payment scheduler.

Standard library logging with a readable console format by default and an
optional JSON formatter for log shippers:

    from utils.logging import configure_logging

    configure_logging(level="INFO", json_logs=False)
"""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any, Dict

# LogRecord attributes that are not user supplied `extra=` fields
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "time": self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure root logging (idempotent, safe to call from every app factory run)."""
    formatter_name = "json" if json_logs else "console"

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "console": {
                    "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                },
                "json": {"()": JsonFormatter},
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "formatter": formatter_name,
                    "level": level,
                }
            },
            "root": {"handlers": ["default"], "level": level},
            # APScheduler is chatty at INFO on every tick
            "loggers": {"apscheduler": {"level": "WARNING"}},
        }
    )


__all__ = ["configure_logging", "JsonFormatter"]
