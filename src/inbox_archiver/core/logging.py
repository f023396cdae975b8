"""Logging configuration helpers."""

from __future__ import annotations

import json
import logging
import logging.config
from typing import Any

from .config import LoggingSettings


class JsonFormatter(logging.Formatter):
    """Render each record as a single JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        event_id = getattr(record, "event_id", None)
        if event_id is not None:
            payload["event_id"] = event_id
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _structured_formatter() -> dict[str, Any]:
    """Return a dictConfig fragment for structured logs."""
    return {"()": JsonFormatter}


def _plain_formatter() -> dict[str, Any]:
    """Return a dictConfig fragment for human readable logs."""
    return {
        "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
    }


def configure_logging(settings: LoggingSettings) -> None:
    """Configure application logging according to provided settings."""
    formatter = _structured_formatter() if settings.structured else _plain_formatter()

    handlers: dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "level": settings.level,
        },
    }
    if settings.run_log_path is not None:
        settings.run_log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers["run_log"] = {
            "class": "logging.FileHandler",
            "formatter": "default",
            "level": settings.level,
            "filename": str(settings.run_log_path),
            "mode": "a",
            "encoding": "utf-8",
        }

    dict_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": formatter,
        },
        "handlers": handlers,
        "root": {
            "handlers": list(handlers),
            "level": settings.level,
        },
    }

    logging.config.dictConfig(dict_config)


__all__ = ["JsonFormatter", "configure_logging"]
