"""Core utilities for configuration, logging, results, and shared models."""

from .config import AppSettings, load_app_settings
from .events import EventId, RunJournal
from .logging import configure_logging
from .results import ErrorKind, TaskError, TaskResult

__all__ = [
    "AppSettings",
    "ErrorKind",
    "EventId",
    "RunJournal",
    "TaskError",
    "TaskResult",
    "configure_logging",
    "load_app_settings",
]
