"""Persistence adapters."""

from .sqlite import SqliteArchiveRepository

__all__ = ["SqliteArchiveRepository"]
