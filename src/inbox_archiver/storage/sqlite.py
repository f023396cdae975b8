"""SQLite-backed export sink and run log."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Any

from ..core.config import StorageSettings
from ..core.datetime_utils import serialize_datetime
from ..core.interfaces import ArchiveRepository, SinkError
from ..core.models import MessageRecord
from ..core.results import TaskResult

LOGGER = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS archived_messages (
    file_path TEXT PRIMARY KEY,
    message_class TEXT NOT NULL,
    subject TEXT,
    sender TEXT,
    received_at TEXT,
    recipients TEXT NOT NULL,
    fingerprint TEXT,
    archived_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS run_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL,
    event_id INTEGER NOT NULL,
    logged_at TEXT NOT NULL,
    context TEXT
);
CREATE TABLE IF NOT EXISTS run_summaries (
    run_id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    finished_at TEXT,
    max_items INTEGER NOT NULL,
    total_items INTEGER NOT NULL,
    skipped_items INTEGER NOT NULL,
    error_count INTEGER NOT NULL,
    success INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_run_events_run ON run_events(run_id, id);
"""


class SqliteArchiveRepository(ArchiveRepository):
    """Persist exported message rows and run log entries using SQLite."""

    def __init__(self, settings: StorageSettings) -> None:
        """Open the database and create missing tables."""
        self._settings = settings
        db_path = Path(settings.db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(db_path)
        self._connection.row_factory = sqlite3.Row
        with self._connection:
            self._connection.executescript(SCHEMA)

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteArchiveRepository:
        """Enter context manager scope."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure the connection is closed when exiting context manager."""
        self.close()

    # ArchiveRepository API ---------------------------------------------------
    def persist_message(self, record: MessageRecord, path: Path) -> None:
        """Insert or update the exported row for the file at ``path``."""
        LOGGER.debug("Exporting %s", path)
        recipients = [
            {"name": recipient.name, "error": recipient.expansion_error}
            for recipient in record.recipients
        ]
        try:
            with self._connection:
                self._connection.execute(
                    """
                    INSERT INTO archived_messages (
                        file_path,
                        message_class,
                        subject,
                        sender,
                        received_at,
                        recipients,
                        fingerprint,
                        archived_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(file_path) DO UPDATE SET
                        message_class=excluded.message_class,
                        subject=excluded.subject,
                        sender=excluded.sender,
                        received_at=excluded.received_at,
                        recipients=excluded.recipients,
                        fingerprint=excluded.fingerprint,
                        archived_at=excluded.archived_at
                    """,
                    (
                        str(path),
                        record.message_class,
                        record.subject,
                        record.sender,
                        serialize_datetime(record.received_time),
                        json.dumps(recipients),
                        record.fingerprint,
                        datetime.now(UTC).isoformat(),
                    ),
                )
        except sqlite3.Error as exc:
            raise SinkError(f"Failed to export {path}: {exc}") from exc

    def append_event(self, run_id: str, event_id: int, context: str) -> None:
        """Append a run log row."""
        try:
            with self._connection:
                self._connection.execute(
                    """
                    INSERT INTO run_events (run_id, event_id, logged_at, context)
                    VALUES (?, ?, ?, ?)
                    """,
                    (run_id, event_id, datetime.now(UTC).isoformat(), context),
                )
        except sqlite3.Error as exc:
            raise SinkError(f"Failed to append run event {event_id}: {exc}") from exc

    def persist_summary(self, run_id: str, result: TaskResult) -> None:
        """Store the counters and outcome of a finished run."""
        try:
            with self._connection:
                self._connection.execute(
                    """
                    INSERT INTO run_summaries (
                        run_id,
                        started_at,
                        finished_at,
                        max_items,
                        total_items,
                        skipped_items,
                        error_count,
                        success
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(run_id) DO UPDATE SET
                        finished_at=excluded.finished_at,
                        max_items=excluded.max_items,
                        total_items=excluded.total_items,
                        skipped_items=excluded.skipped_items,
                        error_count=excluded.error_count,
                        success=excluded.success
                    """,
                    (
                        run_id,
                        serialize_datetime(result.start_time),
                        serialize_datetime(result.finish_time),
                        result.max_items,
                        result.total_items,
                        result.skipped_items,
                        len(result.errors),
                        int(result.success),
                    ),
                )
        except sqlite3.Error as exc:
            raise SinkError(f"Failed to store summary for run {run_id}: {exc}") from exc

    # Queries -----------------------------------------------------------------
    def fetch_message(self, path: Path) -> dict[str, Any] | None:
        """Return the exported row for ``path`` if present."""
        row = self._connection.execute(
            "SELECT * FROM archived_messages WHERE file_path = ?", (str(path),)
        ).fetchone()
        if row is None:
            return None
        payload = dict(row)
        payload["recipients"] = json.loads(payload["recipients"])
        return payload

    def list_events(self, run_id: str) -> list[tuple[int, str]]:
        """Return ``(event_id, context)`` pairs for a run in insertion order."""
        cursor = self._connection.execute(
            "SELECT event_id, context FROM run_events WHERE run_id = ? ORDER BY id",
            (run_id,),
        )
        return [(row["event_id"], row["context"]) for row in cursor.fetchall()]

    def fetch_summary(self, run_id: str) -> dict[str, Any] | None:
        row = self._connection.execute(
            "SELECT * FROM run_summaries WHERE run_id = ?", (run_id,)
        ).fetchone()
        return dict(row) if row is not None else None

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._connection.close()


__all__ = ["SqliteArchiveRepository"]
