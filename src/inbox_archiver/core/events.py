"""Run log event identifiers and the journal that records them."""

from __future__ import annotations

import logging
import uuid
from enum import IntEnum

from .interfaces import ArchiveRepository, SinkError
from .results import TaskError

LOGGER = logging.getLogger(__name__)


class EventId(IntEnum):
    """Numeric identifiers written to the run log."""

    RUN_STARTED = 1000
    RUN_FINISHED = 1001
    STORE_ATTACHED = 1100
    STORE_DETACHED = 1101
    FOLDER_STARTED = 1200
    MESSAGE_SAVED = 2000
    MESSAGE_ALREADY_SAVED = 2001
    MESSAGE_SKIPPED = 2002
    MESSAGE_DELETED = 2003
    MESSAGE_RETAINED = 2004
    GROUP_FOUND = 3000
    GROUP_CREATED = 3001
    ACL_ENTRY_ADDED = 3100
    TASK_ERROR = 9000


class RunJournal:
    """Append-only run log backed by logging and an optional repository."""

    def __init__(
        self, repository: ArchiveRepository | None = None, run_id: str | None = None
    ) -> None:
        self.run_id = run_id or uuid.uuid4().hex
        self._repository = repository

    def record(self, event_id: EventId, context: str) -> None:
        LOGGER.info(
            "[%s] %s", int(event_id), context, extra={"event_id": int(event_id)}
        )
        if self._repository is None:
            return
        try:
            self._repository.append_event(self.run_id, int(event_id), context)
        except SinkError as exc:
            LOGGER.warning("Failed to persist run log event %s: %s", event_id, exc)

    def record_error(self, error: TaskError) -> None:
        LOGGER.warning(
            "[%s] %s", int(EventId.TASK_ERROR), error,
            extra={"event_id": int(EventId.TASK_ERROR)},
        )
        if self._repository is None:
            return
        try:
            self._repository.append_event(
                self.run_id, int(EventId.TASK_ERROR), str(error)
            )
        except SinkError as exc:
            LOGGER.warning("Failed to persist run log error: %s", exc)


__all__ = ["EventId", "RunJournal"]
