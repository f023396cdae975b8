"""Archive run orchestration: store, folders, and individual items."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from ..core.events import EventId, RunJournal
from ..core.interfaces import (
    ArchiveRepository,
    FileSystem,
    FolderNotFoundError,
    MailFolder,
    MailItem,
    MailStore,
    MailStoreError,
    SinkError,
    StoreNotFoundError,
)
from ..core.models import MessageRecord, Route, RouteAction
from ..core.results import ErrorKind, TaskResult
from ..permissions.reconciler import PermissionReconciler
from ..routing.routes import RouteTable
from .gate import GateDecision, decide
from .paths import PathBuilder

LOGGER = logging.getLogger(__name__)


class MessageArchiver:
    """Save routed items, grant their audience access, and clear the source."""

    # pylint: disable=too-many-arguments
    def __init__(
        self,
        store: MailStore,
        routes: RouteTable,
        filesystem: FileSystem,
        *,
        target_root: Path,
        reconciler: PermissionReconciler | None = None,
        repository: ArchiveRepository | None = None,
        journal: RunJournal | None = None,
        max_messages: int | None = None,
        delete_enabled: bool = True,
        progress_callback: Callable[[str], None] | None = None,
    ) -> None:
        """Initialise the archiver with its collaborators."""
        if max_messages is not None and max_messages <= 0:
            raise ValueError("max_messages must be positive")
        self._store = store
        self._routes = routes
        self._filesystem = filesystem
        self._path_builder = PathBuilder(filesystem)
        self._target_root = Path(target_root)
        self._reconciler = reconciler
        self._repository = repository
        self._journal = journal or RunJournal(repository)
        self._max_messages = max_messages
        self._delete_enabled = delete_enabled
        self._progress_callback = progress_callback
        self._processed = 0

    @property
    def run_id(self) -> str:
        return self._journal.run_id

    def run(self) -> TaskResult:
        """Execute an archive run and return the aggregated result."""
        result = TaskResult(return_value=self.run_id)
        self._processed = 0
        self._journal.record(EventId.RUN_STARTED, f"Target root {self._target_root}")

        try:
            self._store.attach()
        except StoreNotFoundError as exc:
            self._fail(result, ErrorKind.STORE_NOT_FOUND, str(exc))
            self._detach(result)
            return self._finish_run(result)
        except MailStoreError as exc:
            self._fail(result, ErrorKind.ATTACH_STORE_FAILED, str(exc))
            self._detach(result)
            return self._finish_run(result)
        self._journal.record(EventId.STORE_ATTACHED, "Store attached")

        try:
            for folder in self._store.folders():
                if self._limit_reached():
                    break
                result.fold(self.process_folder(folder))
        except FolderNotFoundError as exc:
            self._fail(result, ErrorKind.FOLDER_NOT_FOUND, str(exc))
        except MailStoreError as exc:
            self._fail(result, ErrorKind.FOLDER_NOT_FOUND, f"Folder enumeration failed: {exc}")
        finally:
            self._detach(result)

        return self._finish_run(result)

    def process_folder(self, folder: MailFolder) -> TaskResult:
        """Process every item in ``folder`` until the run limit is reached."""
        result = TaskResult(return_value=folder.name)
        self._journal.record(EventId.FOLDER_STARTED, folder.name)
        try:
            result.max_items = folder.item_count()
        except MailStoreError as exc:
            self._fail(result, ErrorKind.GET_ITEM_COUNT_FAILED, f"{folder.name}: {exc}")

        try:
            for item in folder.items():
                if self._limit_reached():
                    LOGGER.info("Reached max_messages limit (%s)", self._max_messages)
                    break
                if self._progress_callback:
                    self._progress_callback(
                        f"Processing item {self._processed + 1} in {folder.name}: "
                        f"{item.record.subject}"
                    )
                result.fold(self.process_item(item))
                self._processed += 1
        except MailStoreError as exc:
            self._fail(result, ErrorKind.GET_ITEM_COUNT_FAILED, f"{folder.name}: {exc}")

        LOGGER.info(
            "Folder %s completed: max=%s, saved=%s, skipped=%s, errors=%s",
            folder.name,
            result.max_items,
            result.total_items,
            result.skipped_items,
            len(result.errors),
        )
        return result.finish()

    def process_item(self, item: MailItem) -> TaskResult:
        """Route, save, grant, and gate a single item."""
        record = item.record
        result = TaskResult(return_value=record)

        if not record.message_class:
            result.skipped_items += 1
            self._journal.record(EventId.MESSAGE_SKIPPED, record.subject)
            return result.finish()

        route = self._routes.resolve(record.message_class)
        if route is None:
            result.skipped_items += 1
            self._journal.record(
                EventId.MESSAGE_SKIPPED,
                f"No route for {record.message_class}: {record.subject}",
            )
            return result.finish()

        if route.action is RouteAction.DELETE:
            self._apply_gate(item, route, decide(route, False, None), result)
            return self._finish_item(result)

        try:
            path = self._path_builder.build_path(route, record, self._target_root)
        except OSError as exc:
            result.add_error(ErrorKind.INVALID_PATH, f"{record.subject}: {exc}")
            return self._finish_item(result)

        saved = self._save(item, path, result)
        if saved and route.write_to_sink:
            self._export(record, path, result)

        permissions: TaskResult | None = None
        if saved and route.apply_permissions and self._reconciler is not None:
            permissions = self._reconciler.apply_permissions(path, record)
            result.fold(permissions)

        self._apply_gate(item, route, decide(route, saved, permissions), result)
        return self._finish_item(result)

    # Internal helpers ---------------------------------------------------------
    def _save(self, item: MailItem, path: Path, result: TaskResult) -> bool:
        if self._filesystem.file_exists(path):
            result.skipped_items += 1
            self._journal.record(EventId.MESSAGE_ALREADY_SAVED, str(path))
            return True

        try:
            item.save_as(path)
        except (MailStoreError, OSError) as exc:
            if self._filesystem.file_exists(path):
                LOGGER.warning("Save of %s reported %s but the file exists", path, exc)
            else:
                result.add_error(ErrorKind.SAVE_MESSAGE_FAILED, f"{path}: {exc}")
                return False
        else:
            if not self._filesystem.file_exists(path):
                result.add_error(ErrorKind.FILE_NOT_FOUND, str(path))
                return False

        result.total_items += 1
        self._journal.record(EventId.MESSAGE_SAVED, str(path))
        return True

    def _export(self, record: MessageRecord, path: Path, result: TaskResult) -> None:
        if self._repository is None:
            return
        try:
            self._repository.persist_message(record, path)
        except SinkError as exc:
            result.add_error(ErrorKind.WRITE_TO_SINK_FAILED, f"{path}: {exc}")

    def _apply_gate(
        self, item: MailItem, route: Route, decision: GateDecision, result: TaskResult
    ) -> None:
        subject = item.record.subject
        if not decision.delete:
            self._journal.record(
                EventId.MESSAGE_RETAINED, f"{subject}: {decision.reason}"
            )
            return
        if not self._delete_enabled:
            self._journal.record(
                EventId.MESSAGE_RETAINED,
                f"{subject}: {decision.reason}; deletion disabled",
            )
            return
        try:
            item.delete()
        except MailStoreError as exc:
            result.add_error(
                ErrorKind.DELETE_MESSAGE_FAILED,
                f"{route.message_class} {subject}: {exc}",
            )
            return
        self._journal.record(EventId.MESSAGE_DELETED, f"{subject}: {decision.reason}")

    def _finish_item(self, result: TaskResult) -> TaskResult:
        for error in result.errors:
            self._journal.record_error(error)
        return result.finish()

    def _fail(self, result: TaskResult, kind: ErrorKind, context: str) -> None:
        self._journal.record_error(result.add_error(kind, context))

    def _detach(self, result: TaskResult) -> None:
        # Also runs after a failed attach so a store mounted on the way is removed.
        try:
            self._store.detach()
            self._journal.record(EventId.STORE_DETACHED, "Store detached")
        except MailStoreError as exc:
            self._fail(result, ErrorKind.DETACH_STORE_FAILED, str(exc))

    def _limit_reached(self) -> bool:
        return self._max_messages is not None and self._processed >= self._max_messages

    def _finish_run(self, result: TaskResult) -> TaskResult:
        result.finish()
        self._journal.record(
            EventId.RUN_FINISHED,
            f"max={result.max_items} saved={result.total_items} "
            f"skipped={result.skipped_items} errors={len(result.errors)}",
        )
        if self._repository is not None:
            try:
                self._repository.persist_summary(self.run_id, result)
            except SinkError as exc:
                LOGGER.warning("Failed to store run summary: %s", exc)
        return result


__all__ = ["MessageArchiver"]
