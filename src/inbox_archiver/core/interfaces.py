"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol

from .models import DirectoryPrincipal, FileAcl, MessageRecord
from .results import TaskResult


class ConfigurationError(RuntimeError):
    """Raised when settings or the routing table cannot be loaded."""


class DirectoryError(RuntimeError):
    """Raised when a directory read or write fails."""


class AclError(RuntimeError):
    """Raised when a file's access rules cannot be read or written."""


class MailStoreError(RuntimeError):
    """Raised by mail store adapters for store, folder, or item failures."""


class StoreNotFoundError(MailStoreError):
    """Raised when the configured store cannot be located."""


class FolderNotFoundError(MailStoreError):
    """Raised when a configured folder does not exist in the store."""


class SinkError(RuntimeError):
    """Raised when the export sink rejects a record."""


class MailItem(Protocol):
    """A single source item: its normalized record plus save/delete hooks."""

    record: MessageRecord

    def save_as(self, path: Path) -> None:
        """Write the item to ``path``."""
        raise NotImplementedError

    def delete(self) -> None:
        """Remove the item from the source store."""
        raise NotImplementedError


class MailFolder(Protocol):
    """A folder of the source store."""

    name: str

    def item_count(self) -> int:
        """Return the number of items in the folder."""
        raise NotImplementedError

    def items(self) -> Iterable[MailItem]:
        """Yield the folder's items."""
        raise NotImplementedError


class MailStore(Protocol):
    """Abstraction over an attachable message store."""

    def attach(self) -> None:
        """Open or mount the store."""
        raise NotImplementedError

    def folders(self) -> Iterable[MailFolder]:
        """Yield folders selected for processing."""
        raise NotImplementedError

    def detach(self) -> None:
        """Release the store."""
        raise NotImplementedError


class DirectoryService(Protocol):
    """Directory operations the archiver depends on."""

    def find_object(self, distinguished_name: str) -> DirectoryPrincipal | None:
        """Return the object at ``distinguished_name`` or ``None`` if absent."""
        raise NotImplementedError

    def create_group(
        self, name: str, container: str, initial_members: Sequence[str] = ()
    ) -> None:
        """Create a global security group named ``name`` inside ``container``."""
        raise NotImplementedError

    def search(
        self, search_filter: str, search_base: str, *, subtree: bool = True
    ) -> Sequence[DirectoryPrincipal]:
        """Return principals under ``search_base`` matching ``search_filter``."""
        raise NotImplementedError


class FileSystem(Protocol):
    """Filesystem operations used while saving items."""

    def ensure_directory(self, path: Path) -> None:
        """Create ``path`` and its parents when missing."""
        raise NotImplementedError

    def file_exists(self, path: Path) -> bool:
        """Return ``True`` if a file exists at ``path``."""
        raise NotImplementedError


class AclStore(Protocol):
    """Reads and extends the access rules of files."""

    def read_acl(self, path: Path) -> FileAcl:
        """Return the current access rules of ``path``."""
        raise NotImplementedError

    def write_acl(self, path: Path, acl: FileAcl) -> None:
        """Persist ``acl`` on ``path``; entries already present are kept."""
        raise NotImplementedError

    def resolve_account(self, account: str) -> str:
        """Return the name :meth:`read_acl` reports for ``account``."""
        raise NotImplementedError

    def can_resolve(self, account: str) -> bool:
        """Return ``True`` if ``account`` resolves to a security principal."""
        raise NotImplementedError


class ArchiveRepository(Protocol):
    """Export sink and run log persistence."""

    def persist_message(self, record: MessageRecord, path: Path) -> None:
        """Store an exported row for an archived message."""
        raise NotImplementedError

    def append_event(self, run_id: str, event_id: int, context: str) -> None:
        """Append a run log event."""
        raise NotImplementedError

    def persist_summary(self, run_id: str, result: TaskResult) -> None:
        """Store the counters and outcome of a finished run."""
        raise NotImplementedError


__all__ = [
    "AclError",
    "AclStore",
    "ArchiveRepository",
    "ConfigurationError",
    "DirectoryError",
    "DirectoryService",
    "FolderNotFoundError",
    "FileSystem",
    "MailFolder",
    "MailItem",
    "MailStore",
    "MailStoreError",
    "SinkError",
    "StoreNotFoundError",
]
