"""Core domain models used across the application."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path


class RouteAction(str, Enum):
    """What happens to the source item once it has been handled."""

    SAVE = "save"
    DELETE = "delete"


class ObjectClass(str, Enum):
    """Directory object classes the archiver distinguishes."""

    USER = "user"
    GROUP = "group"
    OTHER = "other"


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class Route:
    """Routing rule for a single message class."""

    message_class: str
    use_date: bool
    use_sender: bool
    static_suffix: str
    file_extension: str
    apply_permissions: bool
    action: RouteAction
    write_to_sink: bool
    template: str | None = None


@dataclass(frozen=True, slots=True)
class RecipientRef:
    """A recipient as delivered by the mail source.

    Resolved recipients carry the directory display name. A distribution list
    that could not be expanded keeps its own name plus the failure reason.
    """

    name: str
    expansion_error: str | None = None

    @property
    def resolved(self) -> bool:
        return self.expansion_error is None

    @classmethod
    def unresolved(cls, name: str, reason: str) -> RecipientRef:
        return cls(name=name, expansion_error=reason or "unknown error")


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class MessageRecord:
    """Normalized view of a source mail item."""

    message_class: str
    subject: str
    sender: str
    received_time: datetime | None
    recipients: tuple[RecipientRef, ...] = ()
    fingerprint: str = ""
    sender_internal: bool = False
    computed_file_path: Path | None = None


@dataclass(slots=True)
class DirectoryPrincipal:
    """A user or group object in the directory."""

    display_name: str
    distinguished_name: str
    sam_account_name: str
    object_class: ObjectClass
    member_of: set[str] = field(default_factory=set)


@dataclass(frozen=True, slots=True)
class AccessGroup:
    """Security group granting read access on behalf of one principal."""

    name: str
    distinguished_name: str
    sam_account_name: str
    owner: str


@dataclass(frozen=True, slots=True)
class AclEntry:
    """A read-and-execute allow entry for one account."""

    account: str

    @property
    def key(self) -> str:
        return self.account.casefold()


@dataclass(frozen=True, slots=True)
class FileAcl:
    """Access rules currently attached to a file, one entry per account."""

    entries: tuple[AclEntry, ...] = ()

    def __contains__(self, account: object) -> bool:
        if not isinstance(account, str):
            return False
        wanted = account.casefold()
        return any(entry.key == wanted for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def with_entry(self, entry: AclEntry) -> FileAcl:
        """Return a copy including ``entry`` unless the account is already present."""
        if entry.account in self:
            return self
        return FileAcl(entries=(*self.entries, entry))


__all__ = [
    "AccessGroup",
    "AclEntry",
    "DirectoryPrincipal",
    "FileAcl",
    "MessageRecord",
    "ObjectClass",
    "RecipientRef",
    "Route",
    "RouteAction",
]
