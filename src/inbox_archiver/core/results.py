"""Outcome records shared by every unit of work."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Fixed taxonomy of recorded errors."""

    CREATE_GROUP_FAILED = "CreateGroupFailed"
    GET_OBJECT_FAILED = "GetObjectFailed"
    MAP_OBJECT_FAILED = "MapObjectFailed"
    MAP_OBJECT_BAD_TYPE = "MapObjectBadType"
    RESOLVE_GROUP_FAILED = "ResolveGroupFailed"
    READ_ACL_FAILED = "ReadAclFailed"
    SET_ACL_FAILED = "SetAclFailed"
    SAVE_MESSAGE_FAILED = "SaveMessageFailed"
    DELETE_MESSAGE_FAILED = "DeleteMessageFailed"
    WRITE_TO_SINK_FAILED = "WriteToSinkFailed"
    GET_ITEM_COUNT_FAILED = "GetItemCountFailed"
    ATTACH_STORE_FAILED = "AttachStoreFailed"
    DETACH_STORE_FAILED = "DetachStoreFailed"
    INVALID_PATH = "InvalidPath"
    STORE_NOT_FOUND = "StoreNotFound"
    FOLDER_NOT_FOUND = "FolderNotFound"
    FILE_NOT_FOUND = "FileNotFound"


@dataclass(frozen=True, slots=True)
class TaskError:
    """A single recorded failure and the context it happened in."""

    kind: ErrorKind
    context: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.context}"


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class TaskResult:
    """Outcome of a message, a folder, or a whole run.

    ``success`` only ever flips from ``True`` to ``False``. Folding a child
    result into a parent concatenates errors, sums counters and ANDs the
    success flags, so a failure anywhere is visible at every ancestor.
    """

    success: bool = True
    errors: list[TaskError] = field(default_factory=list)
    return_value: Any = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    finish_time: datetime | None = None
    total_items: int = 0
    max_items: int = 0
    skipped_items: int = 0

    def add_error(self, kind: ErrorKind, context: str) -> TaskError:
        """Record a failure; the result stays unsuccessful from here on."""
        error = TaskError(kind=kind, context=context)
        self.errors.append(error)
        self.success = False
        return error

    def fold(self, child: TaskResult) -> TaskResult:
        """Merge ``child`` into this result and return ``self``."""
        self.errors.extend(child.errors)
        self.total_items += child.total_items
        self.max_items += child.max_items
        self.skipped_items += child.skipped_items
        self.success = self.success and child.success
        return self

    def finish(self) -> TaskResult:
        """Stamp the finish time and return ``self``."""
        self.finish_time = datetime.now(UTC)
        return self

    @property
    def elapsed_seconds(self) -> float | None:
        if self.finish_time is None:
            return None
        return (self.finish_time - self.start_time).total_seconds()

    def has_error(self, kind: ErrorKind) -> bool:
        return any(error.kind is kind for error in self.errors)


__all__ = ["ErrorKind", "TaskError", "TaskResult"]
