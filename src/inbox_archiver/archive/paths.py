"""Deterministic save paths and file names for archived items."""

from __future__ import annotations

import re
from pathlib import Path

from ..core.datetime_utils import month_bucket
from ..core.interfaces import FileSystem
from ..core.models import MessageRecord, Route

NO_DATE_SEGMENT = "_no_date"
UNKNOWN_SENDER = "__unknown_sender"
NO_SUBJECT = "(No Subject)"
SUBJECT_LIMIT = 50

EMAIL_PATTERN = re.compile(
    r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[A-Za-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r"@(?:[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?\.)+[A-Za-z]{2,}$"
)
ILLEGAL_PATH_CHARS = re.compile(r'["<>|:*?\\/\[\]\t&]')
SUBJECT_DISALLOWED = re.compile(r"[^a-zA-Z0-9\s\-.]")
WHITESPACE_RUN = re.compile(r"\s+")


def date_segment(record: MessageRecord) -> str:
    if record.received_time is None:
        return NO_DATE_SEGMENT
    return month_bucket(record.received_time)


def sender_segment(record: MessageRecord) -> str:
    """Folder name for the sender.

    Directory display names of internal senders are used as-is. Anything else
    that is not a well-formed address gets a leading underscore so those
    folders sort together.
    """
    sender = (record.sender or "").strip()
    if not sender:
        return UNKNOWN_SENDER
    if not record.sender_internal and not EMAIL_PATTERN.match(sender):
        sender = f"_{sender}"
    cleaned = ILLEGAL_PATH_CHARS.sub("", sender).strip()
    return cleaned or UNKNOWN_SENDER


def subject_stem(subject: str | None) -> str:
    truncated = (subject or "")[:SUBJECT_LIMIT]
    stripped = SUBJECT_DISALLOWED.sub("", truncated)
    collapsed = WHITESPACE_RUN.sub(" ", stripped).strip()
    return collapsed or NO_SUBJECT


def file_name(route: Route, record: MessageRecord) -> str:
    stem = subject_stem(record.subject)
    if record.fingerprint:
        return f"{stem}.{record.fingerprint}{route.file_extension}"
    return f"{stem}{route.file_extension}"


class PathBuilder:
    """Compute where an item is saved, creating the folder on the way."""

    def __init__(self, filesystem: FileSystem) -> None:
        self._filesystem = filesystem

    def directory_for(self, route: Route, record: MessageRecord, target_root: Path) -> Path:
        directory = Path(target_root)
        if route.use_date:
            directory = directory / date_segment(record)
        if route.use_sender:
            directory = directory / sender_segment(record)
        if route.static_suffix:
            directory = directory / route.static_suffix
        return directory

    def build_path(self, route: Route, record: MessageRecord, target_root: Path) -> Path:
        """Return the save path for ``record`` and store it on the record."""
        directory = self.directory_for(route, record, target_root)
        self._filesystem.ensure_directory(directory)
        path = directory / file_name(route, record)
        record.computed_file_path = path
        return path


__all__ = [
    "NO_DATE_SEGMENT",
    "NO_SUBJECT",
    "PathBuilder",
    "UNKNOWN_SENDER",
    "date_segment",
    "file_name",
    "sender_segment",
    "subject_stem",
]
