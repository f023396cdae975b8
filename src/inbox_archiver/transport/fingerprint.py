"""Content fingerprint used to make archive file names unique and stable."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from datetime import datetime

from ..core.datetime_utils import serialize_datetime
from ..core.models import MessageRecord, RecipientRef

SEPARATOR = "\x1f"


def compute_fingerprint(
    message_class: str,
    subject: str | None,
    sender: str | None,
    received_time: datetime | None,
    recipients: Iterable[RecipientRef],
) -> str:
    """Return a 32-character hex digest over the message-identifying fields."""
    parts = [
        message_class or "",
        subject or "",
        sender or "",
        serialize_datetime(received_time) or "",
        *(recipient.name for recipient in recipients),
    ]
    payload = SEPARATOR.join(parts).encode("utf-8")
    return hashlib.md5(payload, usedforsecurity=False).hexdigest()


def fingerprint_record(record: MessageRecord) -> str:
    return compute_fingerprint(
        record.message_class,
        record.subject,
        record.sender,
        record.received_time,
        record.recipients,
    )


__all__ = ["compute_fingerprint", "fingerprint_record"]
