"""Datetime helpers for archive paths, fingerprints and the run log."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "as_wall_clock",
    "month_bucket",
    "serialize_datetime",
]


def as_wall_clock(value: datetime) -> datetime:
    """Drop timezone and sub-second detail, keeping the displayed local time."""
    return datetime(
        value.year, value.month, value.day, value.hour, value.minute, value.second
    )


def month_bucket(value: datetime) -> str:
    """Return the ``YYYY-MM`` folder name for ``value``."""
    return f"{value.year:04d}-{value.month:02d}"


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to ISO 8601; aware values are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.isoformat()
