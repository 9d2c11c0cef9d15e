"""UTC timestamp helpers.

Timestamps are persisted as ISO-8601 strings with a fixed microsecond width
and a trailing ``Z`` so lexical order equals chronological order.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Convert to aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_iso(value: datetime) -> str:
    """Format a datetime as a sortable UTC ISO-8601 string."""
    iso = as_utc(value).isoformat(timespec="microseconds")
    return iso.replace("+00:00", "Z")


def from_iso(value: str) -> datetime:
    """Parse a timestamp produced by to_iso (or any ISO-8601 string)."""
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
