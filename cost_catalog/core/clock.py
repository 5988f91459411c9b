"""
Timestamp helpers.

All catalog timestamps are timezone-aware UTC.
"""

from datetime import datetime, timezone
from typing import Optional

from .errors import InvalidArgumentError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_timestamp(value: datetime) -> datetime:
    """Convert a datetime to aware UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError:
        raise InvalidArgumentError(f"Timestamp out of range: {value.isoformat()}")


def resolve_as_of(as_of: Optional[datetime]) -> datetime:
    """Default a query time to now and normalize it."""
    if as_of is None:
        return utc_now()
    return normalize_timestamp(as_of)


def to_store(value: datetime) -> str:
    """Encode a timestamp for the store.

    Always four year digits and six fractional digits in UTC, so text
    ordering in the store equals time ordering.
    """
    return normalize_timestamp(value).isoformat(timespec="microseconds")


def from_store(value: str) -> datetime:
    """Decode a timestamp written by :func:`to_store`."""
    return datetime.fromisoformat(value).astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 date or datetime string supplied by a caller.

    Args:
        value: e.g. ``2025-06-01``, ``2025-06-01T12:00:00Z`` or with an offset

    Returns:
        Aware UTC datetime

    Raises:
        InvalidArgumentError: If the string is not ISO-8601
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise InvalidArgumentError(f"Invalid timestamp: {value!r}")
    return normalize_timestamp(parsed)
