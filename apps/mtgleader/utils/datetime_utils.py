"""
Datetime utility functions.

All watermark timestamps are UTC with millisecond precision, both on the
wire and in storage.
"""

import calendar
import re
from datetime import datetime
from typing import Optional

import pytz

_UPDATED_AT_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite returns them) and normalise aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC)


def truncate_to_millis(value: datetime) -> datetime:
    """
    Drop sub-millisecond precision and convert to UTC.

    Args:
        value: Any datetime; naive values are taken to be UTC

    Returns:
        UTC datetime whose microseconds are a multiple of 1000
    """
    value = as_utc(value)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def now_millis() -> datetime:
    """Current UTC time truncated to millisecond precision."""
    return truncate_to_millis(utcnow())


def parse_updated_at(raw: str) -> datetime:
    """
    Parse a client-supplied watermark.

    Only the exact form ``YYYY-MM-DDTHH:MM:SS.mmmZ`` is accepted.

    Raises:
        ValueError: If the value is not in that form
    """
    raw = (raw or "").strip()
    if not _UPDATED_AT_RE.match(raw):
        raise ValueError("updated_at must be RFC3339 UTC with milliseconds")
    parsed = datetime.strptime(raw, "%Y-%m-%dT%H:%M:%S.%fZ")
    return parsed.replace(tzinfo=pytz.UTC)


def format_updated_at(value: Optional[datetime]) -> Optional[str]:
    """Render a timestamp as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if value is None:
        return None
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def to_unix_nanos(value: Optional[datetime]) -> int:
    """Nanoseconds since the epoch, 0 for None."""
    if value is None:
        return 0
    value = as_utc(value)
    return calendar.timegm(value.utctimetuple()) * 1_000_000_000 + value.microsecond * 1000
