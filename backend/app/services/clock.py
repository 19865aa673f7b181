"""
Clock & timestamp parsing.

The store keeps zone-naive timestamps whose wall-clock convention is UTC,
e.g. "2025-11-21 11:55:11.835". Everything here treats such values as UTC
and never consults the process's local timezone.

parse_as_utc returns None for "no timestamp" and the MALFORMED sentinel for a
value that cannot be parsed. Callers skip and log on MALFORMED.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional, Union

from app.services.errors import MalformedTimestamp

logger = logging.getLogger(__name__)


class _Malformed:
    """Sentinel returned for an unparseable timestamp."""

    _instance: Optional["_Malformed"] = None

    def __new__(cls) -> "_Malformed":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MALFORMED"


MALFORMED = _Malformed()

ParsedInstant = Union[datetime, None, _Malformed]

# Trailing zone designators: Z, +05:30, +0530, +05
_ZONE_RE = re.compile(r"(Z|[+-]\d{2}(:?\d{2})?)$", re.IGNORECASE)
_SHORT_OFFSET_RE = re.compile(r"([+-]\d{2})$")
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


def utcnow() -> datetime:
    """Aware UTC now."""
    return datetime.now(timezone.utc)


def to_naive_utc(instant: datetime) -> datetime:
    """Convert an instant to the zone-naive UTC form the store persists."""
    if instant.tzinfo is None:
        return instant
    return instant.astimezone(timezone.utc).replace(tzinfo=None)


def parse_as_utc(value: Any) -> ParsedInstant:
    """Parse a persisted timestamp as an aware UTC datetime.

    Accepts datetimes (naive ones are tagged UTC) and strings in PostgreSQL
    ("2025-06-01 10:00:00") or ISO ("2025-06-01T10:00:00Z") form.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    if not isinstance(value, str):
        logger.error("Failed to parse timestamp as UTC: unsupported type %s", type(value).__name__)
        return MALFORMED

    normalized = value.strip()
    if not normalized:
        return None

    # PostgreSQL separates date and time with a space
    if " " in normalized and "T" not in normalized:
        normalized = normalized.replace(" ", "T", 1)

    # Only look for a zone after the time part so "2025-06-01" isn't read as an offset
    date_part, sep, time_part = normalized.partition("T")
    if sep and _ZONE_RE.search(time_part):
        if time_part[-1] in "zZ":
            time_part = time_part[:-1] + "+00:00"
        elif _COMPACT_OFFSET_RE.search(time_part):
            time_part = _COMPACT_OFFSET_RE.sub(r"\1:\2", time_part)
        elif _SHORT_OFFSET_RE.search(time_part):
            time_part = time_part + ":00"
        normalized = f"{date_part}T{time_part}"

    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        logger.error("Failed to parse timestamp as UTC: original=%r normalized=%r", value, normalized)
        return MALFORMED

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def require_utc(value: Any) -> Optional[datetime]:
    """parse_as_utc for callers that must fail loudly instead of skipping."""
    parsed = parse_as_utc(value)
    if parsed is MALFORMED:
        raise MalformedTimestamp(value)
    return parsed
