"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from src.utils.datetime_utils import utc_now, to_iso

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime(timezone=True), default=utc_now)

    # For JSON payloads
    payload["created_at"] = to_iso(prescription.created_at)
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        Current UTC datetime with timezone info
    """
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp as ISO 8601, treating naive values as UTC.

    SQLite drops tzinfo on the way back out, so naive datetimes read from
    the database are assumed to be UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
