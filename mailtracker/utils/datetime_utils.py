"""
Datetime utilities for mail tracker services.
"""
from datetime import datetime, timezone
from typing import Optional

# Format written to the tracker table
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Formats accepted when reading the table back (hand-edited rows included)
TIMESTAMP_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%Y-%m-%dT%H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
]


def make_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware (UTC if naive).

    Args:
        dt: A datetime object that may or may not have timezone info

    Returns:
        The same datetime with UTC timezone if it was naive,
        or the original timezone-aware datetime, or None if input was None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_timestamp(dt: Optional[datetime]) -> str:
    """Render a datetime for a table cell (UTC, second precision)."""
    if dt is None:
        return ""
    return make_aware(dt).astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a table cell into an aware datetime.

    Accepts datetimes as-is and tries each known format for strings.

    Returns:
        Aware datetime, or None if the value is empty or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return make_aware(value)

    value = str(value).strip()
    if not value:
        return None

    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    try:
        return make_aware(datetime.fromisoformat(value))
    except ValueError:
        return None
