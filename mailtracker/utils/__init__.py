# Mail Tracker Utilities
"""
Shared utility functions for mail tracker services.
"""

from mailtracker.utils.datetime_utils import (
    make_aware,
    format_timestamp,
    parse_timestamp,
)

__all__ = ["make_aware", "format_timestamp", "parse_timestamp"]
