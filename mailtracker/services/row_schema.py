"""
Row schema: translation between table rows and TrackedEntity.

Columns are located by header name. When a header the profile expects is
missing from the sheet, the profile's column order is used instead and a
warning is logged. Cells in columns the profile does not map (amounts,
hand-written columns) are kept as read and written back unchanged.
"""
import logging
from typing import Optional

from config.tracker_profiles import (
    FIELD_EMAIL_DATE,
    FIELD_LAST_UPDATE,
    FIELD_MESSAGE_ID,
    FIELD_NOTES,
    FIELD_PEAK_STATUS,
    FIELD_PERMALINK,
    FIELD_PLATFORM,
    FIELD_PRIMARY,
    FIELD_PROCESSED_AT,
    FIELD_SECONDARY,
    FIELD_STATUS,
    FIELD_SUBJECT,
    FIELD_THREAD_ID,
    TrackerProfile,
)
from mailtracker.services.entity_index import TrackedEntity
from mailtracker.utils.datetime_utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

# Entity attribute per logical field
_FIELD_ATTRS = {
    FIELD_PROCESSED_AT: "processed_at",
    FIELD_EMAIL_DATE: "email_date",
    FIELD_PLATFORM: "platform",
    FIELD_PRIMARY: "primary",
    FIELD_SECONDARY: "secondary",
    FIELD_STATUS: "status",
    FIELD_PEAK_STATUS: "peak_status",
    FIELD_LAST_UPDATE: "last_update",
    FIELD_SUBJECT: "subject",
    FIELD_PERMALINK: "permalink",
    FIELD_MESSAGE_ID: "message_id",
    FIELD_THREAD_ID: "thread_id",
    FIELD_NOTES: "notes",
}

_DATETIME_FIELDS = {FIELD_PROCESSED_AT, FIELD_EMAIL_DATE, FIELD_LAST_UPDATE}


class RowSchema:
    """Column positions of one table, resolved against a profile."""

    def __init__(self, profile: TrackerProfile, positions: dict[str, int], width: int):
        self.profile = profile
        self.positions = positions  # logical field -> 0-based column
        self.width = width

    @classmethod
    def from_header(cls, header: Optional[list[str]], profile: TrackerProfile) -> "RowSchema":
        """
        Resolve column positions from a header row.

        Args:
            header: Header cells as read (empty for a blank sheet)
            profile: Tracker profile with the field -> header mapping

        Returns:
            RowSchema
        """
        header = [str(h).strip() for h in (header or [])]
        if not header:
            header = list(profile.headers)

        lookup = {h.lower(): i for i, h in enumerate(header) if h}
        positions = {}
        missing = []
        for field_name, header_name in profile.columns.items():
            if header_name.lower() in lookup:
                positions[field_name] = lookup[header_name.lower()]
            elif header_name in profile.headers:
                positions[field_name] = profile.headers.index(header_name)
                missing.append(header_name)

        if missing:
            logger.warning(
                f"Sheet header missing {missing}; using default column order for them"
            )

        width = max([len(header)] + [p + 1 for p in positions.values()])
        return cls(profile, positions, width)

    def _cell(self, values: list, field_name: str):
        position = self.positions.get(field_name)
        if position is None or position >= len(values):
            return ""
        value = values[position]
        return "" if value is None else value

    def entity_from_row(self, values: list, location: int) -> TrackedEntity:
        """
        Build an entity from a row's cells.

        Status cells are mapped onto the vocabulary where possible and kept
        verbatim otherwise; a blank peak falls back to the status.
        """
        def text(field_name):
            return str(self._cell(values, field_name)).strip()

        status = text(FIELD_STATUS)
        status = self.profile.canonical_status(status) or status
        peak = text(FIELD_PEAK_STATUS)
        peak = (self.profile.canonical_status(peak) or peak) if peak else status

        return TrackedEntity(
            primary=text(FIELD_PRIMARY),
            secondary=text(FIELD_SECONDARY),
            status=status,
            peak_status=peak,
            last_update=parse_timestamp(self._cell(values, FIELD_LAST_UPDATE)),
            email_date=parse_timestamp(self._cell(values, FIELD_EMAIL_DATE)),
            processed_at=parse_timestamp(self._cell(values, FIELD_PROCESSED_AT)),
            platform=text(FIELD_PLATFORM),
            subject=text(FIELD_SUBJECT),
            permalink=text(FIELD_PERMALINK),
            message_id=text(FIELD_MESSAGE_ID),
            thread_id=text(FIELD_THREAD_ID),
            notes=text(FIELD_NOTES),
            location=location,
            raw_values=list(values),
        )

    def entity_to_row(self, entity: TrackedEntity) -> list:
        """
        Render an entity as a full-width row.

        Unmapped cells come from entity.raw_values.
        """
        row = list(entity.raw_values[: self.width])
        row += [""] * (self.width - len(row))

        for field_name, position in self.positions.items():
            value = getattr(entity, _FIELD_ATTRS[field_name])
            if field_name in _DATETIME_FIELDS:
                value = format_timestamp(value)
            row[position] = "" if value is None else value
        return row

    def entities_from_rows(self, rows: list[tuple[int, list]]) -> list[TrackedEntity]:
        return [self.entity_from_row(values, location) for location, values in rows]

    @property
    def header(self) -> list[str]:
        """Header row for a blank sheet."""
        return list(self.profile.headers)

