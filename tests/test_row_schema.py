"""
Tests for row <-> entity translation.
"""
from datetime import datetime, timezone

import pytest

from mailtracker.services.entity_index import TrackedEntity
from mailtracker.services.row_schema import RowSchema

pytestmark = pytest.mark.unit


def app_row(**cells):
    """Row in the default applications column order."""
    base = {
        "Processed Timestamp": "2024-03-01 09:05:00",
        "Email Date": "2024-03-01 09:00:00",
        "Platform": "LinkedIn",
        "Company": "Acme Corp",
        "Job Title": "Backend Engineer",
        "Status": "Interviewing",
        "Peak Status": "Interviewing",
        "Last Update Date": "2024-03-01 09:00:00",
        "Email Subject": "Interview",
        "Email Link": "https://mail.google.com/mail/u/0/#inbox/m1",
        "Email ID": "m1",
        "Thread ID": "t1",
        "Notes": "",
    }
    base.update(cells)
    return list(base.values())


class TestFromHeader:
    """Test column resolution."""

    def test_default_header(self, applications_profile):
        """A blank header resolves to the profile's column order."""
        schema = RowSchema.from_header([], applications_profile)
        assert schema.positions["primary"] == 3
        assert schema.width == len(applications_profile.headers)
        assert schema.header == list(applications_profile.headers)

    def test_reordered_header(self, applications_profile):
        """Columns are found by name, case-insensitively."""
        header = ["job title", "COMPANY", "Status", "Extra"]
        schema = RowSchema.from_header(header, applications_profile)
        assert schema.positions["secondary"] == 0
        assert schema.positions["primary"] == 1
        assert schema.positions["status"] == 2


class TestEntityFromRow:
    """Test reading rows."""

    def test_reads_fields(self, applications_profile):
        """Cells map onto entity attributes with parsed dates."""
        schema = RowSchema.from_header(list(applications_profile.headers), applications_profile)
        entity = schema.entity_from_row(app_row(), 5)

        assert entity.primary == "Acme Corp"
        assert entity.secondary == "Backend Engineer"
        assert entity.status == "Interviewing"
        assert entity.location == 5
        assert entity.last_update == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        assert entity.platform == "LinkedIn"

    def test_blank_peak_uses_status(self, applications_profile):
        """Rows written before peak tracking get peak = status."""
        schema = RowSchema.from_header(list(applications_profile.headers), applications_profile)
        entity = schema.entity_from_row(app_row(**{"Peak Status": ""}), 2)
        assert entity.peak_status == "Interviewing"

    def test_status_aliases_canonicalized(self, applications_profile):
        """Hand-typed statuses are mapped onto the vocabulary."""
        schema = RowSchema.from_header(list(applications_profile.headers), applications_profile)
        entity = schema.entity_from_row(app_row(Status="interview scheduled"), 2)
        assert entity.status == "Interviewing"

    def test_short_row(self, applications_profile):
        """Missing trailing cells read as blank."""
        schema = RowSchema.from_header(list(applications_profile.headers), applications_profile)
        entity = schema.entity_from_row(["", "", "", "Acme Corp", "PM"], 3)
        assert entity.primary == "Acme Corp"
        assert entity.notes == ""
        assert entity.last_update is None


class TestEntityToRow:
    """Test writing rows."""

    def test_unmapped_cells_preserved(self, proposals_profile):
        """Amount columns survive a rewrite."""
        header = list(proposals_profile.headers)
        schema = RowSchema.from_header(header, proposals_profile)
        values = [""] * len(header)
        values[header.index("Funder")] = "Civic Fund"
        values[header.index("RFP Title")] = "STEM Initiative"
        values[header.index("Status")] = "Submitted"
        values[header.index("Amount Requested")] = "$25,000"

        entity = schema.entity_from_row(values, 4)
        entity.status = "Awarded"
        row = schema.entity_to_row(entity)

        assert row[header.index("Amount Requested")] == "$25,000"
        assert row[header.index("Status")] == "Awarded"
        assert len(row) == len(header)

    def test_new_entity_row(self, applications_profile):
        """A new entity renders a full-width row with formatted dates."""
        schema = RowSchema.from_header([], applications_profile)
        entity = TrackedEntity(
            primary="Hooli",
            secondary="PM",
            status="Applied",
            peak_status="Applied",
            last_update=datetime(2024, 3, 2, 8, 30, tzinfo=timezone.utc),
        )
        row = schema.entity_to_row(entity)

        assert row[3] == "Hooli"
        assert row[7] == "2024-03-02 08:30:00"
        assert row[0] == ""
        assert len(row) == len(applications_profile.headers)
