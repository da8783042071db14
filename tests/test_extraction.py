"""
Tests for the extraction pipeline (AI extractor with fallback parser).
"""
from unittest.mock import MagicMock

import pytest

from config.tracker_profiles import MANUAL_REVIEW_NEEDED
from mailtracker.services.extraction import (
    SOURCE_AI,
    SOURCE_FALLBACK,
    SOURCE_MIXED,
    ExtractionPipeline,
)
from mailtracker.services.extractor_client import ExtractorReply

pytestmark = pytest.mark.unit


def client_returning(reply):
    client = MagicMock()
    client.extract.return_value = reply
    return client


class TestExtractionPipeline:
    """Test ExtractionPipeline.extract."""

    def test_ai_success(self, applications_profile):
        """A complete AI answer is used as is, with statuses canonicalized."""
        client = client_returning(ExtractorReply(
            success=True,
            data={"company": "Acme Corp", "title": "Backend Engineer", "status": "Interview Scheduled"},
        ))
        pipeline = ExtractionPipeline(applications_profile, client)

        candidate = pipeline.extract("Interview", "Let's talk", "Acme Careers <jobs@acme.com>")

        assert candidate.primary == "Acme Corp"
        assert candidate.secondary == "Backend Engineer"
        assert candidate.status == "Interviewing"
        assert candidate.source == SOURCE_AI
        assert candidate.error is None
        assert candidate.platform == "Email/Website"

        args = client.extract.call_args[0]
        assert args[0] == applications_profile.extractor_instruction
        assert args[3] == ("company", "title", "status")

    def test_malformed_reply_uses_fallback(self, applications_profile):
        """A failed AI call falls back and records the failure."""
        client = client_returning(ExtractorReply(
            success=False, error="Invalid JSON from extractor", error_kind="malformed_response",
        ))
        pipeline = ExtractionPipeline(applications_profile, client)

        candidate = pipeline.extract(
            "Application for Data Analyst at Initech",
            "Thank you for your application.",
            "jobs@initech.com",
        )

        assert candidate.primary == "Initech"
        assert candidate.secondary == "Data Analyst"
        assert candidate.source == SOURCE_FALLBACK
        assert candidate.error_kind == "malformed_response"
        assert not candidate.requires_manual_review
        assert not candidate.extraction_failed

    def test_failure_with_nothing_recovered(self, applications_profile):
        """Neither key recovered after an AI failure marks the extraction failed."""
        client = client_returning(ExtractorReply(
            success=False, error="Extractor HTTP 500", error_kind="http_error",
        ))
        pipeline = ExtractionPipeline(applications_profile, client)

        candidate = pipeline.extract("Hello", "A note for everyone on the list")

        assert candidate.primary == MANUAL_REVIEW_NEEDED
        assert candidate.secondary == MANUAL_REVIEW_NEEDED
        assert candidate.requires_manual_review
        assert candidate.extraction_failed

    def test_unresolved_ai_field_filled_by_fallback(self, applications_profile):
        """N/A from the extractor is filled from the sender name."""
        client = client_returning(ExtractorReply(
            success=True,
            data={"company": "N/A", "title": "Backend Engineer", "status": "Applied"},
        ))
        pipeline = ExtractionPipeline(applications_profile, client)

        candidate = pipeline.extract("Your application", "We got it, thanks.", "Hooli Talent <talent@hooli.com>")

        assert candidate.primary == "Hooli"
        assert candidate.secondary == "Backend Engineer"
        assert candidate.status == "Applied"
        assert candidate.source == SOURCE_MIXED

    def test_unknown_status_from_body(self, applications_profile):
        """A status outside the vocabulary is replaced by body keywords."""
        client = client_returning(ExtractorReply(
            success=True,
            data={"company": "Globex", "title": "Product Designer", "status": "Update/Other"},
        ))
        pipeline = ExtractionPipeline(applications_profile, client)

        candidate = pipeline.extract("Next steps", "We are pleased to offer you the role.")

        assert candidate.status == "Offer"
        assert candidate.source == SOURCE_MIXED

    def test_ai_disabled(self, applications_profile):
        """With AI disabled the client is never called."""
        client = MagicMock()
        pipeline = ExtractionPipeline(applications_profile, client, ai_enabled=False)

        candidate = pipeline.extract("Application for Data Analyst at Initech", "")

        client.extract.assert_not_called()
        assert candidate.source == SOURCE_FALLBACK
        assert candidate.error is None

    def test_client_exception_handled(self, applications_profile):
        """An exception from the client becomes a failed reply."""
        client = MagicMock()
        client.extract.side_effect = RuntimeError("socket closed")
        pipeline = ExtractionPipeline(applications_profile, client)

        candidate = pipeline.extract("Application for Data Analyst at Initech", "")

        assert candidate.primary == "Initech"
        assert candidate.error == "socket closed"
        assert candidate.error_kind == "unexpected"

    def test_proposals_have_no_platform(self, proposals_profile):
        """Profiles without a platform column leave it unset."""
        client = client_returning(ExtractorReply(
            success=True,
            data={"funderName": "Civic Fund", "proposalTitle": "STEM", "submissionStatus": "In Review"},
        ))
        candidate = ExtractionPipeline(proposals_profile, client).extract("Update", "Thanks")

        assert candidate.status == "Under Review"
        assert candidate.platform is None


class TestExtractMessage:
    """Test provenance on fetched messages."""

    def test_provenance_attached(self, applications_profile, message_factory):
        message = message_factory(
            "m42", thread_id="t9",
            subject="Application for Data Analyst at Initech",
            sender="jobs@linkedin.com", sender_name="LinkedIn",
        )
        pipeline = ExtractionPipeline(applications_profile, client=None)

        candidate = pipeline.extract_message(message)

        assert candidate.message_id == "m42"
        assert candidate.thread_id == "t9"
        assert candidate.email_date == message.date
        assert candidate.permalink.endswith("m42")
        assert candidate.platform == "LinkedIn"
