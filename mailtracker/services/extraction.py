"""
Extraction pipeline.

Turns one email into a Candidate: primary key, secondary key, proposed
status and provenance. The AI extractor is tried first; the deterministic
fallback parser fills whatever it could not resolve. Nothing raises past
this module: every failure ends as a candidate carrying the manual-review
sentinel.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from config.tracker_profiles import (
    MANUAL_REVIEW_NEEDED,
    UNRESOLVED_VALUES,
    TrackerProfile,
)
from mailtracker.services.extractor_client import ExtractorReply, GeminiExtractorClient
from mailtracker.services.fallback_parser import detect_platform, fallback_extract
from mailtracker.services.gmail import EmailMessage, build_permalink, parse_sender

logger = logging.getLogger(__name__)

SOURCE_AI = "ai"
SOURCE_FALLBACK = "fallback"
SOURCE_MIXED = "ai+fallback"


@dataclass
class Candidate:
    """
    Typed record extracted from one email.

    primary/secondary hold the manual-review sentinel when unresolved.
    status is None when no status could be determined.
    """
    primary: str
    secondary: str
    status: Optional[str] = None
    source: str = SOURCE_AI
    error: Optional[str] = None  # primary extractor failure detail
    error_kind: Optional[str] = None
    platform: Optional[str] = None
    subject: str = ""
    message_id: str = ""
    thread_id: str = ""
    email_date: Optional[datetime] = None
    permalink: str = ""

    @property
    def requires_manual_review(self) -> bool:
        return MANUAL_REVIEW_NEEDED in (self.primary, self.secondary)

    @property
    def extraction_failed(self) -> bool:
        """Primary extractor failed and the fallback recovered neither key."""
        return self.error is not None and (
            self.primary == MANUAL_REVIEW_NEEDED and self.secondary == MANUAL_REVIEW_NEEDED
        )

    def to_dict(self) -> dict:
        return {
            "primary": self.primary,
            "secondary": self.secondary,
            "status": self.status,
            "source": self.source,
            "error": self.error,
            "platform": self.platform,
            "subject": self.subject,
            "message_id": self.message_id,
            "thread_id": self.thread_id,
            "email_date": self.email_date.isoformat() if self.email_date else None,
            "permalink": self.permalink,
        }


def _resolved(value) -> Optional[str]:
    """Extractor value, or None if it means 'unknown'."""
    if value is None:
        return None
    value = str(value).strip()
    if value.lower() in UNRESOLVED_VALUES:
        return None
    return value


class ExtractionPipeline:
    """
    Primary extractor with deterministic fallback.

    Usage:
        pipeline = ExtractionPipeline(profile, client)
        candidate = pipeline.extract_message(message)
    """

    def __init__(
        self,
        profile: TrackerProfile,
        client: Optional[GeminiExtractorClient] = None,
        ai_enabled: bool = True,
    ):
        """
        Args:
            profile: Tracker profile (fields, vocabulary, patterns)
            client: AI extractor client; None runs the fallback only
            ai_enabled: False forces fallback-only mode
        """
        self.profile = profile
        self.client = client
        self.ai_enabled = ai_enabled and client is not None

    def extract(self, subject: str, body: str, sender: str = "") -> Candidate:
        """
        Extract a candidate from raw email parts.

        Args:
            subject: Email subject
            body: Plain-text body
            sender: From header ("Name <address>" or bare address)

        Returns:
            Candidate without provenance
        """
        sender_name, sender_email = parse_sender(sender) if sender else ("", "")

        primary = secondary = status = None
        source = SOURCE_FALLBACK
        reply: Optional[ExtractorReply] = None

        if self.ai_enabled:
            reply = self._call_extractor(subject, body)
            if reply.success:
                fields = self.profile.response_fields
                primary = _resolved(reply.data.get(fields.primary))
                secondary = _resolved(reply.data.get(fields.secondary))
                status = self.profile.canonical_status(reply.data.get(fields.status))
                source = SOURCE_AI

        if primary is None or secondary is None or status is None:
            if reply is not None and not reply.success:
                logger.warning(
                    f"Extractor failed ({reply.error_kind}), using fallback parser: {reply.error}"
                )
            fallback = fallback_extract(
                subject,
                body,
                self.profile,
                sender=sender_email,
                sender_name=sender_name,
            )
            if source == SOURCE_AI and (primary is None or secondary is None):
                source = SOURCE_MIXED
            primary = primary or fallback.primary
            secondary = secondary or fallback.secondary
            if status is None and fallback.status is not None:
                status = fallback.status
                if source == SOURCE_AI:
                    source = SOURCE_MIXED

        candidate = Candidate(
            primary=primary or MANUAL_REVIEW_NEEDED,
            secondary=secondary or MANUAL_REVIEW_NEEDED,
            status=status,
            source=source,
        )
        if reply is not None and not reply.success:
            candidate.error = reply.error
            candidate.error_kind = reply.error_kind
        if self.profile.has_column("platform"):
            candidate.platform = detect_platform(sender_email, sender_name)

        logger.debug(
            f"Extracted primary='{candidate.primary}' secondary='{candidate.secondary}' "
            f"status={candidate.status} via {candidate.source}"
        )
        return candidate

    def extract_message(self, message: EmailMessage) -> Candidate:
        """Extract a candidate from a fetched message and attach provenance."""
        sender = message.sender
        if message.sender_name and message.sender_name != message.sender:
            sender = f"{message.sender_name} <{message.sender}>"

        candidate = self.extract(message.subject, message.body or message.snippet, sender)
        candidate.subject = message.subject
        candidate.message_id = message.message_id
        candidate.thread_id = message.thread_id
        candidate.email_date = message.date
        candidate.permalink = build_permalink(message.message_id)
        return candidate

    def _call_extractor(self, subject: str, body: str) -> ExtractorReply:
        try:
            return self.client.extract(
                self.profile.extractor_instruction,
                subject,
                body,
                self.profile.response_fields.required(),
            )
        except Exception as e:
            # Client contract is to return a reply; treat anything else as a failure
            logger.exception(f"Extractor client raised unexpectedly: {e}")
            return ExtractorReply(success=False, error=str(e), error_kind="unexpected")
