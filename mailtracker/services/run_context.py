"""
Run context.

Everything one run needs, resolved once at startup from settings, the
selected tracker profile and the property store, and passed explicitly to
the orchestrator and stale sweeper. Configuration problems surface here as
ConfigurationError, before any message is touched.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from config.settings import Settings, settings as default_settings
from config.tracker_profiles import TrackerProfile, load_profile
from mailtracker.services.labeler import LabelIds
from mailtracker.services.property_store import (
    AI_EXTRACTION_FLAG,
    GEMINI_API_KEY_PROPERTY,
    PropertyStore,
    get_property_store,
)

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Missing or inconsistent configuration; aborts the run."""
    pass


@dataclass
class RunContext:
    """Resolved configuration for one processing or sweep run."""
    profile: TrackerProfile
    spreadsheet_id: str
    sheet_tab: str
    batch_size: int = 20
    deadline_seconds: float = 320.0
    message_pause_seconds: float = 0.25
    stale_weeks: int = 8
    ai_enabled: bool = True
    api_key: str = ""

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        properties: Optional[PropertyStore] = None,
        profile_name: Optional[str] = None,
    ) -> "RunContext":
        """
        Build a context from settings and the property store.

        The environment wins over the property store for the API key; the
        property store can only switch AI extraction off, not on.

        Raises:
            ConfigurationError: Unknown profile or bad profile overrides
        """
        s = settings or default_settings
        props = properties or get_property_store()

        try:
            profile = load_profile(profile_name or s.tracker_profile, s.profile_overrides_path)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        return cls(
            profile=profile,
            spreadsheet_id=s.spreadsheet_id,
            sheet_tab=s.sheet_tab or profile.sheet_tab,
            batch_size=s.batch_size,
            deadline_seconds=s.deadline_seconds,
            message_pause_seconds=s.message_pause_seconds,
            stale_weeks=s.stale_weeks or profile.stale_weeks,
            ai_enabled=s.ai_extraction_enabled and props.get_bool(AI_EXTRACTION_FLAG, True),
            api_key=s.gemini_api_key or props.get(GEMINI_API_KEY_PROPERTY, ""),
        )

    @property
    def stale_threshold(self) -> timedelta:
        return timedelta(weeks=self.stale_weeks)

    def validate(self, require_extractor: bool = True) -> None:
        """
        Check required identifiers and credentials.

        Args:
            require_extractor: Check the API key (processing runs only)

        Raises:
            ConfigurationError: First problem found
        """
        problems = []
        if not self.spreadsheet_id:
            problems.append("TRACKER_SPREADSHEET_ID is not set")
        if not self.sheet_tab:
            problems.append("No sheet tab configured")
        if self.batch_size <= 0:
            problems.append(f"Batch size must be positive, got {self.batch_size}")
        if self.deadline_seconds <= 0:
            problems.append(f"Deadline must be positive, got {self.deadline_seconds}")
        if self.stale_weeks <= 0:
            problems.append(f"Stale threshold must be positive, got {self.stale_weeks} weeks")
        if require_extractor and self.ai_enabled and not self.api_key:
            problems.append(
                "AI extraction is enabled but no Gemini API key is configured "
                "(set GEMINI_API_KEY or run scripts/set_api_key.py)"
            )

        if problems:
            raise ConfigurationError("; ".join(problems))

    def resolve_labels(self, label_ids_by_name: dict[str, str]) -> LabelIds:
        """
        Look up the profile's labels in the mailbox.

        Raises:
            ConfigurationError: A label does not exist (labels are not created)
        """
        names = self.profile.labels
        missing = [
            name for name in (names.to_process, names.processed, names.manual_review)
            if name not in label_ids_by_name
        ]
        if missing:
            raise ConfigurationError(f"Gmail labels not found: {missing}")

        return LabelIds(
            to_process=label_ids_by_name[names.to_process],
            processed=label_ids_by_name[names.processed],
            manual_review=label_ids_by_name[names.manual_review],
        )

    def to_dict(self) -> dict:
        """Printable summary (no secrets)."""
        return {
            "profile": self.profile.name,
            "spreadsheet_id": self.spreadsheet_id,
            "sheet_tab": self.sheet_tab,
            "batch_size": self.batch_size,
            "deadline_seconds": self.deadline_seconds,
            "message_pause_seconds": self.message_pause_seconds,
            "stale_weeks": self.stale_weeks,
            "ai_enabled": self.ai_enabled,
            "api_key_configured": bool(self.api_key),
            "labels": {
                "to_process": self.profile.labels.to_process,
                "processed": self.profile.labels.processed,
                "manual_review": self.profile.labels.manual_review,
            },
        }
