"""
Reconciliation Policy.

Decides, for each extracted candidate, whether it creates a new tracked
entity or updates an existing one, and merges status on update.

Rules:
- A candidate with an unresolved key (manual-review sentinel) always
  creates a new entity and is flagged for manual review. It is never
  matched against existing entities.
- Otherwise an exact (primary, secondary) match updates that entity;
  no match creates one.
- On update, provenance is refreshed to the newest message. The proposed
  status applies if its rank is >= the current rank, or if it is one of the
  profile's override statuses (authoritative outcomes such as a rejection).
  Peak status is raised whenever the resulting status outranks it, so it
  never decreases.
- A candidate whose primary extraction failed with nothing recovered
  becomes a visible error entity.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from config.tracker_profiles import MANUAL_REVIEW_NEEDED, TrackerProfile
from mailtracker.services.entity_index import EntityIndex, PENDING_LOCATION, TrackedEntity
from mailtracker.services.extraction import Candidate

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"

ERROR_NOTES_LIMIT = 500


@dataclass
class ReconcileDecision:
    """Outcome of reconciling one candidate."""
    action: str
    entity: TrackedEntity
    requires_manual_review: bool = False
    previous_status: Optional[str] = None

    @property
    def is_create(self) -> bool:
        return self.action == CREATE

    @property
    def is_update(self) -> bool:
        return self.action == UPDATE

    @property
    def status_changed(self) -> bool:
        return self.is_update and self.previous_status != self.entity.status


def merge_status(
    profile: TrackerProfile,
    current_status: str,
    current_peak: Optional[str],
    new_status: Optional[str],
) -> tuple[str, str]:
    """
    Apply the status hierarchy to one update.

    Args:
        profile: Supplies ranks and the override set
        current_status: Entity status before the update
        current_peak: Entity peak before the update (blank means status)
        new_status: Proposed status; None keeps the current one

    Returns:
        (status, peak_status) after the update
    """
    status = current_status
    if new_status:
        forward = profile.rank(new_status) >= profile.rank(current_status)
        if forward or new_status in profile.override_statuses:
            status = new_status

    peak = current_peak or current_status
    if profile.rank(status) > profile.rank(peak):
        peak = status
    return status, peak


def truncate_notes(text: str, limit: int = ERROR_NOTES_LIMIT) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def build_error_entity(
    profile: TrackerProfile,
    error_type: str,
    detail: str,
    candidate: Optional[Candidate] = None,
    now: Optional[datetime] = None,
) -> TrackedEntity:
    """
    Synthetic row recording a failure for manual review.

    Keys hold the manual-review sentinel so the row is never matched.

    Args:
        profile: Tracker profile
        error_type: Short failure class (e.g. "malformed_response")
        detail: Failure detail, truncated into notes
        candidate: Message provenance, if known
        now: Processing time
    """
    now = now or datetime.now(timezone.utc)
    entity = TrackedEntity(
        primary=MANUAL_REVIEW_NEEDED,
        secondary=MANUAL_REVIEW_NEEDED,
        status=profile.manual_review_status,
        peak_status=profile.manual_review_status,
        processed_at=now,
        notes=truncate_notes(f"ERROR: {error_type}: {detail}"),
        location=PENDING_LOCATION,
    )
    if candidate is not None:
        _apply_provenance(entity, candidate, now)
        entity.email_date = candidate.email_date
        entity.platform = candidate.platform or ""
    else:
        entity.last_update = now
    return entity


def _apply_provenance(entity: TrackedEntity, candidate: Candidate, now: datetime) -> None:
    entity.last_update = candidate.email_date or now
    entity.subject = candidate.subject
    entity.permalink = candidate.permalink
    entity.message_id = candidate.message_id
    entity.thread_id = candidate.thread_id


class ReconciliationPolicy:
    """
    Create-or-update decisions for one tracker profile.

    Usage:
        policy = ReconciliationPolicy(profile)
        decision = policy.reconcile(candidate, index)
    """

    def __init__(
        self,
        profile: TrackerProfile,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.profile = profile
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def reconcile(self, candidate: Candidate, index: EntityIndex) -> ReconcileDecision:
        """
        Decide CREATE or UPDATE for a candidate.

        Created entities with resolved keys are inserted into the index as
        pending so later messages in the same batch match them. UPDATE
        mutates the indexed entity in place.
        """
        now = self._clock()

        if candidate.extraction_failed:
            entity = build_error_entity(
                self.profile,
                candidate.error_kind or "extraction_failed",
                candidate.error or "",
                candidate,
                now,
            )
            logger.warning(
                f"Extraction failed for message {candidate.message_id}: recording error row"
            )
            return ReconcileDecision(CREATE, entity, requires_manual_review=True)

        if candidate.requires_manual_review:
            entity = self._new_entity(candidate, now)
            entity.notes = self._manual_review_notes(candidate)
            logger.info(
                f"Unresolved keys for message {candidate.message_id}: "
                f"primary='{candidate.primary}' secondary='{candidate.secondary}'"
            )
            return ReconcileDecision(CREATE, entity, requires_manual_review=True)

        existing = index.find(candidate.primary, candidate.secondary)
        if existing is None:
            entity = index.insert_pending(self._new_entity(candidate, now))
            logger.info(
                f"CREATE '{entity.primary}' / '{entity.secondary}' status={entity.status}"
            )
            return ReconcileDecision(CREATE, entity)

        previous = existing.status
        newest = (
            candidate.email_date is None
            or existing.last_update is None
            or candidate.email_date >= existing.last_update
        )
        if newest:
            _apply_provenance(existing, candidate, now)

        existing.status, existing.peak_status = merge_status(
            self.profile, existing.status, existing.peak_status, candidate.status
        )
        logger.info(
            f"UPDATE '{existing.primary}' / '{existing.secondary}' "
            f"{previous} -> {existing.status} (peak {existing.peak_status})"
        )
        return ReconcileDecision(UPDATE, existing, previous_status=previous)

    def _new_entity(self, candidate: Candidate, now: datetime) -> TrackedEntity:
        status = candidate.status or self.profile.default_status
        entity = TrackedEntity(
            primary=candidate.primary,
            secondary=candidate.secondary,
            status=status,
            peak_status=status,
            email_date=candidate.email_date,
            processed_at=now,
            platform=candidate.platform or "",
            location=PENDING_LOCATION,
        )
        _apply_provenance(entity, candidate, now)
        return entity

    def _manual_review_notes(self, candidate: Candidate) -> str:
        unresolved = [
            name for name, value in (
                (self.profile.columns.get("primary", "primary"), candidate.primary),
                (self.profile.columns.get("secondary", "secondary"), candidate.secondary),
            )
            if value == MANUAL_REVIEW_NEEDED
        ]
        notes = f"Manual review: could not determine {', '.join(unresolved)}"
        if candidate.error:
            notes += f" (extractor: {candidate.error})"
        return truncate_notes(notes)
