"""
Stale Sweeper.

Independent batch pass over the persisted table: every entity whose status
is not exempt (terminal outcomes and manual review) and whose last update
is older than the threshold is demoted to the profile's stale status
(Rejected for applications, Declined for proposals). Peak status is kept.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from config.tracker_profiles import TrackerProfile
from mailtracker.services.row_schema import RowSchema

logger = logging.getLogger(__name__)


def sweep(
    table,
    profile: TrackerProfile,
    threshold: timedelta,
    now: Optional[datetime] = None,
    dry_run: bool = False,
) -> int:
    """
    Demote stale entities.

    Args:
        table: Row table (read_rows / update_rows)
        profile: Tracker profile (exempt set, stale status)
        threshold: Maximum age of the last update
        now: Current time (default: now, UTC)
        dry_run: Count without writing

    Returns:
        Number of entities demoted
    """
    now = now or datetime.now(timezone.utc)
    header, rows = table.read_rows()
    schema = RowSchema.from_header(header, profile)

    changed = {}
    undated = 0
    for location, values in rows:
        entity = schema.entity_from_row(values, location)
        if not entity.status or entity.status in profile.stale_exempt_statuses:
            continue
        if entity.last_update is None:
            undated += 1
            continue
        if now - entity.last_update <= threshold:
            continue

        previous = entity.status
        entity.peak_status = entity.peak_status or previous
        entity.status = profile.stale_status
        entity.last_update = now
        note = f"(Auto-updated to {profile.stale_status} on {now.strftime('%Y-%m-%d')})"
        entity.notes = f"{entity.notes} {note}".strip()
        changed[location] = schema.entity_to_row(entity)

        logger.info(
            f"Stale: row {location} '{entity.primary}' / '{entity.secondary}' "
            f"{previous} -> {profile.stale_status}"
        )

    if undated:
        logger.warning(f"{undated} rows have no parseable last-update date; left unchanged")

    if changed and not dry_run:
        table.update_rows(changed)

    logger.info(
        f"Stale sweep ({profile.name}, {threshold.days} days): "
        f"{len(changed)} {'would be ' if dry_run else ''}demoted"
    )
    return len(changed)
