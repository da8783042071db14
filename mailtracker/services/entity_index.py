"""
Entity Index.

In-memory map from normalized primary key (organization) to every tracked
entity sharing it, built once per run from the persisted table.

Matching is exact: the primary key selects a bucket in O(1) and the
secondary key (title) is compared case-insensitively inside it. There is no
primary-only fallback, so an ambiguous title never lands on another
record.

Entities created during a run are inserted as pending (location -1) so
later messages in the same batch match them; once the batch write returns
real locations they are patched in place.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

PENDING_LOCATION = -1


def normalize_key(value: Optional[str]) -> str:
    """Case-folded, whitespace-collapsed key."""
    return " ".join(str(value or "").split()).lower()


@dataclass
class TrackedEntity:
    """One tracked application or proposal (one table row)."""
    primary: str
    secondary: str
    status: str
    peak_status: str
    last_update: Optional[datetime] = None
    email_date: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    platform: str = ""
    subject: str = ""
    permalink: str = ""
    message_id: str = ""
    thread_id: str = ""
    notes: str = ""
    location: int = PENDING_LOCATION
    raw_values: list = field(default_factory=list)  # unmapped columns survive rewrites

    @property
    def is_pending(self) -> bool:
        return self.location == PENDING_LOCATION

    def matches(self, primary: str, secondary: str) -> bool:
        return (
            normalize_key(self.primary) == normalize_key(primary)
            and normalize_key(self.secondary) == normalize_key(secondary)
        )

    def to_dict(self) -> dict:
        return {
            "primary": self.primary,
            "secondary": self.secondary,
            "status": self.status,
            "peak_status": self.peak_status,
            "last_update": self.last_update.isoformat() if self.last_update else None,
            "message_id": self.message_id,
            "thread_id": self.thread_id,
            "location": self.location,
        }


class EntityIndex:
    """Primary-key buckets of tracked entities, in insertion order."""

    def __init__(self):
        self._buckets: dict[str, list[TrackedEntity]] = {}
        self._size = 0

    @classmethod
    def build(cls, entities: Iterable[TrackedEntity]) -> "EntityIndex":
        """
        Index persisted entities in row order.

        Entities with an empty primary key are skipped; they can never match.
        """
        index = cls()
        skipped = 0
        for entity in entities:
            if not normalize_key(entity.primary):
                skipped += 1
                continue
            index._add(entity)
        logger.info(
            f"Built entity index: {index._size} entities under {len(index._buckets)} keys"
            + (f" ({skipped} rows without a key skipped)" if skipped else "")
        )
        return index

    def __len__(self) -> int:
        return self._size

    def _add(self, entity: TrackedEntity) -> None:
        self._buckets.setdefault(normalize_key(entity.primary), []).append(entity)
        self._size += 1

    def lookup(self, primary: str) -> list[TrackedEntity]:
        """All entities under a primary key (empty list if none)."""
        return list(self._buckets.get(normalize_key(primary), []))

    def find(self, primary: str, secondary: str) -> Optional[TrackedEntity]:
        """
        First entity, in insertion order, matching both keys.
        """
        target = normalize_key(secondary)
        for entity in self._buckets.get(normalize_key(primary), []):
            if normalize_key(entity.secondary) == target:
                return entity
        return None

    def insert_pending(self, entity: TrackedEntity) -> TrackedEntity:
        """Add an entity created in this run, before it is persisted."""
        entity.location = PENDING_LOCATION
        self._add(entity)
        logger.debug(f"Pending entity '{entity.primary}' / '{entity.secondary}'")
        return entity

    def patch_location(self, entity: TrackedEntity, location: int) -> None:
        """Record where a pending entity was written."""
        if not entity.is_pending:
            raise ValueError(
                f"Entity '{entity.primary}' / '{entity.secondary}' already at {entity.location}"
            )
        if location <= 0:
            raise ValueError(f"Invalid location {location}")
        entity.location = location

    def pending(self) -> list[TrackedEntity]:
        """Entities still awaiting a location, in insertion order."""
        return [e for bucket in self._buckets.values() for e in bucket if e.is_pending]
