"""
Batch Orchestrator.

One run:
1. Validate configuration and resolve labels (ConfigurationError aborts)
2. Read the table and build the entity index
3. Fetch up to batch_size threads labeled "to process"
4. Flatten their messages and sort by date, oldest first
5. Extract and reconcile each message until the deadline
6. Write updates row by row, then append all creates at once and patch
   the index with the new row locations
7. Label every fully processed thread processed / manual review

A failure while handling one message is logged, recorded as an error row
and flags its thread for manual review; the batch continues. There is no
checkpointing: threads not finished before the deadline keep their label
and are picked up by the next run.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from config.tracker_profiles import MANUAL_REVIEW_NEEDED
from mailtracker.services.entity_index import EntityIndex, TrackedEntity
from mailtracker.services.extraction import Candidate, ExtractionPipeline
from mailtracker.services.gmail import EmailMessage, ThreadNotFoundError, build_permalink
from mailtracker.services.labeler import LabelSummary, ThreadOutcomes, apply_final_labels
from mailtracker.services.reconciliation import (
    ReconcileDecision,
    ReconciliationPolicy,
    build_error_entity,
)
from mailtracker.services.row_schema import RowSchema
from mailtracker.services.run_context import RunContext
from mailtracker.utils.datetime_utils import make_aware

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What one run did."""
    threads_fetched: int = 0
    messages_total: int = 0
    messages_processed: int = 0
    created: int = 0
    updated: int = 0
    manual_review: int = 0
    errors: int = 0
    write_failures: int = 0
    deadline_reached: bool = False
    labels: Optional[LabelSummary] = None
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "threads_fetched": self.threads_fetched,
            "messages_total": self.messages_total,
            "messages_processed": self.messages_processed,
            "created": self.created,
            "updated": self.updated,
            "manual_review": self.manual_review,
            "errors": self.errors,
            "write_failures": self.write_failures,
            "deadline_reached": self.deadline_reached,
            "labels": self.labels.to_dict() if self.labels else None,
            "duration_seconds": round(self.duration_seconds, 2),
        }


@dataclass
class _PendingWrite:
    entity: TrackedEntity
    thread_ids: set = field(default_factory=set)


class WriteAccumulator:
    """
    Writes collected during a batch.

    Updates are keyed by row location so an entity touched twice is written
    once with its final state. Updates to entities created earlier in the
    same batch fold into the pending create.
    """

    def __init__(self):
        self.updates: dict[int, _PendingWrite] = {}
        self.creates: list[_PendingWrite] = []
        self._creates_by_entity: dict[int, _PendingWrite] = {}

    def add(self, decision: ReconcileDecision, thread_id: str) -> None:
        entity = decision.entity
        if decision.is_create:
            write = _PendingWrite(entity, {thread_id})
            self.creates.append(write)
            self._creates_by_entity[id(entity)] = write
        elif entity.is_pending:
            self._creates_by_entity[id(entity)].thread_ids.add(thread_id)
        else:
            write = self.updates.setdefault(entity.location, _PendingWrite(entity))
            write.thread_ids.add(thread_id)

    def add_create(self, entity: TrackedEntity, thread_id: str) -> None:
        write = _PendingWrite(entity, {thread_id})
        self.creates.append(write)
        self._creates_by_entity[id(entity)] = write


class BatchOrchestrator:
    """
    Drives one processing run.

    Usage:
        orchestrator = BatchOrchestrator(context, mail, table, pipeline)
        summary = orchestrator.run()
    """

    def __init__(
        self,
        context: RunContext,
        mail,
        table,
        pipeline: ExtractionPipeline,
        policy: Optional[ReconciliationPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            context: Resolved run configuration
            mail: Mail source (GmailService or compatible)
            table: Row table (SheetsTable or compatible)
            pipeline: Extraction pipeline for the profile
            policy: Reconciliation policy (default built from the profile)
            clock: Monotonic seconds, for the deadline
            sleep: Pause between messages
        """
        self.context = context
        self.profile = context.profile
        self.mail = mail
        self.table = table
        self.pipeline = pipeline
        self.policy = policy or ReconciliationPolicy(self.profile)
        self._clock = clock
        self._sleep = sleep

    def run(self) -> RunSummary:
        """
        Process one batch.

        Raises:
            ConfigurationError: Before any message is processed
        """
        started = self._clock()
        summary = RunSummary()

        self.context.validate()
        label_ids = self.context.resolve_labels(self.mail.get_label_ids_by_name())

        header, rows = self.table.read_rows()
        schema = RowSchema.from_header(header, self.profile)
        if not header:
            self.table.write_header(schema.header)
        index = EntityIndex.build(schema.entities_from_rows(rows))

        thread_ids = self.mail.list_threads(label_ids.to_process, self.context.batch_size)
        summary.threads_fetched = len(thread_ids)
        if not thread_ids:
            logger.info(f"No threads labeled '{self.profile.labels.to_process}'")
            summary.duration_seconds = self._clock() - started
            return summary

        outcomes = ThreadOutcomes()
        messages = self._fetch_messages(thread_ids, outcomes)
        summary.messages_total = len(messages)
        logger.info(f"Processing {len(messages)} messages from {len(thread_ids)} threads")

        writes = WriteAccumulator()
        for position, message in enumerate(messages):
            if self._clock() - started > self.context.deadline_seconds:
                summary.deadline_reached = True
                logger.warning(
                    f"Deadline of {self.context.deadline_seconds}s reached; "
                    f"{len(messages) - position} messages left for the next run"
                )
                break

            manual = self._process_message(message, index, writes, summary)
            outcomes.record(message.thread_id, manual=manual)
            summary.messages_processed += 1
            if manual:
                summary.manual_review += 1

            if self.context.message_pause_seconds and position < len(messages) - 1:
                self._sleep(self.context.message_pause_seconds)

        self._flush(writes, schema, index, outcomes, summary)
        summary.labels = apply_final_labels(outcomes.completed(), self.mail, label_ids)
        summary.duration_seconds = self._clock() - started

        logger.info(
            f"Run finished: {summary.messages_processed}/{summary.messages_total} messages, "
            f"{summary.created} created, {summary.updated} updated, "
            f"{summary.manual_review} manual review, {summary.errors} errors"
        )
        return summary

    def _fetch_messages(self, thread_ids: list[str], outcomes: ThreadOutcomes) -> list[EmailMessage]:
        """All messages of the fetched threads, oldest first."""
        messages = []
        for thread_id in thread_ids:
            try:
                thread_messages = self.mail.get_thread(thread_id)
            except ThreadNotFoundError:
                logger.warning(f"Thread {thread_id} vanished before it could be read")
                continue
            except Exception as e:
                # Left labeled; retried next run
                logger.error(f"Failed to fetch thread {thread_id}: {e}")
                continue
            outcomes.register(thread_id, len(thread_messages))
            messages.extend(thread_messages)

        messages.sort(key=lambda m: (make_aware(m.date), m.message_id))
        return messages

    def _process_message(
        self,
        message: EmailMessage,
        index: EntityIndex,
        writes: WriteAccumulator,
        summary: RunSummary,
    ) -> bool:
        """
        Extract and reconcile one message.

        Returns:
            True if the message needs manual review
        """
        if message.unreadable:
            logger.error(f"Message {message.message_id} could not be read: {message.parse_error}")
            summary.errors += 1
            writes.add_create(
                self._error_entity(message, "MessageParseError", message.parse_error),
                message.thread_id,
            )
            summary.created += 1
            return True

        try:
            candidate = self.pipeline.extract_message(message)
            decision = self.policy.reconcile(candidate, index)
        except Exception as e:
            logger.exception(f"Error processing message {message.message_id}: {e}")
            summary.errors += 1
            writes.add_create(
                self._error_entity(message, type(e).__name__, str(e)), message.thread_id
            )
            summary.created += 1
            return True

        writes.add(decision, message.thread_id)
        if decision.is_create:
            summary.created += 1
        else:
            summary.updated += 1
        return decision.requires_manual_review

    def _error_entity(self, message: EmailMessage, kind: str, detail: str) -> TrackedEntity:
        provenance = Candidate(
            primary=MANUAL_REVIEW_NEEDED,
            secondary=MANUAL_REVIEW_NEEDED,
            subject=message.subject,
            message_id=message.message_id,
            thread_id=message.thread_id,
            email_date=message.date,
            permalink=build_permalink(message.message_id),
        )
        return build_error_entity(self.profile, kind, detail, provenance)

    def _flush(
        self,
        writes: WriteAccumulator,
        schema: RowSchema,
        index: EntityIndex,
        outcomes: ThreadOutcomes,
        summary: RunSummary,
    ) -> None:
        """Persist accumulated writes; failures flag the affected threads."""
        for location, write in writes.updates.items():
            try:
                self.table.update_row(location, schema.entity_to_row(write.entity))
            except Exception as e:
                logger.error(f"Failed to update row {location}: {e}")
                summary.write_failures += 1
                for thread_id in write.thread_ids:
                    outcomes.flag_manual(thread_id)

        if not writes.creates:
            return

        rows = [schema.entity_to_row(write.entity) for write in writes.creates]
        try:
            first_location = self.table.append_rows(rows)
        except Exception as e:
            logger.error(f"Failed to append {len(rows)} new rows: {e}")
            summary.write_failures += 1
            for write in writes.creates:
                for thread_id in write.thread_ids:
                    outcomes.flag_manual(thread_id)
            return

        for offset, write in enumerate(writes.creates):
            index.patch_location(write.entity, first_location + offset)
        logger.info(f"Appended {len(rows)} rows starting at row {first_location}")
