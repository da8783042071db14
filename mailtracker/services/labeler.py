"""
Thread outcome tracking and final label transitions.

Each source thread moves pending -> done | manual. A thread is complete
once every one of its messages has been processed; its outcome is the
worst among them, so one manual-review message makes the whole thread
manual. Threads left incomplete (deadline reached) keep their "to
process" label and are picked up again by the next run.
"""
import logging
from dataclasses import dataclass, field

from mailtracker.services.gmail import ThreadNotFoundError

logger = logging.getLogger(__name__)

PENDING = "pending"
DONE = "done"
MANUAL = "manual"


@dataclass
class _ThreadState:
    remaining: int
    outcome: str = DONE


class ThreadOutcomes:
    """Per-thread outcome state machine for one batch."""

    def __init__(self):
        self._threads: dict[str, _ThreadState] = {}

    def register(self, thread_id: str, message_count: int) -> None:
        """Start tracking a thread with this many messages to process."""
        self._threads[thread_id] = _ThreadState(remaining=message_count)

    def record(self, thread_id: str, manual: bool = False) -> None:
        """
        Record one processed message.

        Args:
            thread_id: Owning thread
            manual: The message needs manual review
        """
        state = self._threads.get(thread_id)
        if state is None:
            logger.warning(f"Outcome recorded for unregistered thread {thread_id}")
            state = self._threads[thread_id] = _ThreadState(remaining=1)
        state.remaining = max(0, state.remaining - 1)
        if manual:
            state.outcome = MANUAL

    def flag_manual(self, thread_id: str) -> None:
        """Force a thread to manual without consuming a message."""
        state = self._threads.get(thread_id)
        if state is not None:
            state.outcome = MANUAL

    def state(self, thread_id: str) -> str:
        state = self._threads.get(thread_id)
        if state is None or state.remaining > 0:
            return PENDING
        return state.outcome

    def completed(self) -> dict[str, str]:
        """Outcome of every thread whose messages were all processed."""
        return {
            thread_id: state.outcome
            for thread_id, state in self._threads.items()
            if state.remaining == 0
        }

    def pending(self) -> list[str]:
        return [t for t, s in self._threads.items() if s.remaining > 0]


@dataclass
class LabelIds:
    """Resolved label ids for one tracker."""
    to_process: str
    processed: str
    manual_review: str


@dataclass
class LabelSummary:
    """Result of applying final labels."""
    processed: int = 0
    manual: int = 0
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "manual": self.manual,
            "missing": self.missing,
            "failed": self.failed,
        }


def apply_final_labels(outcomes: dict[str, str], mail, labels: LabelIds) -> LabelSummary:
    """
    Move completed threads out of "to process".

    Idempotent: labels already in the target state are left alone, and a
    thread that vanished since the fetch is skipped with a warning.

    Args:
        outcomes: thread id -> DONE | MANUAL (see ThreadOutcomes.completed)
        mail: Mail source with get_thread_label_ids and modify_thread
        labels: Label ids

    Returns:
        LabelSummary
    """
    summary = LabelSummary()

    for thread_id, outcome in outcomes.items():
        target = labels.manual_review if outcome == MANUAL else labels.processed
        try:
            current = mail.get_thread_label_ids(thread_id)
            add = [target] if target not in current else []
            remove = [labels.to_process] if labels.to_process in current else []
            if add or remove:
                mail.modify_thread(thread_id, add_label_ids=add, remove_label_ids=remove)
        except ThreadNotFoundError:
            logger.warning(f"Thread {thread_id} no longer exists; skipping labels")
            summary.missing.append(thread_id)
            continue
        except Exception as e:
            # Thread keeps "to process" and is retried next run
            logger.error(f"Failed to label thread {thread_id}: {e}")
            summary.failed.append(thread_id)
            continue

        if outcome == MANUAL:
            summary.manual += 1
        else:
            summary.processed += 1

    logger.info(
        f"Labels applied: {summary.processed} processed, {summary.manual} manual review, "
        f"{len(summary.missing)} missing, {len(summary.failed)} failed"
    )
    return summary
