"""
Pytest configuration and shared fixtures for mail tracker tests.

Test Categories:
- unit: Fast tests with no external dependencies
- integration: Tests requiring Google or Gemini credentials

Run categories:
- pytest -m unit              # Fast unit tests only
- pytest -m "not integration" # Skip integration tests
- pytest                      # All tests

The fakes below stand in for Gmail and the tracker sheet. They implement
the same methods the orchestrator, labeler and stale sweeper call on
GmailService and SheetsTable.
"""
from datetime import datetime, timedelta, timezone

import pytest

from mailtracker.services.gmail import EmailMessage, ThreadNotFoundError


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Requires Google or Gemini credentials")


BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_message(
    message_id: str,
    thread_id: str = "t1",
    subject: str = "",
    body: str = "",
    sender: str = "jobs@acme.com",
    sender_name: str = "Acme Careers",
    minutes: int = 0,
) -> EmailMessage:
    """EmailMessage at BASE_TIME + minutes."""
    return EmailMessage(
        message_id=message_id,
        thread_id=thread_id,
        subject=subject,
        sender=sender,
        sender_name=sender_name,
        date=BASE_TIME + timedelta(minutes=minutes),
        body=body,
    )


class FakeMail:
    """In-memory mailbox: threads, labels and label changes."""

    LABELS = {
        "MailTracker/Applications/To Process": "L_todo",
        "MailTracker/Applications/Processed": "L_done",
        "MailTracker/Applications/Manual Review": "L_manual",
        "MailTracker/Proposals/To Process": "P_todo",
        "MailTracker/Proposals/Processed": "P_done",
        "MailTracker/Proposals/Manual Review": "P_manual",
    }

    def __init__(self, labels: dict = None):
        self.labels = dict(self.LABELS if labels is None else labels)
        self.threads: dict[str, list[EmailMessage]] = {}
        self.thread_labels: dict[str, set] = {}
        self.modified: list[tuple] = []
        self.vanish_on_label: set = set()

    def add_thread(self, thread_id: str, messages: list, label_id: str = "L_todo"):
        self.threads[thread_id] = list(messages)
        self.thread_labels[thread_id] = {label_id}

    def get_label_ids_by_name(self) -> dict:
        return dict(self.labels)

    def list_threads(self, label_id: str, max_results: int = 20) -> list:
        matching = [t for t, labels in self.thread_labels.items() if label_id in labels]
        return matching[:max_results]

    def get_thread(self, thread_id: str) -> list:
        if thread_id not in self.threads:
            raise ThreadNotFoundError(thread_id)
        return list(self.threads[thread_id])

    def get_thread_label_ids(self, thread_id: str) -> set:
        if thread_id not in self.thread_labels or thread_id in self.vanish_on_label:
            raise ThreadNotFoundError(thread_id)
        return set(self.thread_labels[thread_id])

    def modify_thread(self, thread_id, add_label_ids=None, remove_label_ids=None):
        if thread_id not in self.thread_labels:
            raise ThreadNotFoundError(thread_id)
        self.modified.append((thread_id, tuple(add_label_ids or ()), tuple(remove_label_ids or ())))
        self.thread_labels[thread_id] |= set(add_label_ids or ())
        self.thread_labels[thread_id] -= set(remove_label_ids or ())


class FakeTable:
    """In-memory sheet tab; row 1 is the header."""

    def __init__(self, header: list = None, rows: list = None):
        self.header = list(header or [])
        self.rows: list[list] = [list(r) for r in (rows or [])]
        self.updated: list[int] = []
        self.appended: list[list] = []
        self.fail_updates = False
        self.fail_appends = False

    def read_rows(self):
        return list(self.header), [(i + 2, list(r)) for i, r in enumerate(self.rows)]

    def write_header(self, header):
        self.header = list(header)

    def update_row(self, location, values):
        if self.fail_updates:
            raise RuntimeError("sheet unavailable")
        self.rows[location - 2] = list(values)
        self.updated.append(location)

    def update_rows(self, rows: dict):
        for location, values in rows.items():
            self.update_row(location, values)

    def append_rows(self, rows):
        if self.fail_appends:
            raise RuntimeError("sheet unavailable")
        first = len(self.rows) + 2
        self.rows.extend(list(r) for r in rows)
        self.appended.extend(list(r) for r in rows)
        return first

    def record(self, location: int) -> dict:
        """Row at a location as header -> value."""
        values = self.rows[location - 2]
        return dict(zip(self.header, values))

    def records(self) -> list[dict]:
        return [dict(zip(self.header, r)) for r in self.rows]


@pytest.fixture
def applications_profile():
    from config.tracker_profiles import APPLICATIONS
    return APPLICATIONS


@pytest.fixture
def proposals_profile():
    from config.tracker_profiles import PROPOSALS
    return PROPOSALS


@pytest.fixture
def fake_mail():
    return FakeMail()


@pytest.fixture
def fake_table(applications_profile):
    return FakeTable(header=list(applications_profile.headers))


@pytest.fixture
def property_store(tmp_path):
    from mailtracker.services.property_store import PropertyStore
    return PropertyStore(tmp_path / "properties.json")


@pytest.fixture
def message_factory():
    """Build EmailMessages (see make_message)."""
    return make_message


@pytest.fixture
def table_factory():
    """Build FakeTables."""
    return FakeTable


@pytest.fixture
def mail_factory():
    """Build FakeMail mailboxes (pass labels={} for a mailbox without tracker labels)."""
    return FakeMail
