"""
Tests for Gmail Integration.
- Threads are listed by label id
- Messages carry subject, sender, date, body and permalink
- Label changes go through threads().modify
- A vanished thread raises ThreadNotFoundError
- Transient 5xx errors are retried
"""
import base64
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from googleapiclient.errors import HttpError

from mailtracker.services.gmail import (
    EmailMessage,
    GmailService,
    ThreadNotFoundError,
    build_permalink,
    parse_sender,
)

# All tests in this file use mocks (unit tests)
pytestmark = pytest.mark.unit


def b64(text):
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii")


def http_error(status):
    resp = MagicMock()
    resp.status = status
    return HttpError(resp, b'{"error": "test"}')


def raw_message(message_id="m1", thread_id="t1", payload=None, internal_date="1709283600000"):
    return {
        "id": message_id,
        "threadId": thread_id,
        "snippet": "Thanks for applying",
        "internalDate": internal_date,
        "labelIds": ["L_todo"],
        "payload": payload or {
            "mimeType": "text/plain",
            "headers": [
                {"name": "Subject", "value": "Application for Data Analyst at Initech"},
                {"name": "From", "value": "Initech Recruiting <jobs@initech.com>"},
                {"name": "Date", "value": "Fri, 1 Mar 2024 09:00:00 +0000"},
            ],
            "body": {"data": b64("Thank you for applying.")},
        },
    }


@pytest.fixture
def gmail():
    service = GmailService(rate_limit_delay=0)
    service._service = MagicMock()
    return service


class TestEmailMessage:
    """Test EmailMessage dataclass."""

    def test_permalink(self):
        msg = EmailMessage(
            message_id="abc123",
            thread_id="thread1",
            subject="Interview",
            sender="jobs@acme.com",
            sender_name="Acme",
            date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
        assert msg.permalink == "https://mail.google.com/mail/u/0/#inbox/abc123"
        assert msg.to_dict()["permalink"] == msg.permalink

    def test_empty_permalink(self):
        assert build_permalink("") == ""


class TestParseSender:
    """Test From header parsing."""

    def test_name_and_address(self):
        assert parse_sender('"Acme Careers" <jobs@acme.com>') == ("Acme Careers", "jobs@acme.com")

    def test_bare_address(self):
        assert parse_sender("jobs@acme.com") == ("jobs@acme.com", "jobs@acme.com")


class TestGmailService:
    """Test GmailService against a mocked API."""

    def test_label_ids_by_name(self, gmail):
        gmail._service.users().labels().list().execute.return_value = {
            "labels": [{"name": "MailTracker/Applications/To Process", "id": "L1"}]
        }
        assert gmail.get_label_ids_by_name() == {"MailTracker/Applications/To Process": "L1"}

    def test_list_threads(self, gmail):
        gmail._service.users().threads().list().execute.return_value = {
            "threads": [{"id": "t1"}, {"id": "t2"}]
        }

        assert gmail.list_threads("L1", max_results=5) == ["t1", "t2"]
        gmail._service.users().threads().list.assert_called_with(
            userId="me", labelIds=["L1"], maxResults=5
        )

    def test_list_threads_empty(self, gmail):
        """No matching threads returns an empty list, not an error."""
        gmail._service.users().threads().list().execute.return_value = {}
        assert gmail.list_threads("L1") == []

    def test_get_thread_parses_messages(self, gmail):
        gmail._service.users().threads().get().execute.return_value = {
            "messages": [raw_message()]
        }

        messages = gmail.get_thread("t1")

        assert len(messages) == 1
        msg = messages[0]
        assert msg.subject == "Application for Data Analyst at Initech"
        assert msg.sender == "jobs@initech.com"
        assert msg.sender_name == "Initech Recruiting"
        assert msg.body == "Thank you for applying."
        assert msg.date == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_html_body_stripped(self, gmail):
        """HTML-only messages are reduced to text."""
        payload = {
            "mimeType": "multipart/alternative",
            "headers": [{"name": "Subject", "value": "Hi"}],
            "parts": [{"mimeType": "text/html", "body": {"data": b64("<p>We are <b>pleased</b></p>")}}],
        }
        gmail._service.users().threads().get().execute.return_value = {
            "messages": [raw_message(payload=payload)]
        }

        assert gmail.get_thread("t1")[0].body == "We are pleased"

    def test_plain_part_preferred(self, gmail):
        payload = {
            "mimeType": "multipart/alternative",
            "headers": [],
            "parts": [
                {"mimeType": "text/html", "body": {"data": b64("<p>html</p>")}},
                {"mimeType": "text/plain", "body": {"data": b64("plain")}},
            ],
        }
        gmail._service.users().threads().get().execute.return_value = {
            "messages": [raw_message(payload=payload)]
        }

        assert gmail.get_thread("t1")[0].body == "plain"

    def test_unparseable_message_kept_as_placeholder(self, gmail):
        """A message that fails to parse stays in the thread, flagged."""
        gmail._service.users().threads().get().execute.return_value = {
            "messages": [raw_message(), raw_message("m2", internal_date="not-a-number")]
        }

        messages = gmail.get_thread("t1")

        assert [m.message_id for m in messages] == ["m1", "m2"]
        assert not messages[0].unreadable
        assert messages[1].unreadable
        assert messages[1].parse_error.startswith("ValueError")
        assert messages[1].thread_id == "t1"
        assert messages[1].date.tzinfo is not None

    def test_date_header_without_zone_is_utc(self, gmail):
        """'-0000' Date headers parse naive; they are treated as UTC."""
        msg = raw_message(internal_date=None)
        msg["payload"]["headers"][2]["value"] = "Mon, 1 Jan 2024 10:00:00 -0000"
        gmail._service.users().threads().get().execute.return_value = {"messages": [msg]}

        message = gmail.get_thread("t1")[0]

        assert message.date == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert message.date > datetime(2023, 12, 31, tzinfo=timezone.utc)

    def test_get_thread_not_found(self, gmail):
        gmail._service.users().threads().get().execute.side_effect = http_error(404)

        with pytest.raises(ThreadNotFoundError):
            gmail.get_thread("gone")

    def test_get_thread_retries_server_errors(self, gmail):
        gmail._service.users().threads().get().execute.side_effect = [
            http_error(503),
            {"messages": [raw_message()]},
        ]

        with patch("mailtracker.services.gmail.time.sleep") as mock_sleep:
            messages = gmail.get_thread("t1")

        assert len(messages) == 1
        mock_sleep.assert_called_once()

    def test_thread_label_ids(self, gmail):
        gmail._service.users().threads().get().execute.return_value = {
            "messages": [{"labelIds": ["A", "B"]}, {"labelIds": ["B", "C"]}]
        }
        assert gmail.get_thread_label_ids("t1") == {"A", "B", "C"}

    def test_modify_thread(self, gmail):
        gmail.modify_thread("t1", add_label_ids=["L_done"], remove_label_ids=["L_todo"])

        gmail._service.users().threads().modify.assert_called_with(
            userId="me",
            id="t1",
            body={"addLabelIds": ["L_done"], "removeLabelIds": ["L_todo"]},
        )

    def test_modify_vanished_thread(self, gmail):
        gmail._service.users().threads().modify().execute.side_effect = http_error(404)

        with pytest.raises(ThreadNotFoundError):
            gmail.modify_thread("gone", add_label_ids=["L_done"])
