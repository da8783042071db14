"""
Gmail integration service for the mail tracker.

Fetches labeled threads, exposes their messages as EmailMessage records
and applies label transitions. Labels themselves are never created here.
"""
import base64
import logging
import re
import socket
import time
from datetime import datetime, timezone
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from mailtracker.services.google_auth import get_google_auth, GoogleAccount
from mailtracker.services.resilience import is_retryable_status
from mailtracker.utils.datetime_utils import make_aware

# Default socket timeout so a stalled Gmail call cannot hang a batch
socket.setdefaulttimeout(30)

logger = logging.getLogger(__name__)

PERMALINK_BASE = "https://mail.google.com/mail/u/0/#inbox/"


class ThreadNotFoundError(Exception):
    """Thread vanished between fetch and label apply."""

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")


@dataclass
class EmailMessage:
    """Represents an email message."""
    message_id: str
    thread_id: str
    subject: str
    sender: str
    sender_name: str
    date: datetime
    snippet: str = ""
    body: Optional[str] = None
    labels: list[str] = field(default_factory=list)
    parse_error: Optional[str] = None  # set when the raw message could not be read

    @property
    def permalink(self) -> str:
        return build_permalink(self.message_id)

    @property
    def unreadable(self) -> bool:
        return self.parse_error is not None

    def to_dict(self) -> dict:
        return {
            "message_id": self.message_id,
            "thread_id": self.thread_id,
            "subject": self.subject,
            "sender": self.sender,
            "sender_name": self.sender_name,
            "date": self.date.isoformat(),
            "snippet": self.snippet,
            "body": self.body,
            "labels": self.labels,
            "permalink": self.permalink,
            "parse_error": self.parse_error,
        }


def build_permalink(message_id: str) -> str:
    """Web link to a message."""
    return f"{PERMALINK_BASE}{message_id}" if message_id else ""


def parse_sender(from_header: str) -> tuple[str, str]:
    """
    Parse From header into name and email.

    Args:
        from_header: Raw From header value

    Returns:
        Tuple of (sender_name, sender_email)
    """
    # Pattern: "Name <email@example.com>" or just "email@example.com"
    match = re.match(r'^"?([^"<]*)"?\s*<([^>]+)>$', from_header.strip())
    if match:
        name = match.group(1).strip()
        email = match.group(2).strip()
        return (name or email), email

    return from_header.strip(), from_header.strip()


class GmailService:
    """
    Gmail service for the processing batch.

    Includes rate limiting to prevent quota issues.
    """

    def __init__(
        self,
        account_type: GoogleAccount = GoogleAccount.PERSONAL,
        rate_limit_delay: float = 0.1
    ):
        """
        Initialize Gmail service.

        Args:
            account_type: Which Google account to use
            rate_limit_delay: Delay between API calls (seconds)
        """
        self.account_type = account_type
        self.rate_limit_delay = rate_limit_delay
        self._service = None
        self._last_call_time = 0

    @property
    def service(self):
        """Get or create Gmail API service with timeout."""
        if self._service is None:
            import httplib2
            from google_auth_httplib2 import AuthorizedHttp

            auth = get_google_auth(self.account_type)
            credentials = auth.get_credentials()

            http = httplib2.Http(timeout=30)
            authorized_http = AuthorizedHttp(credentials, http=http)

            self._service = build("gmail", "v1", http=authorized_http)
        return self._service

    def _rate_limit(self):
        """Apply rate limiting between API calls."""
        now = time.time()
        elapsed = now - self._last_call_time
        if elapsed < self.rate_limit_delay:
            time.sleep(self.rate_limit_delay - elapsed)
        self._last_call_time = time.time()

    def get_label_ids_by_name(self) -> dict[str, str]:
        """
        Map label name to label id for every label in the mailbox.
        """
        self._rate_limit()
        result = self.service.users().labels().list(userId="me").execute()
        return {label["name"]: label["id"] for label in result.get("labels", [])}

    def list_threads(self, label_id: str, max_results: int = 20) -> list[str]:
        """
        Thread ids carrying a label, newest first.

        Args:
            label_id: Gmail label id
            max_results: Maximum threads to return

        Returns:
            List of thread ids
        """
        self._rate_limit()
        result = self.service.users().threads().list(
            userId="me",
            labelIds=[label_id],
            maxResults=max_results,
        ).execute()
        return [t["id"] for t in result.get("threads", [])]

    def get_thread(self, thread_id: str, max_retries: int = 3) -> list[EmailMessage]:
        """
        Get every message of a thread, with retry for transient errors.

        Args:
            thread_id: Gmail thread ID
            max_retries: Maximum retry attempts for transient errors (429, 5xx)

        Returns:
            List of EmailMessage in thread order

        Raises:
            ThreadNotFoundError: Thread no longer exists
            HttpError: Non-transient API error or retries exhausted
        """
        for attempt in range(max_retries + 1):
            try:
                self._rate_limit()
                thread = self.service.users().threads().get(
                    userId="me",
                    id=thread_id,
                    format="full",
                ).execute()
                break
            except HttpError as e:
                if e.resp.status == 404:
                    raise ThreadNotFoundError(thread_id) from e
                if is_retryable_status(e.resp.status) and attempt < max_retries:
                    wait_time = (2 ** attempt) + 0.5  # 1.5s, 2.5s, 4.5s
                    logger.warning(
                        f"Gmail API error {e.resp.status} for thread {thread_id}, "
                        f"retrying in {wait_time}s (attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(wait_time)
                    continue
                raise

        messages = [self._parse_message(msg) for msg in thread.get("messages", [])]
        for message in messages:
            message.thread_id = message.thread_id or thread_id
        return messages

    def get_thread_label_ids(self, thread_id: str) -> set[str]:
        """
        Label ids currently on a thread.

        Raises:
            ThreadNotFoundError: Thread no longer exists
        """
        try:
            self._rate_limit()
            thread = self.service.users().threads().get(
                userId="me",
                id=thread_id,
                format="minimal",
            ).execute()
        except HttpError as e:
            if e.resp.status == 404:
                raise ThreadNotFoundError(thread_id) from e
            raise

        label_ids = set()
        for msg in thread.get("messages", []):
            label_ids.update(msg.get("labelIds", []))
        return label_ids

    def modify_thread(
        self,
        thread_id: str,
        add_label_ids: Optional[list[str]] = None,
        remove_label_ids: Optional[list[str]] = None,
    ) -> None:
        """
        Add and remove labels on a thread.

        Raises:
            ThreadNotFoundError: Thread no longer exists
        """
        body = {
            "addLabelIds": add_label_ids or [],
            "removeLabelIds": remove_label_ids or [],
        }
        try:
            self._rate_limit()
            self.service.users().threads().modify(
                userId="me",
                id=thread_id,
                body=body,
            ).execute()
        except HttpError as e:
            if e.resp.status == 404:
                raise ThreadNotFoundError(thread_id) from e
            raise

    def _parse_message(self, msg: dict) -> EmailMessage:
        """
        Parse raw Gmail API message into EmailMessage.

        Args:
            msg: Raw message dict from API

        Returns:
            EmailMessage; if parsing fails, a placeholder carrying only the
            ids and parse_error
        """
        try:
            payload = msg.get("payload", {})
            headers = payload.get("headers", [])

            subject = ""
            from_header = ""
            date_str = ""
            for header in headers:
                name = header.get("name", "").lower()
                value = header.get("value", "")
                if name == "subject":
                    subject = value
                elif name == "from":
                    from_header = value
                elif name == "date":
                    date_str = value

            sender_name, sender = parse_sender(from_header)

            # internalDate (ms since epoch) is what Gmail sorts by
            internal_date = msg.get("internalDate")
            if internal_date:
                date = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
            else:
                try:
                    # "-0000" and zone-less headers parse naive
                    date = make_aware(parsedate_to_datetime(date_str))
                except (TypeError, ValueError):
                    date = datetime.now(timezone.utc)

            return EmailMessage(
                message_id=msg.get("id", ""),
                thread_id=msg.get("threadId", ""),
                subject=subject,
                sender=sender,
                sender_name=sender_name,
                date=date,
                snippet=msg.get("snippet", ""),
                body=self._extract_body(payload),
                labels=msg.get("labelIds", []),
            )

        except Exception as e:
            logger.warning(f"Failed to parse message {msg.get('id', '?')}: {e}")
            return EmailMessage(
                message_id=msg.get("id", ""),
                thread_id=msg.get("threadId", ""),
                subject="",
                sender="",
                sender_name="",
                date=datetime.now(timezone.utc),
                labels=msg.get("labelIds", []),
                parse_error=f"{type(e).__name__}: {e}",
            )

    def _extract_body(self, payload: dict) -> Optional[str]:
        """
        Extract plain-text email body from payload.

        Prefers text/plain parts at any depth; falls back to text/html with
        tags stripped.
        """
        plain = _find_part(payload, "text/plain")
        if plain is not None:
            return plain

        html = _find_part(payload, "text/html")
        if html is not None:
            return re.sub(r"\s+", " ", re.sub(r"<[^>]+>", " ", html)).strip()

        return None


def _find_part(part: dict, mime_type: str) -> Optional[str]:
    """Depth-first search for the first decodable part of a MIME type."""
    data = part.get("body", {}).get("data")
    if data and part.get("mimeType", mime_type) == mime_type:
        try:
            return base64.urlsafe_b64decode(data).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            pass

    for child in part.get("parts", []):
        found = _find_part(child, mime_type)
        if found is not None:
            return found
    return None


# Singleton services per account
_gmail_services: dict[GoogleAccount, GmailService] = {}


def get_gmail_service(account_type: GoogleAccount = GoogleAccount.PERSONAL) -> GmailService:
    """Get or create Gmail service for an account."""
    if account_type not in _gmail_services:
        _gmail_services[account_type] = GmailService(account_type)
    return _gmail_services[account_type]
