"""
Gemini extractor client.

Sends one email (subject plus truncated body) with a task instruction to the
Gemini generateContent endpoint and returns the JSON object it answers with.

The client never raises for bad answers. Every call resolves to an
ExtractorReply that says whether it succeeded and, if not, why:
- rate limited (HTTP 429, retried with randomized backoff)
- transport failure (connection errors and timeouts, retried)
- HTTP error (any other non-200 status, not retried)
- malformed content (unexpected envelope, invalid JSON, missing keys)
"""
import json
import logging
import re
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

import httpx

from config.settings import settings
from mailtracker.services.resilience import RetryConfig, retry_sync, EXTRACTOR_RETRY

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.2,
    "maxOutputTokens": 8192,
    "topP": 0.95,
    "topK": 40,
}

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_MEDIUM_AND_ABOVE"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]

_FENCE_RE = re.compile(r'^```(?:json)?\s*|\s*```$')


class ExtractorError(Exception):
    """Error communicating with the extractor."""
    kind = "extractor_error"


class RateLimitedError(ExtractorError):
    """Extractor answered HTTP 429."""
    kind = "rate_limited"


class ExtractorTransportError(ExtractorError):
    """Connection failure or timeout."""
    kind = "transport_error"


class ExtractorHTTPError(ExtractorError):
    """Non-200, non-429 HTTP answer."""
    kind = "http_error"


class MalformedResponseError(ExtractorError):
    """Answer did not contain the expected JSON object."""
    kind = "malformed_response"


@dataclass
class ExtractorReply:
    """Outcome of one extractor call."""
    success: bool
    data: dict = field(default_factory=dict)
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @classmethod
    def failed(cls, error: ExtractorError) -> "ExtractorReply":
        return cls(success=False, error=str(error), error_kind=error.kind)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "error_kind": self.error_kind,
        }


def build_prompt(instruction: str, subject: str, body: str, body_limit: int) -> str:
    """
    Assemble the extractor prompt.

    The body is cut to body_limit characters.
    """
    snippet = (body or "")[:body_limit]
    return (
        f"{instruction.strip()}\n\n"
        f"--- EMAIL TO PROCESS START ---\n"
        f"Subject: {subject or ''}\n"
        f"Body:\n"
        f"{snippet}\n"
        f"--- EMAIL TO PROCESS END ---\n\n"
        f"JSON Output:\n"
    )


def parse_reply_text(text: str) -> dict:
    """
    Parse the model's text answer into a dict.

    Strips ```json fences before parsing.

    Raises:
        MalformedResponseError: Not a JSON object
    """
    cleaned = _FENCE_RE.sub("", text.strip()).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON from extractor: {e}: {cleaned[:200]}")
    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class GeminiExtractorClient:
    """
    Client for the Gemini generateContent API.

    One instance per run; the underlying httpx.Client is reused across calls.
    """

    def __init__(
        self,
        api_key: str,
        endpoint: Optional[str] = None,
        timeout: Optional[float] = None,
        body_limit: Optional[int] = None,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the client.

        Args:
            api_key: Gemini API key
            endpoint: generateContent URL (default from settings)
            timeout: Request timeout in seconds (default from settings)
            body_limit: Body characters sent (default from settings)
            retry_config: Retry policy for rate limits and transport errors
            http_client: Preconfigured httpx client (tests pass a MockTransport)
            sleep: Sleep function used between retries
        """
        self.api_key = api_key
        self.endpoint = endpoint or settings.gemini_endpoint
        self.timeout = timeout or settings.extractor_timeout
        self.body_limit = body_limit or settings.extractor_body_limit
        base_config = retry_config or RetryConfig(
            max_attempts=settings.extractor_max_attempts,
            base_delay=EXTRACTOR_RETRY.base_delay,
            max_delay=EXTRACTOR_RETRY.max_delay,
            exponential_base=EXTRACTOR_RETRY.exponential_base,
            jitter=EXTRACTOR_RETRY.jitter,
        )
        self.retry_config = replace(
            base_config, retryable_exceptions=(RateLimitedError, ExtractorTransportError)
        )
        self._client = http_client
        self._sleep = sleep

    @property
    def client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def extract(
        self,
        instruction: str,
        subject: str,
        body: str,
        required_fields: tuple[str, ...],
    ) -> ExtractorReply:
        """
        Ask the extractor for the fields of one email.

        Args:
            instruction: Task instruction text
            subject: Email subject
            body: Plain-text body (truncated before sending)
            required_fields: Keys the JSON answer must contain

        Returns:
            ExtractorReply; success only if every required key is present
        """
        if not self.api_key:
            return ExtractorReply(success=False, error="No extractor API key", error_kind="config")
        if not subject and not body:
            return ExtractorReply(success=False, error="Empty email", error_kind="empty_input")

        prompt = build_prompt(instruction, subject, body, self.body_limit)
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": GENERATION_CONFIG,
            "safetySettings": SAFETY_SETTINGS,
        }
        logger.debug(f"Calling extractor, prompt length {len(prompt)}")

        post = retry_sync(self.retry_config, sleep=self._sleep)(self._post)
        try:
            text = post(payload)
            data = parse_reply_text(text)
        except ExtractorError as e:
            logger.warning(f"Extractor call failed ({e.kind}): {e}")
            return ExtractorReply.failed(e)

        missing = [key for key in required_fields if key not in data]
        if missing:
            error = MalformedResponseError(f"Extractor answer missing fields: {missing}")
            logger.warning(str(error))
            return ExtractorReply.failed(error)

        return ExtractorReply(success=True, data=data)

    def _post(self, payload: dict) -> str:
        """
        POST one request and return the candidate text.

        Raises:
            RateLimitedError, ExtractorTransportError, ExtractorHTTPError,
            MalformedResponseError
        """
        try:
            response = self.client.post(
                self.endpoint,
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except httpx.TransportError as e:
            raise ExtractorTransportError(f"Transport error calling extractor: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError("Extractor rate limit (429)")
        if response.status_code != 200:
            raise ExtractorHTTPError(
                f"Extractor HTTP {response.status_code}: {response.text[:500]}"
            )

        try:
            envelope = response.json()
            return envelope["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError(
                f"Unexpected extractor response structure: {response.text[:500]}"
            ) from e
