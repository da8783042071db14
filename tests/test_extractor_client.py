"""
Tests for the Gemini extractor client.

HTTP is served by httpx.MockTransport; retries sleep into a list.
"""
import json

import httpx
import pytest

from mailtracker.services.extractor_client import (
    GeminiExtractorClient,
    MalformedResponseError,
    build_prompt,
    parse_reply_text,
)

pytestmark = pytest.mark.unit

ENDPOINT = "https://gemini.test/v1beta/models/test:generateContent"
FIELDS = ("company", "title", "status")


def envelope(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_client(handler, sleeps, **kwargs):
    return GeminiExtractorClient(
        api_key=kwargs.pop("api_key", "test-key"),
        endpoint=ENDPOINT,
        timeout=5,
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        sleep=sleeps.append,
        **kwargs,
    )


class TestParseReplyText:
    """Test parsing of the model's text answer."""

    def test_fenced_json(self):
        text = '```json\n{"company": "Acme", "title": "Engineer", "status": "Applied"}\n```'
        assert parse_reply_text(text)["company"] == "Acme"

    def test_invalid_json(self):
        with pytest.raises(MalformedResponseError):
            parse_reply_text("I could not find a company")

    def test_non_object(self):
        with pytest.raises(MalformedResponseError):
            parse_reply_text('["Acme"]')


class TestBuildPrompt:
    """Test prompt assembly."""

    def test_markers_and_truncation(self):
        prompt = build_prompt("Extract fields.", "Hello", "0123456789ABCDEF", body_limit=10)
        assert "--- EMAIL TO PROCESS START ---" in prompt
        assert "Subject: Hello" in prompt
        assert "0123456789\n" in prompt
        assert "ABCDEF" not in prompt
        assert prompt.rstrip().endswith("JSON Output:")


class TestGeminiExtractorClient:
    """Test GeminiExtractorClient.extract."""

    def test_success(self):
        """A well-formed answer succeeds and the key is sent as a query param."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json=envelope(
                '```json\n{"company": "Acme", "title": "Engineer", "status": "Applied"}\n```'
            ))

        sleeps = []
        reply = make_client(handler, sleeps).extract("Extract.", "Subject", "Body", FIELDS)

        assert reply.success
        assert reply.data == {"company": "Acme", "title": "Engineer", "status": "Applied"}
        assert requests[0].url.params["key"] == "test-key"
        payload = json.loads(requests[0].content)
        assert "Subject: Subject" in payload["contents"][0]["parts"][0]["text"]
        assert sleeps == []

    def test_rate_limit_retried_once(self):
        """A 429 is retried after a randomized pause of 5 to 10 seconds."""
        responses = [
            httpx.Response(429, text="quota"),
            httpx.Response(200, json=envelope('{"company": "A", "title": "B", "status": "Applied"}')),
        ]

        def handler(request):
            return responses.pop(0)

        sleeps = []
        reply = make_client(handler, sleeps).extract("Extract.", "S", "B", FIELDS)

        assert reply.success
        assert len(sleeps) == 1
        assert 5.0 <= sleeps[0] <= 10.0

    def test_rate_limit_exhausted(self):
        """Two 429s in a row fail as rate limited."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, text="quota")

        sleeps = []
        reply = make_client(handler, sleeps).extract("Extract.", "S", "B", FIELDS)

        assert not reply.success
        assert reply.error_kind == "rate_limited"
        assert len(calls) == 2

    def test_transport_error_retried(self):
        """Connection failures are retried and then reported."""
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        reply = make_client(handler, []).extract("Extract.", "S", "B", FIELDS)

        assert reply.error_kind == "transport_error"
        assert len(calls) == 2

    def test_http_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="internal")

        reply = make_client(handler, []).extract("Extract.", "S", "B", FIELDS)

        assert reply.error_kind == "http_error"
        assert "500" in reply.error
        assert len(calls) == 1

    def test_malformed_text(self):
        def handler(request):
            return httpx.Response(200, json=envelope("Sorry, I can't help with that."))

        reply = make_client(handler, []).extract("Extract.", "S", "B", FIELDS)

        assert not reply.success
        assert reply.error_kind == "malformed_response"

    def test_unexpected_envelope(self):
        def handler(request):
            return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

        reply = make_client(handler, []).extract("Extract.", "S", "B", FIELDS)

        assert reply.error_kind == "malformed_response"

    def test_missing_fields(self):
        """An answer without every required key is malformed."""
        def handler(request):
            return httpx.Response(200, json=envelope('{"company": "Acme"}'))

        reply = make_client(handler, []).extract("Extract.", "S", "B", FIELDS)

        assert not reply.success
        assert reply.error_kind == "malformed_response"
        assert "title" in reply.error

    def test_no_api_key(self):
        """Without a key nothing is sent."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200)

        reply = make_client(handler, [], api_key="").extract("Extract.", "S", "B", FIELDS)

        assert reply.error_kind == "config"
        assert calls == []

    def test_empty_email(self):
        reply = make_client(lambda request: httpx.Response(200), []).extract("Extract.", "", "", FIELDS)
        assert reply.error_kind == "empty_input"
