"""
test_email_client.py
--------------------
`ResendEmailClient` against an `httpx.MockTransport` (no network).
"""

import json

import httpx
import pytest

from leadpipe.services.email import EmailSendError, ResendEmailClient, SendResult


def _client(handler):
    return ResendEmailClient("re_test_key", transport=httpx.MockTransport(handler))


def test_send_posts_message_and_returns_id():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email_123"})

    client = _client(handler)
    result = client.send("Leadpipe <noreply@example.com>", ["owner@acme.test"], "Hi", "<p>Hi</p>", "Hi")
    client.close()

    assert result == SendResult(id="email_123")
    assert result.ok
    assert seen["url"] == "https://api.resend.com/emails"
    assert seen["auth"] == "Bearer re_test_key"
    assert seen["body"]["to"] == ["owner@acme.test"]
    assert seen["body"]["from"] == "Leadpipe <noreply@example.com>"
    assert seen["body"]["text"] == "Hi"


def test_provider_rejection_is_returned_not_raised():
    client = _client(lambda request: httpx.Response(422, json={"message": "Invalid `to` field"}))

    result = client.send("a@example.com", ["not-an-email"], "Hi", "<p>Hi</p>", "Hi")

    assert not result.ok
    assert result.error == "Invalid `to` field"
    with pytest.raises(EmailSendError, match="Invalid"):
        result.raise_for_error()


def test_rejection_without_json_body_uses_status():
    client = _client(lambda request: httpx.Response(502, text="Bad gateway"))
    result = client.send("a@example.com", ["b@example.com"], "Hi", "<p>Hi</p>", "Hi")
    assert result.error == "HTTP 502"
