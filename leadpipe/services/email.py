# leadpipe/services/email.py
"""
Outbound transactional email through the Resend HTTP API.

`send()` never raises on a provider-side rejection: it returns a `SendResult`
carrying either the message id or the provider's error message. Transport
failures (timeouts, connection errors) do raise `httpx.HTTPError`; callers
decide whether that is fatal.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

PROVIDER = "resend"


class EmailSendError(RuntimeError):
    """The provider refused a message."""


@dataclass
class SendResult:
    id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise EmailSendError(self.error)


class ResendEmailClient:
    def __init__(self, api_key: str, base_url: str = "https://api.resend.com", timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    def send(self, from_: str, to: List[str], subject: str, html: str, text: str) -> SendResult:
        response = self._client.post(
            "/emails",
            json={"from": from_, "to": to, "subject": subject, "html": html, "text": text},
        )
        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.is_error:
            message = body.get("message") or f"HTTP {response.status_code}"
            logger.warning("Resend rejected message to %s: %s", to, message)
            return SendResult(error=message)
        return SendResult(id=body.get("id"))

    def close(self) -> None:
        self._client.close()
