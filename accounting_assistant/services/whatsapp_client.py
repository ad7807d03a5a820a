"""HTTP client for the WhatsApp Cloud API (Graph API).

Covers the handful of calls the assistant needs: sending text replies,
marking inbound messages as read, and resolving / downloading voice-note
media.  All requests carry the business access token as a Bearer token.

Requests are not retried: a failed send surfaces immediately as
:class:`WhatsAppAPIError` so the caller can decide what to tell the user.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

import httpx

from accounting_assistant.config import (
    GRAPH_API_BASE_URL,
    WHATSAPP_ACCESS_TOKEN,
    WHATSAPP_PHONE_NUMBER_ID,
)
from accounting_assistant.services.metrics import metrics

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0
MAX_TEXT_LENGTH = 4096  # WhatsApp text body limit


class WhatsAppAPIError(Exception):
    """Raised when a WhatsApp Cloud API call fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


def split_message(body: str, limit: int = MAX_TEXT_LENGTH) -> list[str]:
    """Split *body* into chunks of at most *limit* characters.

    Chunks break on line boundaries where possible; a single line longer
    than *limit* is hard-wrapped.
    """
    if len(body) <= limit:
        return [body]

    chunks: list[str] = []
    current = ""
    for line in body.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        candidate = f"{current}\n{line}" if current else line
        if len(candidate) > limit:
            chunks.append(current)
            current = line
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class WhatsAppClient:
    """Thin wrapper around the WhatsApp Cloud API messaging endpoints."""

    def __init__(
        self,
        token: str | None = None,
        phone_number_id: str | None = None,
        base_url: str | None = None,
    ):
        self._token = token or WHATSAPP_ACCESS_TOKEN
        self._phone_number_id = phone_number_id or WHATSAPP_PHONE_NUMBER_ID
        self._base_url = base_url or GRAPH_API_BASE_URL
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._token}"},
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    # ── Internal helpers ─────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Execute one request; any transport error or status >= 400 raises."""
        with metrics.track("whatsapp", operation):
            try:
                response = self._client.request(method, path, json=json_body)
            # InvalidURL is not an HTTPError subclass.
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                raise WhatsAppAPIError(f"WhatsApp request failed: {exc}") from exc

            if response.status_code >= 400:
                raise WhatsAppAPIError(
                    f"WhatsApp API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )
            return response

    # ── Public API ───────────────────────────────────────────────────

    def send_text(self, to: str, body: str) -> None:
        """Send a text message, splitting bodies over the WhatsApp limit."""
        for chunk in split_message(body):
            self._request(
                "POST",
                f"/{self._phone_number_id}/messages",
                operation="POST /messages",
                json_body={
                    "messaging_product": "whatsapp",
                    "to": to,
                    "type": "text",
                    "text": {"body": chunk},
                },
            )
        logger.info("Sent reply to %s (%d chars)", to, len(body))

    def mark_as_read(self, message_id: str) -> None:
        """Send a read receipt.  Failures are logged, never raised."""
        try:
            self._request(
                "POST",
                f"/{self._phone_number_id}/messages",
                operation="POST /messages:read",
                json_body={
                    "messaging_product": "whatsapp",
                    "status": "read",
                    "message_id": message_id,
                },
            )
        except WhatsAppAPIError as exc:
            logger.warning("Could not mark message %s as read: %s", message_id, exc)

    def get_media_url(self, media_id: str) -> str:
        """Resolve a media id to its (short-lived) download URL."""
        data = self._request("GET", f"/{media_id}", operation="GET /media").json()
        url = data.get("url")
        if not url:
            raise WhatsAppAPIError(f"Media {media_id} has no download URL")
        return url

    def download_media(self, url: str) -> bytes:
        """Download media bytes from an absolute URL returned by the API."""
        return self._request("GET", url, operation="GET media download").content

    def close(self) -> None:
        self._client.close()


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: WhatsAppClient | None = None
_client_lock = threading.Lock()


def get_whatsapp_client() -> WhatsAppClient:
    """Return the process-wide WhatsApp client, creating it on first use."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = WhatsAppClient()
    return _client
