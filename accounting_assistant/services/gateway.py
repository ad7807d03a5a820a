"""Inbound WhatsApp webhook handling.

Walks ``entry[].changes[].value.messages[]`` of a delivery, turns each
message into text (transcribing voice notes) and hands it to the
conversation agent, then sends the reply back to the sender.  Shapes that
do not match at any level are skipped rather than failing the delivery.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from accounting_assistant.services.transcription import AudioTranscriber, TranscriptionError
from accounting_assistant.services.whatsapp_client import WhatsAppAPIError, WhatsAppClient

logger = logging.getLogger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"

LISTENING_TEXT = "🎤 Ses kaydınızı dinliyorum..."
UNCLEAR_AUDIO_TEXT = (
    "Üzgünüm, ses kaydınızı anlayamadım. Lütfen tekrar deneyin veya yazılı mesaj gönderin."
)
AUDIO_ERROR_TEXT = "Ses kaydınızı işlerken bir hata oluştu. Lütfen tekrar deneyin."


class TextBody(BaseModel):
    body: str = ""


class MediaRef(BaseModel):
    id: str


class InboundMessage(BaseModel):
    """One element of ``value.messages`` in a webhook delivery."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    sender: str = Field(..., alias="from")
    type: str
    text: TextBody | None = None
    audio: MediaRef | None = None
    voice: MediaRef | None = None


class ConversationAgent(Protocol):
    def process_message(self, sender: str, text: str) -> str: ...


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _message_values(payload: dict[str, Any]) -> Iterator[dict[str, Any]]:
    for entry in _as_list(payload.get("entry")):
        if not isinstance(entry, dict):
            continue
        for change in _as_list(entry.get("changes")):
            if not isinstance(change, dict) or change.get("field") != "messages":
                continue
            value = change.get("value")
            if isinstance(value, dict):
                yield value


class WebhookProcessor:
    """Route webhook deliveries to the agent and reply over WhatsApp."""

    def __init__(
        self,
        whatsapp: WhatsAppClient,
        transcriber: AudioTranscriber,
        agent: ConversationAgent,
    ) -> None:
        self._whatsapp = whatsapp
        self._transcriber = transcriber
        self._agent = agent

    def handle_payload(self, payload: Any) -> bool:
        """Process a delivery.  Returns ``False`` for non-WhatsApp envelopes."""
        if not isinstance(payload, dict) or payload.get("object") != WHATSAPP_OBJECT:
            return False

        for value in _message_values(payload):
            for status in _as_list(value.get("statuses")):
                logger.debug("Status callback: %r", status)
            for raw in _as_list(value.get("messages")):
                try:
                    message = InboundMessage.model_validate(raw)
                except ValidationError as exc:
                    logger.warning("Skipping malformed message: %s", exc.errors())
                    continue
                try:
                    self._handle_message(message)
                except WhatsAppAPIError:
                    logger.exception("WhatsApp API failure while handling %s", message.id)
        return True

    def _handle_message(self, message: InboundMessage) -> None:
        logger.info("Message %s from %s (type=%s)", message.id, message.sender, message.type)
        self._whatsapp.mark_as_read(message.id)

        if message.type == "text" and message.text is not None:
            text = message.text.body
        elif message.type in ("audio", "voice"):
            media = message.audio or message.voice
            if media is None:
                logger.warning("Audio message %s carries no media id", message.id)
                return
            text = self._transcribe(message.sender, media.id)
        else:
            logger.info("Ignoring unsupported message type %s", message.type)
            return

        text = (text or "").strip()
        if not text:
            return

        reply = self._agent.process_message(message.sender, text)
        self._whatsapp.send_text(message.sender, reply)

    def _transcribe(self, sender: str, media_id: str) -> str | None:
        self._whatsapp.send_text(sender, LISTENING_TEXT)
        try:
            text = self._transcriber.transcribe(media_id)
        except TranscriptionError:
            self._whatsapp.send_text(sender, AUDIO_ERROR_TEXT)
            return None
        if not text.strip():
            self._whatsapp.send_text(sender, UNCLEAR_AUDIO_TEXT)
            return None
        logger.info("Voice note from %s: %s", sender, text)
        return text
