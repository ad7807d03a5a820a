"""Speech-to-text for WhatsApp voice notes.

The audio is fetched through the WhatsApp client, written to a private
temporary directory (the OpenAI SDK wants a real file with an extension)
and sent to the hosted Whisper model.  The directory is removed on every
exit path.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import httpx
import openai

from accounting_assistant.config import (
    OPENAI_API_KEY,
    TRANSCRIPTION_LANGUAGE,
    TRANSCRIPTION_MODEL,
)
from accounting_assistant.services.metrics import metrics
from accounting_assistant.services.whatsapp_client import WhatsAppAPIError, WhatsAppClient

logger = logging.getLogger(__name__)

AUDIO_FILENAME = "voice.ogg"


class TranscriptionError(Exception):
    """Raised when a voice note cannot be downloaded or transcribed."""


class AudioTranscriber:
    """Turn a WhatsApp media id into transcribed text."""

    def __init__(
        self,
        whatsapp: WhatsAppClient,
        openai_client: openai.OpenAI | None = None,
        temp_root: str | Path | None = None,
    ):
        self._whatsapp = whatsapp
        self._openai = openai_client if openai_client is not None else openai.OpenAI(api_key=OPENAI_API_KEY)
        self._temp_root = temp_root

    def transcribe(self, media_id: str) -> str:
        """Return the stripped transcription of *media_id* (may be empty)."""
        try:
            url = self._whatsapp.get_media_url(media_id)
            audio = self._whatsapp.download_media(url)

            with tempfile.TemporaryDirectory(prefix="voice-", dir=self._temp_root) as tmp:
                path = Path(tmp) / AUDIO_FILENAME
                path.write_bytes(audio)
                with metrics.track("openai", "audio_transcription"), open(path, "rb") as fh:
                    result = self._openai.audio.transcriptions.create(
                        model=TRANSCRIPTION_MODEL,
                        file=fh,
                        language=TRANSCRIPTION_LANGUAGE,
                    )
        except (WhatsAppAPIError, httpx.HTTPError, httpx.InvalidURL, openai.OpenAIError, OSError) as exc:
            logger.exception("Transcription of media %s failed", media_id)
            raise TranscriptionError(f"Could not transcribe media {media_id}: {exc}") from exc

        text = (getattr(result, "text", "") or "").strip()
        logger.info("Transcribed media %s (%d chars)", media_id, len(text))
        return text
