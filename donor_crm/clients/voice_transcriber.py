"""
Voice Transcriber - Whisper speech-to-text for WhatsApp voice notes
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

from ..config import get_crm_settings

logger = logging.getLogger(__name__)


class VoiceTranscriber:
    """Wraps the OpenAI audio transcription endpoint."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: Optional[str] = None):
        settings = get_crm_settings()
        self._client = client
        self.model = model or settings.transcription_model

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=get_crm_settings().openai_api_key)
        return self._client

    async def transcribe(self, audio_bytes: bytes, filename: str = "audio.ogg", language: str = "en") -> str:
        """
        Transcribe an audio file to text.

        Args:
            audio_bytes: Raw audio (WhatsApp voice notes are ogg/opus)
            filename: Name sent with the upload; its extension tells the API the format
        """
        logger.info(f"[Voice] Transcribing {filename} ({len(audio_bytes)} bytes)")
        transcription = await self._get_client().audio.transcriptions.create(
            file=(filename, audio_bytes),
            model=self.model,
            language=language,
            response_format="text",
        )
        text = transcription if isinstance(transcription, str) else transcription.text
        text = text.strip()
        logger.info(f"[Voice] Transcription completed: \"{text[:100]}\"")
        return text
