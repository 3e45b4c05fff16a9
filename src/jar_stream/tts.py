"""Text-to-speech collaborator used by the ``/api/tts`` endpoint."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

AUDIO_MEDIA_TYPE = "audio/mpeg"
MAX_TEXT_LENGTH = 1000


class SpeechSynthesisError(RuntimeError):
    """Raised when the speech backend is unavailable or returns no audio."""


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        ...

    async def aclose(self) -> None:
        ...


class HttpSpeechSynthesizer:
    """Forwards text to an HTTP speech backend and returns the encoded audio."""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings or get_settings()
        timeout = httpx.Timeout(self._settings.tts_timeout_sec)
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        endpoint = self._settings.tts_endpoint
        if endpoint is None:
            raise SpeechSynthesisError("TTS endpoint is not configured")

        text = text.strip()[:MAX_TEXT_LENGTH]
        if not text:
            raise SpeechSynthesisError("Nothing to synthesize")

        payload = {
            "text": text,
            "voice": voice or self._settings.tts_voice,
            "format": "mp3",
        }
        try:
            response = await self._client.post(str(endpoint), json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("tts.request_failed", extra={"error": str(exc)})
            raise SpeechSynthesisError("Speech backend request failed") from exc

        audio = response.content
        if not audio:
            raise SpeechSynthesisError("Speech backend returned no audio")
        logger.debug("tts.synthesized", extra={"bytes": len(audio), "voice": payload["voice"]})
        return audio
