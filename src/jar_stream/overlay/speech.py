"""Announcement text, speech-length estimate and audio fetching."""

from __future__ import annotations

import logging
import re
from typing import Optional

import httpx

from ..models import DonationEvent

logger = logging.getLogger(__name__)

WORDS_PER_SECOND = 2.5
DIGIT_PADDING_SEC = 0.15
PUNCTUATION_PADDING_SEC = 0.3
MIN_SPEECH_SEC = 2.5

_PUNCTUATION = re.compile(r"[.,!?;:]")


def format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}"


def announcement_text(event: DonationEvent, currency: str = "UAH") -> str:
    return f"{event.nickname} donated {format_amount(event.amount)} {currency}. Message: {event.message}"


def estimate_speech_duration(text: str) -> float:
    """Seconds the narration is expected to take, never below ``MIN_SPEECH_SEC``."""

    words = len(text.split())
    digits = sum(char.isdigit() for char in text)
    punctuation = len(_PUNCTUATION.findall(text))
    estimate = words / WORDS_PER_SECOND + digits * DIGIT_PADDING_SEC + punctuation * PUNCTUATION_PADDING_SEC
    return max(MIN_SPEECH_SEC, estimate)


class SpeechClient:
    """Fetches narration audio from the server's ``/api/tts`` proxy."""

    def __init__(self, client: httpx.AsyncClient, voice: Optional[str] = None) -> None:
        self._client = client
        self._voice = voice

    async def fetch(self, text: str) -> Optional[bytes]:
        """Audio bytes, or ``None`` so the caller shows the notification silently."""

        params = {"text": text}
        if self._voice:
            params["voice"] = self._voice
        try:
            response = await self._client.get("/api/tts", params=params)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("overlay.tts_failed", extra={"error": str(exc)})
            return None
        return response.content or None
