"""Donation notification playback: ``idle -> announcing -> cooldown -> idle``."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..models import DonationEvent
from .speech import SpeechClient, announcement_text, estimate_speech_duration
from .surfaces import AudioOutput, Display

logger = logging.getLogger(__name__)


class NotificationState(str, Enum):
    IDLE = "idle"
    ANNOUNCING = "announcing"
    COOLDOWN = "cooldown"


@dataclass(slots=True)
class NotificationTimings:
    audio_ready_timeout: float = 3.0
    visible_buffer: float = 1.0
    cooldown: float = 2.0


class NotificationPlayer:
    """Shows one notification at a time; a single consumer task drains the queue."""

    def __init__(
        self,
        display: Display,
        audio: AudioOutput,
        speech: Optional[SpeechClient] = None,
        *,
        currency: str = "UAH",
        timings: Optional[NotificationTimings] = None,
        gate: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._display = display
        self._audio = audio
        self._speech = speech
        self._currency = currency
        self._timings = timings or NotificationTimings()
        self._gate = gate
        self._queue: asyncio.Queue[DonationEvent] = asyncio.Queue()
        self._state = NotificationState.IDLE
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def state(self) -> NotificationState:
        return self._state

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def enqueue(self, event: DonationEvent) -> None:
        self._queue.put_nowait(event)

    async def join(self) -> None:
        await self._queue.join()

    def start(self) -> asyncio.Task[None]:
        if self._task is not None and not self._task.done():
            raise RuntimeError("Notification loop already running")
        self._task = asyncio.create_task(self._run(), name="overlay-notifications")
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                if self._gate is not None:
                    await self._gate()
                await self.present(event)
            except Exception:
                logger.exception("overlay.notification_failed", extra={"identifier": event.identifier})
                self._state = NotificationState.IDLE
            finally:
                self._queue.task_done()

    async def present(self, event: DonationEvent) -> None:
        """Run one full announcing + cooldown cycle for ``event``.

        A failing audio output degrades the notification to a silent one
        instead of aborting it.
        """

        self._state = NotificationState.ANNOUNCING
        text = announcement_text(event, self._currency)
        duration = estimate_speech_duration(text)

        ready = asyncio.create_task(self._prepare_audio(text))
        done, _ = await asyncio.wait({ready}, timeout=self._timings.audio_ready_timeout)
        with_audio = False
        if ready in done:
            with_audio, measured = ready.result()
            if measured:
                duration = measured
        else:
            logger.warning("overlay.audio_ready_timeout", extra={"identifier": event.identifier})
            ready.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ready

        try:
            self._display.show_notification(event, with_audio)
            if with_audio:
                with_audio = self._start_audio(event)
            await asyncio.sleep(duration + self._timings.visible_buffer)
        finally:
            if with_audio:
                self._stop_audio(event)
            self._display.hide_notification()

        self._state = NotificationState.COOLDOWN
        try:
            await asyncio.sleep(self._timings.cooldown)
        finally:
            self._state = NotificationState.IDLE

    def _start_audio(self, event: DonationEvent) -> bool:
        try:
            self._audio.play()
        except Exception:
            logger.exception("overlay.audio_play_failed", extra={"identifier": event.identifier})
            return False
        return True

    def _stop_audio(self, event: DonationEvent) -> None:
        try:
            self._audio.stop()
        except Exception:
            logger.exception("overlay.audio_stop_failed", extra={"identifier": event.identifier})

    async def _prepare_audio(self, text: str) -> tuple[bool, Optional[float]]:
        if self._speech is None:
            return False, None
        audio = await self._speech.fetch(text)
        if audio is None:
            return False, None
        try:
            measured = await self._audio.load(audio)
        except Exception:
            logger.exception("overlay.audio_load_failed")
            return False, None
        return True, measured
