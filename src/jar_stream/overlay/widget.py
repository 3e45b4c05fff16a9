"""Combined overlay: notifications and clips under the ``showImmediately`` policy."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from ..broadcast import DONATION_EVENT
from ..models import DonationEvent, YouTubeSettings
from .api import OverlayApiError, PauseMonitor, QueueApiClient
from .notifications import NotificationPlayer
from .stream import EventStreamClient, StreamFrame
from .videos import VideoPlayer

logger = logging.getLogger(__name__)


class OverlayWidget:
    """One widget instance: at most one notification and one clip active at a time.

    With ``showImmediately`` off, every donation runs as a single sequence
    (notification, then its clip) and the next donation waits for the whole
    cycle. With it on, notifications and clips advance on separate loops.
    """

    def __init__(
        self,
        stream: EventStreamClient,
        api: QueueApiClient,
        notifications: NotificationPlayer,
        videos: VideoPlayer,
        pause: PauseMonitor,
        options: Optional[YouTubeSettings] = None,
        *,
        poll_pause: bool = True,
    ) -> None:
        self._stream = stream
        self._api = api
        self._notifications = notifications
        self._videos = videos
        self._pause = pause
        self._options = options
        self._poll_pause = poll_pause
        self._sequence: asyncio.Queue[DonationEvent] = asyncio.Queue()
        self._clips: asyncio.Queue[DonationEvent] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def options(self) -> YouTubeSettings:
        return self._options or YouTubeSettings()

    async def load_options(self) -> YouTubeSettings:
        try:
            self._options = await self._api.youtube_settings()
        except (httpx.HTTPError, OverlayApiError) as exc:
            logger.warning("overlay.settings_unavailable", extra={"error": str(exc)})
            self._options = YouTubeSettings()
        return self._options

    def start(self) -> None:
        if self._tasks:
            raise RuntimeError("Overlay already started")
        self._videos.options = self.options
        if self._poll_pause:
            self._tasks.append(asyncio.create_task(self._pause.run(), name="overlay-pause"))
        if self.options.show_immediately:
            self._tasks.append(self._notifications.start())
            self._tasks.append(asyncio.create_task(self._clip_loop(), name="overlay-clips"))
        else:
            self._tasks.append(asyncio.create_task(self._sequence_loop(), name="overlay-sequence"))
        logger.info("overlay.started", extra={"show_immediately": self.options.show_immediately})

    async def stop(self) -> None:
        self._stream.close()
        await self._notifications.stop()
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    async def run(self) -> None:
        if self._options is None:
            await self.load_options()
        self.start()
        try:
            async for frame in self._stream.frames():
                self.handle_frame(frame)
        finally:
            await self.stop()

    async def wait_idle(self) -> None:
        await self._sequence.join()
        await self._clips.join()
        await self._notifications.join()

    def handle_frame(self, frame: StreamFrame) -> None:
        if frame.event != DONATION_EVENT:
            logger.debug("overlay.frame", extra={"event": frame.event})
            return
        try:
            event = DonationEvent.model_validate(frame.json())
        except (ValueError, ValidationError) as exc:
            logger.warning("overlay.bad_frame", extra={"error": str(exc)})
            return
        self.dispatch(event)

    def dispatch(self, event: DonationEvent) -> None:
        if self.options.show_immediately:
            self._notifications.enqueue(event)
            if event.youtube_url:
                self._clips.put_nowait(event)
        else:
            self._sequence.put_nowait(event)
        logger.info("overlay.queued", extra={"identifier": event.identifier, "video": bool(event.youtube_url)})

    async def _sequence_loop(self) -> None:
        while True:
            event = await self._sequence.get()
            try:
                await self._pause.wait_resumed()
                await self._notifications.present(event)
                if event.youtube_url:
                    await self._videos.play_for(event)
            except Exception:
                # one broken item must not stall the overlay
                logger.exception("overlay.item_failed", extra={"identifier": event.identifier})
            finally:
                self._sequence.task_done()

    async def _clip_loop(self) -> None:
        while True:
            event = await self._clips.get()
            try:
                await self._pause.wait_resumed()
                await self._videos.play_for(event)
            except Exception:
                logger.exception("overlay.item_failed", extra={"identifier": event.identifier})
            finally:
                self._clips.task_done()
