"""Client side of the video queue: claim, validate, play with a cap, report."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from ..donation.intents import extract_video_id
from ..models import DonationEvent, QueueItem, VideoStatus, YouTubeSettings
from .api import OverlayApiError, QueueApiClient
from .surfaces import Display, VideoPlaybackError, VideoSurface

logger = logging.getLogger(__name__)

OEMBED_URL = "https://www.youtube.com/oembed"


@dataclass(frozen=True, slots=True)
class ClipInfo:
    video_id: str
    title: Optional[str] = None


class OEmbedValidator:
    """Checks a clip is public and embeddable, picking up its title on the way."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def lookup(self, video_id: str) -> Optional[ClipInfo]:
        params = {"url": f"https://www.youtube.com/watch?v={video_id}", "format": "json"}
        try:
            response = await self._client.get(OEMBED_URL, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.info("overlay.video_unavailable", extra={"video_id": video_id, "error": str(exc)})
            return None
        return ClipInfo(video_id=video_id, title=payload.get("title"))


@dataclass(slots=True)
class VideoTimings:
    gap: float = 2.0
    error_delay: float = 2.0


class VideoPlayer:
    """Plays at most one clip at a time; every exit path ends in a reported status."""

    def __init__(
        self,
        api: QueueApiClient,
        surface: VideoSurface,
        display: Display,
        validator: Optional[OEmbedValidator] = None,
        *,
        options: Optional[YouTubeSettings] = None,
        timings: Optional[VideoTimings] = None,
    ) -> None:
        self._api = api
        self._surface = surface
        self._display = display
        self._validator = validator
        self.options = options or YouTubeSettings()
        self._timings = timings or VideoTimings()
        self.current: Optional[QueueItem] = None

    @property
    def max_duration_sec(self) -> float:
        return self.options.max_duration_minutes * 60.0

    async def play_for(self, event: DonationEvent) -> Optional[VideoStatus]:
        """Narration for ``event`` is done: release it to the queue and play the next clip."""

        try:
            known = await self._api.tts_complete(event.identifier)
        except (httpx.HTTPError, OverlayApiError) as exc:
            logger.warning("overlay.tts_complete_failed", extra={"identifier": event.identifier, "error": str(exc)})
            known = True
        if not known:
            # rebroadcasts are not stored, so there is nothing to claim or report
            return await self._play(_direct_item(event), report=False)
        return await self.play_next()

    async def play_next(self) -> Optional[VideoStatus]:
        try:
            item = await self._api.advance()
        except (httpx.HTTPError, OverlayApiError) as exc:
            logger.warning("overlay.advance_failed", extra={"error": str(exc)})
            await asyncio.sleep(self._timings.error_delay)
            return None
        if item is None:
            logger.debug("overlay.queue_empty")
            return None
        return await self._play(item, report=True)

    async def drain(self) -> int:
        played = 0
        while await self.play_next() is not None:
            played += 1
        return played

    async def _play(self, item: QueueItem, *, report: bool) -> VideoStatus:
        self.current = item
        try:
            clip = await self._validate(item)
            if clip is None:
                status = VideoStatus.SKIPPED
                await asyncio.sleep(self._timings.error_delay)
            else:
                status = await self._run_clip(item, clip)
        finally:
            self.current = None

        if report:
            try:
                await self._api.report(item.identifier, status)
            except (httpx.HTTPError, OverlayApiError) as exc:
                logger.warning("overlay.report_failed", extra={"identifier": item.identifier, "error": str(exc)})
        logger.info("overlay.video_finished", extra={"identifier": item.identifier, "status": status.value})
        await asyncio.sleep(self._timings.gap)
        return status

    async def _validate(self, item: QueueItem) -> Optional[ClipInfo]:
        video_id = extract_video_id(item.youtube_url)
        if video_id is None:
            logger.warning("overlay.video_url_invalid", extra={"identifier": item.identifier})
            return None
        if self._validator is None:
            return ClipInfo(video_id=video_id)
        return await self._validator.lookup(video_id)

    async def _run_clip(self, item: QueueItem, clip: ClipInfo) -> VideoStatus:
        self._display.show_video(item, clip.title, self.options)
        try:
            await asyncio.wait_for(self._surface.play(clip.video_id, self.options.volume), self.max_duration_sec)
        except asyncio.TimeoutError:
            logger.info("overlay.video_time_limit", extra={"identifier": item.identifier})
            self._surface.stop()
        except VideoPlaybackError as exc:
            logger.warning("overlay.video_error", extra={"identifier": item.identifier, "error": str(exc)})
            self._surface.stop()
            await asyncio.sleep(self._timings.error_delay)
        finally:
            self._display.hide_video()
        return VideoStatus.COMPLETED


def _direct_item(event: DonationEvent) -> QueueItem:
    return QueueItem(
        id=event.id or 0,
        identifier=event.identifier,
        nickname=event.nickname,
        message=event.message,
        amount=event.amount,
        youtube_url=event.youtube_url or "",
        status=VideoStatus.PLAYING,
        created_at=event.created_at,
    )
