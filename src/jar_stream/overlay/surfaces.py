"""Output seams of the overlay plus headless implementations that only log."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from ..models import DonationEvent, QueueItem, YouTubeSettings

logger = logging.getLogger(__name__)


class VideoPlaybackError(RuntimeError):
    """The player could not load or continue the clip."""


class Display(Protocol):
    def show_notification(self, event: DonationEvent, with_audio: bool) -> None:
        ...

    def hide_notification(self) -> None:
        ...

    def show_video(self, item: QueueItem, title: Optional[str], options: YouTubeSettings) -> None:
        ...

    def hide_video(self) -> None:
        ...


class AudioOutput(Protocol):
    async def load(self, audio: bytes) -> Optional[float]:
        """Resolve once playable; returns the measured duration when known."""

    def play(self) -> None:
        ...

    def stop(self) -> None:
        ...


class VideoSurface(Protocol):
    async def play(self, video_id: str, volume: int) -> None:
        """Resolve when the clip ends; raise :class:`VideoPlaybackError` on player errors."""

    def stop(self) -> None:
        ...


class LoggingDisplay:
    def show_notification(self, event: DonationEvent, with_audio: bool) -> None:
        logger.info(
            "overlay.notification_shown",
            extra={"identifier": event.identifier, "nickname": event.nickname, "audio": with_audio},
        )

    def hide_notification(self) -> None:
        logger.info("overlay.notification_hidden")

    def show_video(self, item: QueueItem, title: Optional[str], options: YouTubeSettings) -> None:
        logger.info(
            "overlay.video_shown",
            extra={
                "identifier": item.identifier,
                "title": title if options.show_clip_title else None,
                "donor": item.nickname if options.show_donor_name else None,
            },
        )

    def hide_video(self) -> None:
        logger.info("overlay.video_hidden")


class SilentAudioOutput:
    """Accepts audio instantly and plays nothing; the speech estimate drives timing."""

    async def load(self, audio: bytes) -> Optional[float]:
        logger.debug("overlay.audio_loaded", extra={"bytes": len(audio)})
        return None

    def play(self) -> None:
        logger.debug("overlay.audio_play")

    def stop(self) -> None:
        logger.debug("overlay.audio_stop")


class SimulatedVideoSurface:
    """Pretends every clip lasts ``clip_seconds``."""

    def __init__(self, clip_seconds: float = 30.0) -> None:
        self._clip_seconds = clip_seconds

    async def play(self, video_id: str, volume: int) -> None:
        logger.info("overlay.video_playing", extra={"video_id": video_id, "volume": volume})
        await asyncio.sleep(self._clip_seconds)

    def stop(self) -> None:
        logger.debug("overlay.video_stop")
