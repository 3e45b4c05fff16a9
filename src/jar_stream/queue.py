"""Video queue view derived from the event store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .broadcast import BroadcastHub
from .config import Settings, get_settings
from .models import DonationEvent, QueueItem, QueueSnapshot, QueueStatistics, VideoStatus, can_transition
from .storage import Database, EventStore

logger = logging.getLogger(__name__)


class VideoNotFoundError(LookupError):
    """No video-bearing donation with that identifier for the streamer."""


class InvalidTransitionError(ValueError):
    """Requested status change is not on the forward lifecycle path."""

    def __init__(self, identifier: str, current: Optional[VideoStatus], target: VideoStatus) -> None:
        super().__init__(f"{identifier}: {current.value if current else None} -> {target.value}")
        self.identifier = identifier
        self.current = current
        self.target = target


@dataclass(slots=True)
class TtsCompletion:
    identifier: str
    updated: bool
    status: Optional[VideoStatus]


def to_queue_item(event: DonationEvent) -> QueueItem:
    if event.id is None:
        raise ValueError(f"event {event.identifier} has not been stored")
    return QueueItem(
        id=event.id,
        identifier=event.identifier,
        nickname=event.nickname,
        message=event.message or "",
        amount=event.amount,
        youtube_url=event.youtube_url or "",
        status=event.video_status or VideoStatus.PENDING,
        created_at=event.created_at,
    )


class QueueManager:
    """Holds no state of its own; every call re-reads the event store."""

    def __init__(
        self,
        database: Database,
        hub: Optional[BroadcastHub] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._db = database
        self._hub = hub

    def snapshot(self, streamer_id: int) -> QueueSnapshot:
        with self._db.session() as session:
            store = EventStore(session)
            events = store.video_events(streamer_id, self._settings.queue_view_limit)
            counts = store.video_status_counts(streamer_id)
            playing = store.playing_video(streamer_id)
        stats = QueueStatistics(
            total_videos=sum(counts.values()),
            pending_videos=counts.get(VideoStatus.PENDING, 0),
            playing_videos=counts.get(VideoStatus.PLAYING, 0),
            completed_videos=counts.get(VideoStatus.COMPLETED, 0),
            skipped_videos=counts.get(VideoStatus.SKIPPED, 0),
            waiting_videos=counts.get(VideoStatus.WAITING_FOR_TTS, 0),
        )
        return QueueSnapshot(
            queue=[to_queue_item(event) for event in events],
            statistics=stats,
            currently_playing=to_queue_item(playing) if playing else None,
        )

    def update_status(
        self,
        streamer_id: int,
        identifier: str,
        status: Optional[VideoStatus],
        action: Optional[str] = None,
    ) -> VideoStatus:
        """Apply a widget/panel status change along the forward lifecycle."""

        target = VideoStatus.COMPLETED if action == "stop" else status
        if target is None:
            raise ValueError("status is required")

        with self._db.session() as session:
            store = EventStore(session)
            event = store.find_video(streamer_id, identifier)
            if event is None or event.id is None:
                raise VideoNotFoundError(identifier)
            current = event.video_status
            if not can_transition(current, target):
                raise InvalidTransitionError(identifier, current, target)
            if current != target and not store.compare_and_set_status(
                event.id, current or VideoStatus.PENDING, target
            ):
                latest = store.find_video(streamer_id, identifier)
                raise InvalidTransitionError(identifier, latest.video_status if latest else None, target)

        logger.info("queue.status_updated", extra={"identifier": identifier, "status": target.value})
        if target.is_final:
            self._notify(streamer_id)
        return target

    def mark_tts_complete(self, streamer_id: int, identifier: str) -> TtsCompletion:
        """Narration finished: ``waiting_for_tts -> pending``."""

        with self._db.session() as session:
            store = EventStore(session)
            event = store.find_video(streamer_id, identifier)
            if event is None or event.id is None:
                raise VideoNotFoundError(identifier)
            updated = store.compare_and_set_status(event.id, VideoStatus.WAITING_FOR_TTS, VideoStatus.PENDING)
            if not updated:
                event = store.find_video(streamer_id, identifier)

        if not updated:
            current = event.video_status if event else None
            logger.info(
                "queue.tts_already_processed",
                extra={"identifier": identifier, "status": current.value if current else None},
            )
            return TtsCompletion(identifier=identifier, updated=False, status=current)

        logger.info("queue.tts_completed", extra={"identifier": identifier})
        self._notify(streamer_id)
        return TtsCompletion(identifier=identifier, updated=True, status=VideoStatus.PENDING)

    def clear(self, streamer_id: int) -> int:
        """Hide completed/skipped items from future views; nothing is deleted."""

        with self._db.session() as session:
            cleared = EventStore(session).clear_finished(streamer_id)
        logger.info("queue.cleared", extra={"streamer_id": streamer_id, "count": cleared})
        self._notify(streamer_id)
        return cleared

    def advance(self, streamer_id: int) -> Optional[QueueItem]:
        """Finish whatever is playing and claim the oldest pending item."""

        claimed: Optional[DonationEvent] = None
        with self._db.session() as session:
            store = EventStore(session)
            store.complete_playing(streamer_id)
            for candidate in store.pending_videos(streamer_id):
                if candidate.id is None:
                    continue
                if store.compare_and_set_status(candidate.id, VideoStatus.PENDING, VideoStatus.PLAYING):
                    claimed = candidate.model_copy(update={"video_status": VideoStatus.PLAYING})
                    break

        self._notify(streamer_id)
        if claimed is None:
            logger.debug("queue.empty", extra={"streamer_id": streamer_id})
            return None
        logger.info("queue.advanced", extra={"identifier": claimed.identifier, "nickname": claimed.nickname})
        return to_queue_item(claimed)

    def _notify(self, streamer_id: int) -> None:
        if self._hub is not None:
            self._hub.publish_queue(streamer_id, self.snapshot(streamer_id))
