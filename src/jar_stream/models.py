"""Shared domain models for intents, donation events and the video queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps coming back from the store."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class VideoStatus(str, Enum):
    """Playback lifecycle of a video-bearing donation."""

    WAITING_FOR_TTS = "waiting_for_tts"
    PENDING = "pending"
    PLAYING = "playing"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_final(self) -> bool:
        return self in (VideoStatus.COMPLETED, VideoStatus.SKIPPED)


# Forward-only lifecycle; ``cleared`` is tracked separately on the event.
VIDEO_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.WAITING_FOR_TTS: frozenset({VideoStatus.PENDING}),
    VideoStatus.PENDING: frozenset({VideoStatus.PLAYING}),
    VideoStatus.PLAYING: frozenset({VideoStatus.COMPLETED, VideoStatus.SKIPPED}),
    VideoStatus.COMPLETED: frozenset(),
    VideoStatus.SKIPPED: frozenset(),
}


def can_transition(current: Optional[VideoStatus], target: VideoStatus) -> bool:
    """Return whether ``current -> target`` is allowed (same-state writes are no-ops)."""

    if current is None:
        current = VideoStatus.PENDING
    if current == target:
        return True
    return target in VIDEO_TRANSITIONS[current]


class CamelModel(BaseModel):
    """Base model serialising to the camelCase keys widgets expect."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class DonationIntent(CamelModel):
    """Donor submission awaiting bank confirmation."""

    identifier: str
    streamer_id: int
    nickname: str
    message: str
    amount: int
    youtube_url: Optional[str] = None
    created_at: datetime


class DonationEvent(CamelModel):
    """Bank-confirmed donation matched to its originating intent."""

    id: Optional[int] = None
    identifier: str
    streamer_id: int
    nickname: str
    message: str
    amount: float
    mono_comment: str = ""
    jar_title: Optional[str] = None
    youtube_url: Optional[str] = None
    video_status: Optional[VideoStatus] = None
    cleared: bool = False
    created_at: datetime


class StreamerWebhookConfig(CamelModel):
    """Per-streamer payment and webhook routing configuration."""

    streamer_id: int
    jar_id: Optional[str] = None
    jar_title: Optional[str] = None
    jar_goal: Optional[int] = None
    api_token: Optional[str] = Field(default=None, repr=False)
    webhook_id: str
    webhook_url: Optional[str] = None
    webhook_secret: Optional[str] = Field(default=None, repr=False)
    obs_widget_token: str
    donations_paused: bool = False


class YouTubeSettings(CamelModel):
    """Per-streamer clip playback options."""

    max_duration_minutes: int = Field(5, ge=1, le=30)
    volume: int = Field(50, ge=0, le=100)
    show_clip_title: bool = True
    show_donor_name: bool = True
    # Stored and exposed only; no clip metadata lookup consumes them.
    min_likes: int = Field(0, ge=0)
    min_views: int = Field(0, ge=0)
    min_comments: int = Field(0, ge=0)
    show_immediately: bool = False


class QueueItem(CamelModel):
    """Video queue entry as seen by panels and widgets."""

    id: int
    identifier: str
    nickname: str
    message: str
    amount: float
    youtube_url: str
    status: VideoStatus
    created_at: datetime


class QueueStatistics(CamelModel):
    total_videos: int = 0
    pending_videos: int = 0
    playing_videos: int = 0
    completed_videos: int = 0
    skipped_videos: int = 0
    waiting_videos: int = 0


class QueueSnapshot(CamelModel):
    """Derived view over the event store for one streamer."""

    queue: list[QueueItem] = Field(default_factory=list)
    statistics: QueueStatistics = Field(default_factory=QueueStatistics)
    currently_playing: Optional[QueueItem] = None


@dataclass(slots=True)
class WebhookResult:
    """Outcome of a single webhook delivery."""

    status_code: int = 200
    ok: bool = True
    ignored: bool = False
    processed: bool = False
    reason: Optional[str] = None
    event: Optional[DonationEvent] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ignore(cls, reason: str) -> "WebhookResult":
        return cls(ignored=True, reason=reason)

    @classmethod
    def reject(cls, error: str, status_code: int = 400) -> "WebhookResult":
        return cls(status_code=status_code, ok=False, reason=error)

    def body(self) -> dict[str, Any]:
        if not self.ok:
            return {"ok": False, "error": self.reason}
        payload: dict[str, Any] = {"ok": True}
        if self.ignored:
            payload["ignored"] = True
        if self.processed:
            payload["processed"] = True
        if self.reason:
            payload["reason"] = self.reason
        if self.event is not None:
            payload["identifier"] = self.event.identifier
        payload.update(self.extra)
        return payload
