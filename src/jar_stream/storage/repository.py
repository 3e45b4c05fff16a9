"""Query contracts for intents, donation events and streamer configuration."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..crypto import TokenCipher, generate_webhook_id, generate_widget_token
from ..models import (
    DonationEvent,
    DonationIntent,
    StreamerWebhookConfig,
    VideoStatus,
    YouTubeSettings,
    as_utc,
)
from .tables import EventRow, IntentRow, StreamerRow, WebhookConfigRow, YouTubeSettingsRow

logger = logging.getLogger(__name__)

TEST_IDENTIFIER_PREFIX = "test-"


class DuplicateEventError(RuntimeError):
    """Raised when an event for the same (streamer, identifier) already exists."""


def _intent_from_row(row: IntentRow) -> DonationIntent:
    return DonationIntent(
        identifier=row.identifier,
        streamer_id=row.streamer_id,
        nickname=row.nickname,
        message=row.message,
        amount=row.amount,
        youtube_url=row.youtube_url,
        created_at=as_utc(row.created_at),
    )


def _event_from_row(row: EventRow) -> DonationEvent:
    return DonationEvent(
        id=row.id,
        identifier=row.identifier,
        streamer_id=row.streamer_id,
        nickname=row.nickname,
        message=row.message,
        amount=float(row.amount),
        mono_comment=row.mono_comment,
        jar_title=row.jar_title,
        youtube_url=row.youtube_url,
        video_status=VideoStatus(row.video_status) if row.video_status else None,
        cleared=row.cleared,
        created_at=as_utc(row.created_at),
    )


class StreamerStore:
    """Streamers and their webhook / widget configuration."""

    def __init__(self, session: Session, cipher: Optional[TokenCipher] = None) -> None:
        self._session = session
        self._cipher = cipher or TokenCipher(None)

    def create_streamer(self, slug: str, display_name: Optional[str] = None) -> int:
        row = StreamerRow(slug=slug.strip().lower(), display_name=display_name)
        self._session.add(row)
        self._session.commit()
        return row.id

    def find_streamer_id_by_slug(self, slug: str) -> Optional[int]:
        stmt = select(StreamerRow.id).where(StreamerRow.slug == slug.strip().lower())
        return self._session.scalars(stmt).first()

    def streamer_exists(self, streamer_id: int) -> bool:
        return self._session.get(StreamerRow, streamer_id) is not None

    def upsert_webhook_config(
        self,
        streamer_id: int,
        *,
        base_url: str,
        jar_id: Optional[str] = None,
        jar_title: Optional[str] = None,
        jar_goal: Optional[int] = None,
        api_token: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ) -> StreamerWebhookConfig:
        """Create or update the config; webhook id and widget token are generated once."""

        row = self._config_row(WebhookConfigRow.streamer_id == streamer_id)
        if row is None:
            webhook_id = generate_webhook_id()
            row = WebhookConfigRow(
                streamer_id=streamer_id,
                webhook_id=webhook_id,
                webhook_url=f"{base_url}/api/monobank/webhook/{webhook_id}",
                obs_widget_token=generate_widget_token(),
            )
            self._session.add(row)
        if jar_id is not None:
            row.jar_id = jar_id
        if jar_title is not None:
            row.jar_title = jar_title
        if jar_goal is not None:
            row.jar_goal = jar_goal
        if api_token is not None:
            row.api_token = self._cipher.encrypt(api_token)
        if webhook_secret is not None:
            row.webhook_secret = webhook_secret
        self._session.commit()
        return self._config_from_row(row)

    def get_config(self, streamer_id: int) -> Optional[StreamerWebhookConfig]:
        row = self._config_row(WebhookConfigRow.streamer_id == streamer_id)
        return self._config_from_row(row) if row else None

    def get_config_by_webhook(self, webhook_id: str) -> Optional[StreamerWebhookConfig]:
        if not webhook_id:
            return None
        row = self._config_row(WebhookConfigRow.webhook_id == webhook_id)
        return self._config_from_row(row) if row else None

    def find_streamer_by_widget_token(self, token: str) -> Optional[int]:
        if not token:
            return None
        stmt = select(WebhookConfigRow.streamer_id).where(WebhookConfigRow.obs_widget_token == token)
        return self._session.scalars(stmt).first()

    def set_paused(self, streamer_id: int, paused: bool) -> bool:
        result = self._session.execute(
            update(WebhookConfigRow)
            .where(WebhookConfigRow.streamer_id == streamer_id)
            .values(donations_paused=paused)
        )
        self._session.commit()
        return result.rowcount > 0

    def is_paused(self, streamer_id: int) -> bool:
        stmt = select(WebhookConfigRow.donations_paused).where(WebhookConfigRow.streamer_id == streamer_id)
        return bool(self._session.scalars(stmt).first())

    def get_youtube_settings(self, streamer_id: int) -> YouTubeSettings:
        row = self._session.get(YouTubeSettingsRow, streamer_id)
        if row is None:
            return YouTubeSettings()
        return YouTubeSettings(
            max_duration_minutes=row.max_duration_minutes,
            volume=row.volume,
            show_clip_title=row.show_clip_title,
            show_donor_name=row.show_donor_name,
            min_likes=row.min_likes,
            min_views=row.min_views,
            min_comments=row.min_comments,
            show_immediately=row.show_immediately,
        )

    def save_youtube_settings(self, streamer_id: int, settings: YouTubeSettings) -> None:
        row = self._session.get(YouTubeSettingsRow, streamer_id)
        if row is None:
            row = YouTubeSettingsRow(streamer_id=streamer_id)
            self._session.add(row)
        for name, value in settings.model_dump().items():
            setattr(row, name, value)
        self._session.commit()

    def _config_row(self, clause) -> Optional[WebhookConfigRow]:
        return self._session.scalars(select(WebhookConfigRow).where(clause)).first()

    def _config_from_row(self, row: WebhookConfigRow) -> StreamerWebhookConfig:
        return StreamerWebhookConfig(
            streamer_id=row.streamer_id,
            jar_id=row.jar_id,
            jar_title=row.jar_title,
            jar_goal=row.jar_goal,
            api_token=self._cipher.decrypt(row.api_token),
            webhook_id=row.webhook_id,
            webhook_url=row.webhook_url,
            webhook_secret=row.webhook_secret,
            obs_widget_token=row.obs_widget_token,
            donations_paused=row.donations_paused,
        )


class IntentStore:
    """Identifier -> intent mapping, always scoped by streamer."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, intent: DonationIntent) -> None:
        # Identifier collisions are tolerated here; lookups take the oldest match.
        self._session.add(
            IntentRow(
                identifier=intent.identifier.upper(),
                streamer_id=intent.streamer_id,
                nickname=intent.nickname,
                message=intent.message,
                amount=intent.amount,
                youtube_url=intent.youtube_url,
                created_at=intent.created_at,
            )
        )
        self._session.commit()

    def find(self, identifier: str, streamer_id: Optional[int]) -> Optional[IntentRow]:
        """Oldest intent with ``identifier``; ``streamer_id=None`` is the unscoped legacy lookup."""

        stmt = select(IntentRow).where(IntentRow.identifier == identifier.upper())
        if streamer_id is not None:
            stmt = stmt.where(IntentRow.streamer_id == streamer_id)
        stmt = stmt.order_by(IntentRow.created_at.asc(), IntentRow.id.asc()).limit(1)
        return self._session.scalars(stmt).first()

    def find_intent(self, identifier: str, streamer_id: Optional[int]) -> Optional[DonationIntent]:
        row = self.find(identifier, streamer_id)
        return _intent_from_row(row) if row else None

    def mark_consumed(self, row: IntentRow, when: Optional[datetime] = None) -> None:
        row.consumed_at = when or datetime.now(timezone.utc)


class EventStore:
    """Append-only donation log with a mutable video status per event."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, event: DonationEvent, *, commit: bool = True) -> DonationEvent:
        """Persist ``event``; raises :class:`DuplicateEventError` on a repeated identifier."""

        status = event.video_status
        if event.youtube_url and status is None:
            status = VideoStatus.WAITING_FOR_TTS
        row = EventRow(
            identifier=event.identifier,
            streamer_id=event.streamer_id,
            nickname=event.nickname,
            message=event.message,
            amount=Decimal(str(event.amount)).quantize(Decimal("0.01")),
            mono_comment=event.mono_comment,
            jar_title=event.jar_title,
            youtube_url=event.youtube_url,
            video_status=status.value if status else None,
            cleared=event.cleared,
            created_at=event.created_at,
        )
        self._session.add(row)
        try:
            self._session.flush()
        except IntegrityError as exc:
            self._session.rollback()
            raise DuplicateEventError(event.identifier) from exc
        if commit:
            self._session.commit()
        return _event_from_row(row)

    def list_events(self, streamer_id: int) -> list[DonationEvent]:
        stmt = (
            select(EventRow)
            .where(EventRow.streamer_id == streamer_id)
            .order_by(EventRow.created_at.asc(), EventRow.id.asc())
        )
        return [_event_from_row(row) for row in self._session.scalars(stmt)]

    def latest_event(self, streamer_id: int) -> Optional[DonationEvent]:
        stmt = (
            select(EventRow)
            .where(EventRow.streamer_id == streamer_id)
            .order_by(EventRow.created_at.desc(), EventRow.id.desc())
            .limit(1)
        )
        row = self._session.scalars(stmt).first()
        return _event_from_row(row) if row else None

    def count(self, streamer_id: Optional[int] = None) -> int:
        stmt = select(func.count(EventRow.id))
        if streamer_id is not None:
            stmt = stmt.where(EventRow.streamer_id == streamer_id)
        return int(self._session.scalar(stmt) or 0)

    def get_event(self, streamer_id: int, event_id: int) -> Optional[DonationEvent]:
        row = self._session.get(EventRow, event_id)
        if row is None or row.streamer_id != streamer_id:
            return None
        return _event_from_row(row)

    # -- video queue primitives -------------------------------------------------

    def video_events(self, streamer_id: int, limit: int) -> list[DonationEvent]:
        stmt = (
            select(EventRow)
            .where(
                EventRow.streamer_id == streamer_id,
                EventRow.youtube_url.is_not(None),
                EventRow.cleared.is_(False),
            )
            .order_by(EventRow.created_at.desc(), EventRow.id.desc())
            .limit(limit)
        )
        return [_event_from_row(row) for row in self._session.scalars(stmt)]

    def video_status_counts(self, streamer_id: int) -> dict[VideoStatus, int]:
        """Per-status totals over every non-cleared video event, unaffected by the view limit."""

        stmt = (
            select(EventRow.video_status, func.count(EventRow.id))
            .where(
                EventRow.streamer_id == streamer_id,
                EventRow.youtube_url.is_not(None),
                EventRow.cleared.is_(False),
            )
            .group_by(EventRow.video_status)
        )
        counts: dict[VideoStatus, int] = {}
        for raw, total in self._session.execute(stmt):
            # rows written before statuses existed count as pending
            status = VideoStatus(raw) if raw else VideoStatus.PENDING
            counts[status] = counts.get(status, 0) + int(total)
        return counts

    def playing_video(self, streamer_id: int) -> Optional[DonationEvent]:
        stmt = (
            select(EventRow)
            .where(
                EventRow.streamer_id == streamer_id,
                EventRow.youtube_url.is_not(None),
                EventRow.video_status == VideoStatus.PLAYING.value,
                EventRow.cleared.is_(False),
            )
            .order_by(EventRow.created_at.asc(), EventRow.id.asc())
            .limit(1)
        )
        row = self._session.scalars(stmt).first()
        return _event_from_row(row) if row else None

    def find_video(self, streamer_id: int, identifier: str) -> Optional[DonationEvent]:
        stmt = select(EventRow).where(
            EventRow.streamer_id == streamer_id,
            EventRow.identifier == identifier,
            EventRow.youtube_url.is_not(None),
        )
        row = self._session.scalars(stmt).first()
        return _event_from_row(row) if row else None

    def compare_and_set_status(self, event_id: int, expected: VideoStatus, target: VideoStatus) -> bool:
        """Move one event from ``expected`` to ``target``; False if another writer got there first."""

        current = EventRow.video_status == expected.value
        if expected == VideoStatus.PENDING:
            # rows written before statuses existed count as pending
            current = or_(current, EventRow.video_status.is_(None))
        result = self._session.execute(
            update(EventRow)
            .where(EventRow.id == event_id, current)
            .values(video_status=target.value)
        )
        self._session.commit()
        return result.rowcount == 1

    def complete_playing(self, streamer_id: int) -> int:
        result = self._session.execute(
            update(EventRow)
            .where(
                EventRow.streamer_id == streamer_id,
                EventRow.video_status == VideoStatus.PLAYING.value,
            )
            .values(video_status=VideoStatus.COMPLETED.value)
        )
        self._session.commit()
        return result.rowcount

    def pending_videos(self, streamer_id: int) -> list[DonationEvent]:
        stmt = (
            select(EventRow)
            .where(
                EventRow.streamer_id == streamer_id,
                EventRow.youtube_url.is_not(None),
                or_(EventRow.video_status == VideoStatus.PENDING.value, EventRow.video_status.is_(None)),
                EventRow.cleared.is_(False),
            )
            .order_by(EventRow.created_at.asc(), EventRow.id.asc())
        )
        return [_event_from_row(row) for row in self._session.scalars(stmt)]

    def clear_finished(self, streamer_id: int) -> int:
        result = self._session.execute(
            update(EventRow)
            .where(
                EventRow.streamer_id == streamer_id,
                EventRow.youtube_url.is_not(None),
                EventRow.video_status.in_([VideoStatus.COMPLETED.value, VideoStatus.SKIPPED.value]),
                EventRow.cleared.is_(False),
            )
            .values(cleared=True)
        )
        self._session.commit()
        return result.rowcount

    def purge_test_data(self, streamer_id: int, prefix: str = TEST_IDENTIFIER_PREFIX) -> tuple[int, int]:
        """Delete synthetic events and intents; returns ``(events, intents)`` removed."""

        pattern = f"{prefix}%"
        events = self._session.execute(
            delete(EventRow).where(EventRow.streamer_id == streamer_id, EventRow.identifier.like(pattern))
        ).rowcount
        # intents are stored upper-cased
        intents = self._session.execute(
            delete(IntentRow).where(
                IntentRow.streamer_id == streamer_id,
                func.lower(IntentRow.identifier).like(pattern.lower()),
            )
        ).rowcount
        self._session.commit()
        logger.info("store.test_data_purged", extra={"streamer_id": streamer_id, "events": events, "intents": intents})
        return events, intents
