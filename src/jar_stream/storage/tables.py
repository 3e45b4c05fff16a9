"""ORM tables backing the intent, event and streamer stores."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for all tables."""


class StreamerRow(Base):
    __tablename__ = "streamers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


class WebhookConfigRow(Base):
    __tablename__ = "streamer_webhook_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    streamer_id: Mapped[int] = mapped_column(
        ForeignKey("streamers.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    jar_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    jar_title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    jar_goal: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    api_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    webhook_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    webhook_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    webhook_secret: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    obs_widget_token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    donations_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class YouTubeSettingsRow(Base):
    __tablename__ = "youtube_settings"

    streamer_id: Mapped[int] = mapped_column(ForeignKey("streamers.id", ondelete="CASCADE"), primary_key=True)
    max_duration_minutes: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    volume: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    show_clip_title: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    show_donor_name: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    min_likes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    min_comments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    show_immediately: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class IntentRow(Base):
    __tablename__ = "donation_intents"
    __table_args__ = (Index("ix_donation_intents_streamer_identifier", "streamer_id", "identifier"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(64), nullable=False)
    streamer_id: Mapped[int] = mapped_column(ForeignKey("streamers.id", ondelete="CASCADE"), nullable=False)
    nickname: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    youtube_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class EventRow(Base):
    __tablename__ = "donation_events"
    __table_args__ = (
        UniqueConstraint("streamer_id", "identifier", name="uq_donation_events_streamer_identifier"),
        Index("ix_donation_events_streamer_created", "streamer_id", "created_at"),
        Index("ix_donation_events_video_status", "streamer_id", "video_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(96), nullable=False)
    streamer_id: Mapped[int] = mapped_column(ForeignKey("streamers.id", ondelete="CASCADE"), nullable=False)
    nickname: Mapped[str] = mapped_column(String(64), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    mono_comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    jar_title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    youtube_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    video_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    cleared: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
