from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jar_stream.config import Settings
from jar_stream.models import DonationEvent, StreamerWebhookConfig, VideoStatus
from jar_stream.storage import Database, EventStore, StreamerStore


def make_settings(**overrides) -> Settings:
    data = {
        "DATABASE_URL": "sqlite://",
        "PUBLIC_BASE_URL": "https://donate.example.com",
        "PAYMENT_BASE_URL": "https://send.monobank.ua",
        "MONOBANK_API_BASE": "https://api.monobank.example",
        "PUBKEY_CACHE_TTL_SEC": 86400,
        "AMOUNT_MIN": 10,
        "AMOUNT_MAX": 29999,
        "NICKNAME_MAX_LENGTH": 30,
        "MESSAGE_MAX_LENGTH": 500,
        "HEARTBEAT_INTERVAL_SEC": 15,
        "MAX_STREAM_CONNECTIONS": 10,
        "SUBSCRIBER_BUFFER_SIZE": 16,
        "QUEUE_VIEW_LIMIT": 200,
        "HTTP_TIMEOUT_SEC": 5,
        "TTS_ENDPOINT": "https://tts.example.com/synthesize",
        "TTS_VOICE": "uk-UA-Standard-A",
        "API_HOST": "127.0.0.1",
        "API_PORT": 9000,
        "LOG_LEVEL": "INFO",
        "LOCALE": "en",
    }
    data.update(overrides)
    return Settings.model_validate(data)


def seed_streamer(
    database: Database,
    slug: str = "ann",
    *,
    jar_id: Optional[str] = "jarABC123",
    jar_title: Optional[str] = "Stream jar",
    api_token: Optional[str] = None,
    base_url: str = "https://donate.example.com",
) -> StreamerWebhookConfig:
    with database.session() as session:
        store = StreamerStore(session)
        streamer_id = store.create_streamer(slug, slug.title())
        return store.upsert_webhook_config(
            streamer_id,
            base_url=base_url,
            jar_id=jar_id,
            jar_title=jar_title,
            api_token=api_token,
        )


BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def add_event(
    database: Database,
    streamer_id: int,
    identifier: str,
    status: Optional[VideoStatus] = None,
    *,
    minutes: int = 0,
    video: bool = True,
) -> DonationEvent:
    with database.session() as session:
        return EventStore(session).append(
            DonationEvent(
                identifier=identifier,
                streamer_id=streamer_id,
                nickname=f"Donor {identifier}",
                message="clip!",
                amount=50.0,
                youtube_url="https://youtu.be/fJ9rUzIMcZQ" if video else None,
                video_status=status,
                created_at=BASE_TIME + timedelta(minutes=minutes),
            )
        )
