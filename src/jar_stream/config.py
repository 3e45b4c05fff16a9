"""Application configuration models and helpers."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl, Field, SecretStr
from pydantic.functional_validators import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Supported logging levels."""

    CRITICAL = "CRITICAL"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"


class Locale(str, Enum):
    """Languages available for donor-facing messages."""

    EN = "en"
    UK = "uk"


class Settings(BaseSettings):
    """Environment-driven application configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Storage
    database_url: str = Field("sqlite:///jar_stream.db", alias="DATABASE_URL")
    encryption_key: Optional[SecretStr] = Field(None, alias="ENCRYPTION_KEY")

    # Payment provider
    public_base_url: AnyHttpUrl = Field("http://localhost:8080", alias="PUBLIC_BASE_URL")
    payment_base_url: AnyHttpUrl = Field("https://send.monobank.ua", alias="PAYMENT_BASE_URL")
    monobank_api_base: AnyHttpUrl = Field("https://api.monobank.ua", alias="MONOBANK_API_BASE")
    pubkey_cache_ttl_sec: int = Field(24 * 60 * 60, alias="PUBKEY_CACHE_TTL_SEC")
    admin_token: Optional[SecretStr] = Field(None, alias="ADMIN_TOKEN")
    http_timeout_sec: float = Field(10.0, alias="HTTP_TIMEOUT_SEC")

    # Donation limits
    amount_min: int = Field(10, alias="AMOUNT_MIN")
    amount_max: int = Field(29999, alias="AMOUNT_MAX")
    nickname_max_length: int = Field(30, alias="NICKNAME_MAX_LENGTH")
    message_max_length: int = Field(500, alias="MESSAGE_MAX_LENGTH")

    # Broadcast
    heartbeat_interval_sec: float = Field(15.0, alias="HEARTBEAT_INTERVAL_SEC")
    max_stream_connections: int = Field(1000, alias="MAX_STREAM_CONNECTIONS")
    subscriber_buffer_size: int = Field(64, alias="SUBSCRIBER_BUFFER_SIZE")

    # Queue
    queue_view_limit: int = Field(200, alias="QUEUE_VIEW_LIMIT")

    # Speech synthesis
    tts_endpoint: Optional[AnyHttpUrl] = Field(None, alias="TTS_ENDPOINT")
    tts_voice: str = Field("uk-UA-Standard-A", alias="TTS_VOICE")
    tts_timeout_sec: float = Field(15.0, alias="TTS_TIMEOUT_SEC")

    # Overlay runtime
    overlay_server_url: AnyHttpUrl = Field("http://127.0.0.1:8080", alias="OVERLAY_SERVER_URL")
    overlay_widget_token: Optional[str] = Field(None, alias="OVERLAY_WIDGET_TOKEN")
    overlay_streamer_id: Optional[int] = Field(None, alias="OVERLAY_STREAMER_ID")
    overlay_reconnect_delay_sec: float = Field(3.0, alias="OVERLAY_RECONNECT_DELAY_SEC")
    overlay_pause_poll_sec: float = Field(3.0, alias="OVERLAY_PAUSE_POLL_SEC")

    # API
    api_host: str = Field("0.0.0.0", alias="API_HOST")
    api_port: int = Field(8080, alias="API_PORT")

    # Misc
    log_level: LogLevel = Field(LogLevel.INFO, alias="LOG_LEVEL")
    locale: Locale = Field(Locale.EN, alias="LOCALE")
    display_currency: str = Field("UAH", alias="DISPLAY_CURRENCY")

    @field_validator(
        "pubkey_cache_ttl_sec",
        "amount_min",
        "amount_max",
        "nickname_max_length",
        "message_max_length",
        "max_stream_connections",
        "subscriber_buffer_size",
        "queue_view_limit",
        "api_port",
    )
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Value must be positive")
        return value

    @field_validator(
        "heartbeat_interval_sec",
        "http_timeout_sec",
        "tts_timeout_sec",
        "overlay_reconnect_delay_sec",
        "overlay_pause_poll_sec",
    )
    @classmethod
    def _ensure_positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Interval must be positive")
        return value

    @field_validator("admin_token", "encryption_key")
    @classmethod
    def _strip_empty_secret(cls, value: Optional[SecretStr]) -> Optional[SecretStr]:
        if value is None:
            return None
        cleaned = value.get_secret_value().strip()
        return SecretStr(cleaned) if cleaned else None

    def base_url(self) -> str:
        """Public base URL without a trailing slash."""

        return str(self.public_base_url).rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings()
