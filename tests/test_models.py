from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from jar_stream.models import DonationEvent, VideoStatus, WebhookResult, YouTubeSettings, can_transition

from .utils import make_settings


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (VideoStatus.WAITING_FOR_TTS, VideoStatus.PENDING, True),
        (VideoStatus.PENDING, VideoStatus.PLAYING, True),
        (VideoStatus.PLAYING, VideoStatus.SKIPPED, True),
        (VideoStatus.PLAYING, VideoStatus.PLAYING, True),
        (None, VideoStatus.PLAYING, True),
        (VideoStatus.WAITING_FOR_TTS, VideoStatus.PLAYING, False),
        (VideoStatus.COMPLETED, VideoStatus.PENDING, False),
        (VideoStatus.SKIPPED, VideoStatus.COMPLETED, False),
    ],
)
def test_can_transition(current, target, allowed) -> None:
    assert can_transition(current, target) is allowed


def test_final_statuses() -> None:
    assert {status for status in VideoStatus if status.is_final} == {VideoStatus.COMPLETED, VideoStatus.SKIPPED}


def test_youtube_settings_accept_camel_case_and_bounds() -> None:
    options = YouTubeSettings.model_validate({"maxDurationMinutes": 30, "volume": 0, "minLikes": 10})

    assert options.max_duration_minutes == 30
    assert options.to_json_dict()["minLikes"] == 10

    with pytest.raises(ValidationError):
        YouTubeSettings.model_validate({"maxDurationMinutes": 0})
    with pytest.raises(ValidationError):
        YouTubeSettings.model_validate({"volume": 101})


def test_event_serialises_with_camel_case_keys() -> None:
    event = DonationEvent(
        identifier="ABC-123456",
        streamer_id=1,
        nickname="Ann",
        message="hi",
        amount=100.0,
        youtube_url="https://youtu.be/fJ9rUzIMcZQ",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    payload = event.to_json_dict()

    assert payload["streamerId"] == 1
    assert payload["youtubeUrl"] == "https://youtu.be/fJ9rUzIMcZQ"
    assert payload["videoStatus"] is None


def test_webhook_result_bodies() -> None:
    assert WebhookResult.ignore("No identifier").body() == {"ok": True, "ignored": True, "reason": "No identifier"}
    assert WebhookResult.reject("Invalid JSON").body() == {"ok": False, "error": "Invalid JSON"}
    assert WebhookResult.reject("Unauthorized", status_code=401).status_code == 401
    assert WebhookResult(reason="Persistence failed").body() == {"ok": True, "reason": "Persistence failed"}


def test_settings_blank_secrets_are_unset() -> None:
    settings = make_settings(ADMIN_TOKEN="   ", ENCRYPTION_KEY="")

    assert settings.admin_token is None
    assert settings.encryption_key is None
    assert make_settings(ADMIN_TOKEN=" s3cret ").admin_token.get_secret_value() == "s3cret"


def test_settings_reject_non_positive_limits() -> None:
    with pytest.raises(ValidationError):
        make_settings(AMOUNT_MIN=0)
    with pytest.raises(ValidationError):
        make_settings(HEARTBEAT_INTERVAL_SEC=0)


def test_base_url_strips_trailing_slash() -> None:
    assert make_settings(PUBLIC_BASE_URL="https://donate.example.com/").base_url() == "https://donate.example.com"
