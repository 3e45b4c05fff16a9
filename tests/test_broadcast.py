import asyncio
import json
from datetime import datetime, timezone

import pytest

from jar_stream.broadcast import DONATION_EVENT, PING_EVENT, BroadcastHub, HubFullError, format_frame
from jar_stream.models import DonationEvent

from .utils import make_settings


def _event(streamer_id: int, identifier: str = "ABC-123456") -> DonationEvent:
    return DonationEvent(
        identifier=identifier,
        streamer_id=streamer_id,
        nickname="Ann",
        message="Go team!",
        amount=100.0,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def _drain(subscription) -> list[str]:
    frames = []
    while not subscription.frames.empty():
        frames.append(subscription.frames.get_nowait())
    return frames


def test_format_frame_splits_multiline_data() -> None:
    assert format_frame("donation", "a\nb") == "event: donation\ndata: a\ndata: b\n\n"


def test_subscribe_sends_initial_ping(hub) -> None:
    subscription = hub.subscribe(1)
    (frame,) = _drain(subscription)
    assert frame.startswith(f"event: {PING_EVENT}\n")


def test_publish_respects_streamer_scope(hub) -> None:
    mine = hub.subscribe(1)
    other = hub.subscribe(2)
    everyone = hub.subscribe(None)
    for sub in (mine, other, everyone):
        _drain(sub)

    sent = hub.publish_donation(_event(1))

    assert sent == 2
    assert len(_drain(mine)) == 1
    assert _drain(other) == []
    (frame,) = _drain(everyone)
    assert frame.startswith(f"event: {DONATION_EVENT}\n")
    payload = json.loads(frame.split("data: ", 1)[1])
    assert payload["streamerId"] == 1
    assert payload["nickname"] == "Ann"


def test_slow_client_is_dropped() -> None:
    hub = BroadcastHub(make_settings(SUBSCRIBER_BUFFER_SIZE=2))
    slow = hub.subscribe(1)  # initial ping occupies one slot
    hub.publish_donation(_event(1, "AAA-AAAAAA"))

    assert hub.publish_donation(_event(1, "BBB-BBBBBB")) == 0
    assert slow.active is False
    assert hub.stats()["total"] == 0


def test_connection_limit() -> None:
    hub = BroadcastHub(make_settings(MAX_STREAM_CONNECTIONS=2))
    first = hub.subscribe()
    hub.subscribe()
    with pytest.raises(HubFullError):
        hub.subscribe()

    hub.unsubscribe(first)
    hub.subscribe()


def test_hubs_do_not_share_state(settings) -> None:
    first = BroadcastHub(settings)
    second = BroadcastHub(settings)
    first.subscribe(1)
    assert second.stats()["total"] == 0


@pytest.mark.asyncio
async def test_stream_emits_heartbeats_and_unsubscribes() -> None:
    hub = BroadcastHub(make_settings(HEARTBEAT_INTERVAL_SEC=0.05))
    subscription = hub.subscribe(1)
    stream = hub.stream(subscription)

    initial = await asyncio.wait_for(stream.__anext__(), 1)
    heartbeat = await asyncio.wait_for(stream.__anext__(), 1)
    hub.publish_donation(_event(1))
    donation = await asyncio.wait_for(stream.__anext__(), 1)
    await stream.aclose()

    assert initial.startswith("event: ping")
    assert heartbeat.startswith("event: ping")
    assert donation.startswith("event: donation")
    assert hub.stats()["total"] == 0
