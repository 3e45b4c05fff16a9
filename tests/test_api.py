import json
from typing import Optional

import httpx
import pytest

from jar_stream.api import ControlServer
from jar_stream.broadcast import BroadcastHub
from jar_stream.donation import WebhookReconciler
from jar_stream.models import VideoStatus
from jar_stream.queue import QueueManager
from jar_stream.storage import IntentStore
from jar_stream.tts import SpeechSynthesisError

from .utils import add_event, make_settings, seed_streamer


class FakeSynthesizer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requests: list[tuple[str, Optional[str]]] = []

    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        self.requests.append((text, voice))
        if self.fail:
            raise SpeechSynthesisError("backend down")
        return b"ID3-audio"

    async def aclose(self) -> None:
        return None


def build_server(database, hub, settings, synthesizer=None) -> ControlServer:
    reconciler = WebhookReconciler(database, hub, settings=settings)
    queue = QueueManager(database, hub, settings)
    return ControlServer(database, hub, reconciler, queue, settings, synthesizer=synthesizer)


def client_for(server: ControlServer) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=server.app), base_url="http://testserver")


@pytest.fixture
def server(database, hub, settings) -> ControlServer:
    return build_server(database, hub, settings, FakeSynthesizer())


def _webhook_body(amount: int, comment: str) -> bytes:
    return json.dumps(
        {
            "type": "StatementItem",
            "data": {"account": "acc", "statementItem": {"id": "tx", "time": 1, "amount": amount, "comment": comment}},
        }
    ).encode()


@pytest.mark.asyncio
async def test_health(server) -> None:
    async with client_for(server) as client:
        response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_donation_returns_url_and_identifier(server, streamer) -> None:
    params = {"nickname": "Ann", "amount": "100", "message": "Go team!", "streamer": "ann"}
    async with client_for(server) as client:
        response = await client.get("/api/donations/create", params=params)

    assert response.status_code == 200
    payload = response.json()
    assert set(payload) == {"url", "identifier"}
    assert "a=100" in payload["url"]


@pytest.mark.asyncio
async def test_create_donation_uses_referer(server, streamer) -> None:
    params = {"nickname": "Ann", "amount": "50", "message": "hi"}
    async with client_for(server) as client:
        response = await client.get(
            "/api/donations/create", params=params, headers={"Referer": "https://donate.example.com/ann"}
        )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_create_donation_validation_error(server, streamer) -> None:
    params = {"nickname": "Ann", "amount": "5", "message": "Go team!", "streamer": "ann"}
    async with client_for(server) as client:
        response = await client.get("/api/donations/create", params=params)

    assert response.status_code == 400
    assert response.json() == {"error": "Amount must be between 10 and 29999.", "code": "amount_out_of_range"}


@pytest.mark.asyncio
async def test_create_donation_keeps_clip_url(server, database, streamer) -> None:
    params = {"nickname": "Ann", "amount": "100", "message": "clip!", "streamer": "ann"}
    async with client_for(server) as client:
        accepted = await client.get(
            "/api/donations/create", params={**params, "youtube": "https://youtu.be/fJ9rUzIMcZQ"}
        )
        rejected = await client.get("/api/donations/create", params={**params, "youtube": "https://example.com/clip"})

    assert accepted.status_code == 200
    with database.session() as session:
        intent = IntentStore(session).find_intent(accepted.json()["identifier"], streamer.streamer_id)
    assert intent is not None and intent.youtube_url == "https://youtu.be/fJ9rUzIMcZQ"
    assert rejected.status_code == 400
    assert rejected.json()["code"] == "youtube_url_invalid"


@pytest.mark.asyncio
async def test_create_donation_unexpected_failure(server, streamer, monkeypatch) -> None:
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("jar_stream.api.server.create_intent", explode)
    params = {"nickname": "Ann", "amount": "100", "message": "x", "streamer": "ann"}
    async with client_for(server) as client:
        response = await client.get("/api/donations/create", params=params)

    assert response.status_code == 500
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_intent_then_webhook_produces_one_event(server, streamer) -> None:
    params = {"nickname": "Ann", "amount": "100", "message": "Go team!", "streamer": "ann"}
    async with client_for(server) as client:
        created = (await client.get("/api/donations/create", params=params)).json()
        body = _webhook_body(10000, f"Go team! ({created['identifier']})")
        first = await client.post(f"/api/monobank/webhook/{streamer.webhook_id}", content=body)
        second = await client.post(f"/api/monobank/webhook/{streamer.webhook_id}", content=body)
        panel = await client.get("/api/panel/status", params={"streamerId": streamer.streamer_id})

    assert first.status_code == 200
    assert first.json() == {"ok": True, "processed": True, "identifier": created["identifier"]}
    assert second.json()["reason"] == "Duplicate delivery"
    donations = panel.json()["donations"]
    assert len(donations) == 1
    assert donations[0]["nickname"] == "Ann"
    assert donations[0]["amount"] == pytest.approx(100.0)
    status = panel.json()["status"]
    assert status["isConnected"] is True
    assert status["obsWidgetToken"] == streamer.obs_widget_token


@pytest.mark.asyncio
async def test_webhook_malformed_json_is_400(server, streamer) -> None:
    async with client_for(server) as client:
        response = await client.post(f"/api/monobank/webhook/{streamer.webhook_id}", content=b"{broken")
    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "Invalid JSON"}


@pytest.mark.asyncio
async def test_webhook_non_events_are_200(server, streamer) -> None:
    async with client_for(server) as client:
        unknown = await client.post("/api/monobank/webhook/unknown", content=_webhook_body(100, "x (ABC-123456)"))
        no_id = await client.post(f"/api/monobank/webhook/{streamer.webhook_id}", content=_webhook_body(100, "hi"))
        probe = await client.get(f"/api/monobank/webhook/{streamer.webhook_id}")

    assert unknown.status_code == 200
    assert unknown.json()["reason"] == "Webhook not recognized"
    assert no_id.json() == {"ok": True, "ignored": True, "reason": "No identifier"}
    assert probe.json() == {"ok": True}


@pytest.mark.asyncio
async def test_legacy_webhook_checks_shared_secret(database, hub, streamer) -> None:
    server = build_server(database, hub, make_settings(ADMIN_TOKEN="s3cret"))
    async with client_for(server) as client:
        denied = await client.post("/api/monobank/webhook", content=_webhook_body(100, "hi"))
        allowed = await client.post(
            "/api/monobank/webhook", content=_webhook_body(100, "hi"), headers={"X-Admin-Token": "s3cret"}
        )
    assert denied.status_code == 401
    assert allowed.json()["reason"] == "No identifier"


@pytest.mark.asyncio
async def test_queue_flow_over_http(database, server, streamer) -> None:
    add_event(database, streamer.streamer_id, "V1", minutes=1)
    add_event(database, streamer.streamer_id, "V2", VideoStatus.COMPLETED, minutes=0)
    scope = {"token": streamer.obs_widget_token}

    async with client_for(server) as client:
        listed = (await client.get("/api/youtube/queue", params=scope)).json()
        tts = await client.post("/api/youtube/tts-complete", json={"identifier": "V1", **scope})
        again = await client.post(
            "/api/youtube/tts-complete", json={"identifier": "V1", "streamerId": streamer.streamer_id}
        )
        advanced = (await client.patch("/api/youtube/queue", params=scope)).json()
        done = await client.post("/api/youtube/queue", params=scope, json={"identifier": "V1", "status": "completed"})
        cleared = (await client.delete("/api/youtube/queue", params=scope)).json()
        empty = (await client.patch("/api/youtube/queue", params=scope)).json()
        final = (await client.get("/api/youtube/queue", params={"streamerId": streamer.streamer_id})).json()

    assert listed["totalVideos"] == 2
    assert listed["waitingVideos"] == 1
    assert listed["currentlyPlaying"] is None
    assert tts.status_code == 200
    assert again.json()["message"] == "Video already processed"
    assert advanced["nextVideo"]["identifier"] == "V1"
    assert advanced["nextVideo"]["status"] == "playing"
    assert done.json()["status"] == "completed"
    assert cleared["clearedCount"] == 2
    assert empty == {"nextVideo": None, "message": "No videos in queue"}
    assert final["queue"] == []


@pytest.mark.asyncio
async def test_queue_errors(database, server, streamer) -> None:
    add_event(database, streamer.streamer_id, "V1", VideoStatus.PENDING)
    scope = {"streamerId": streamer.streamer_id}

    async with client_for(server) as client:
        backwards = await client.post("/api/youtube/queue", params=scope, json={"identifier": "V1", "status": "completed"})
        missing = await client.post("/api/youtube/queue", params=scope, json={"identifier": "NOPE", "status": "playing"})
        invalid = await client.post("/api/youtube/queue", params=scope, json={"identifier": "V1", "status": "bogus"})
        bad_token = await client.get("/api/youtube/queue", params={"token": "nope"})
        no_scope = await client.get("/api/youtube/queue")
        tts_missing = await client.post("/api/youtube/tts-complete", json={"identifier": "NOPE", **scope})

    assert backwards.status_code == 409
    assert backwards.json()["currentStatus"] == "pending"
    assert missing.status_code == 404
    assert invalid.status_code == 400
    assert bad_token.status_code == 401
    assert no_scope.status_code == 401
    assert tts_missing.status_code == 404


@pytest.mark.asyncio
async def test_youtube_settings_round_trip(server, streamer) -> None:
    scope = {"streamerId": streamer.streamer_id}
    async with client_for(server) as client:
        defaults = (await client.get("/api/youtube/settings", params=scope)).json()["settings"]
        rejected = await client.put("/api/youtube/settings", params=scope, json={"volume": 101})
        saved = await client.put(
            "/api/youtube/settings", params=scope, json={"maxDurationMinutes": 3, "showImmediately": True}
        )
        loaded = (await client.get("/api/youtube/settings", params={"token": streamer.obs_widget_token})).json()

    assert defaults["maxDurationMinutes"] == 5
    assert defaults["volume"] == 50
    assert defaults["showImmediately"] is False
    assert rejected.status_code == 400
    assert saved.status_code == 200
    assert loaded["settings"]["maxDurationMinutes"] == 3
    assert loaded["settings"]["showImmediately"] is True


@pytest.mark.asyncio
async def test_admin_endpoints_require_token(database, hub, streamer) -> None:
    server = build_server(database, hub, make_settings(ADMIN_TOKEN="s3cret"))
    scope = {"streamerId": streamer.streamer_id}
    async with client_for(server) as client:
        denied = await client.put("/api/youtube/settings", params=scope, json={"volume": 10})
        panel = await client.get("/api/panel/status", params=scope, headers={"X-Admin-Token": "wrong"})
        allowed = await client.put(
            "/api/youtube/settings", params=scope, json={"volume": 10}, headers={"X-Admin-Token": "s3cret"}
        )
    assert denied.status_code == 401
    assert panel.status_code == 401
    assert allowed.status_code == 200


@pytest.mark.asyncio
async def test_pause_and_widget_status(server, streamer) -> None:
    async with client_for(server) as client:
        paused = await client.post(
            "/api/donations/pause", params={"streamerId": streamer.streamer_id}, json={"paused": True}
        )
        read = (await client.get("/api/donations/pause", params={"token": streamer.obs_widget_token})).json()
        status = (await client.get("/api/widget/status", params={"token": streamer.obs_widget_token})).json()
        unknown = await client.get("/api/widget/status", params={"token": "nope"})

    assert paused.json() == {"success": True, "paused": True}
    assert read == {"paused": True}
    assert status["paused"] is True
    assert status["event"] is None
    assert status["streamerId"] == streamer.streamer_id
    assert unknown.status_code == 401


@pytest.mark.asyncio
async def test_test_donation_and_purge(database, hub, server, streamer) -> None:
    subscription = hub.subscribe(streamer.streamer_id)
    subscription.frames.get_nowait()
    scope = {"streamerId": streamer.streamer_id}

    async with client_for(server) as client:
        created = await client.post("/api/donations/test", params=scope)
        status = (await client.get("/api/widget/status", params={"token": streamer.obs_widget_token})).json()
        purged = (await client.delete("/api/donations/test", params=scope)).json()
        after = (await client.get("/api/widget/status", params={"token": streamer.obs_widget_token})).json()

    donation = created.json()["donation"]
    assert donation["identifier"].startswith("test-")
    assert donation["jarTitle"] == "Stream jar"
    assert subscription.frames.get_nowait().startswith("event: donation")
    assert status["event"]["identifier"] == donation["identifier"]
    assert purged == {"success": True, "deletedEvents": 1, "deletedIntents": 1}
    assert after["event"] is None


@pytest.mark.asyncio
async def test_test_donation_requires_jar(database, hub, settings) -> None:
    config = seed_streamer(database, "nojar", jar_id=None)
    server = build_server(database, hub, settings)
    async with client_for(server) as client:
        response = await client.post("/api/donations/test", params={"streamerId": config.streamer_id})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_replay_rebroadcasts_without_persisting(database, hub, server, streamer) -> None:
    stored = add_event(database, streamer.streamer_id, "V1", VideoStatus.COMPLETED)
    plain = add_event(database, streamer.streamer_id, "T1", video=False)
    subscription = hub.subscribe(streamer.streamer_id)
    subscription.frames.get_nowait()
    scope = {"streamerId": streamer.streamer_id}

    async with client_for(server) as client:
        replay = await client.post("/api/youtube/replay", params=scope, json={"donationId": stored.id})
        not_video = await client.post("/api/youtube/replay", params=scope, json={"donationId": plain.id})
        panel = (await client.get("/api/panel/status", params=scope)).json()

    assert replay.status_code == 200
    assert replay.json()["identifier"].startswith("replay-V1-")
    frame = subscription.frames.get_nowait()
    assert '"identifier": "replay-V1-' in frame
    assert not_video.status_code == 404
    assert len(panel["donations"]) == 2


@pytest.mark.asyncio
async def test_tts_proxy(database, hub, settings) -> None:
    synthesizer = FakeSynthesizer()
    async with client_for(build_server(database, hub, settings, synthesizer)) as client:
        ok = await client.get("/api/tts", params={"text": "Ann donated 100 UAH", "voice": "en-US"})
    async with client_for(build_server(database, hub, settings, FakeSynthesizer(fail=True))) as client:
        failed = await client.get("/api/tts", params={"text": "hello"})
    async with client_for(build_server(database, hub, settings)) as client:
        missing = await client.get("/api/tts", params={"text": "hello"})

    assert ok.status_code == 200
    assert ok.headers["content-type"] == "audio/mpeg"
    assert ok.content == b"ID3-audio"
    assert synthesizer.requests == [("Ann donated 100 UAH", "en-US")]
    assert failed.status_code == 502
    assert missing.status_code == 502


@pytest.mark.asyncio
async def test_stream_rejects_when_hub_full(database, settings, streamer) -> None:
    hub = BroadcastHub(make_settings(MAX_STREAM_CONNECTIONS=1))
    hub.subscribe()
    async with client_for(build_server(database, hub, settings)) as client:
        response = await client.get("/api/stream", params={"streamerId": streamer.streamer_id})
    assert response.status_code == 503
