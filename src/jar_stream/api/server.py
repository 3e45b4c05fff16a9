"""FastAPI surface: donation creation, bank webhooks, live stream and queue control."""

from __future__ import annotations

import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Query, Request, status
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from ..broadcast import BroadcastHub, HubFullError
from ..config import Settings, get_settings
from ..crypto import TokenCipher
from ..donation import DonationRequest, DonationValidationError, WebhookReconciler, create_intent
from ..donation.synthetic import JarNotConnectedError, ReplayNotFoundError, SyntheticDonations
from ..messages import translate
from ..models import VideoStatus, YouTubeSettings
from ..queue import InvalidTransitionError, QueueManager, VideoNotFoundError
from ..storage import Database, EventStore, IntentStore, StreamerStore
from ..tts import AUDIO_MEDIA_TYPE, SpeechSynthesisError, SpeechSynthesizer

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Sign"
STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class ApiError(Exception):
    def __init__(self, status_code: int, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.extra = extra


class StatusUpdate(BaseModel):
    identifier: str = Field(..., min_length=1)
    status: Optional[VideoStatus] = None
    action: Optional[str] = None


class TtsComplete(BaseModel):
    identifier: str = Field(..., min_length=1)
    streamer_id: Optional[int] = Field(default=None, alias="streamerId")
    token: Optional[str] = None


class ReplayCommand(BaseModel):
    donation_id: int = Field(..., alias="donationId")


class PauseCommand(BaseModel):
    paused: bool


class ControlServer:
    """Wraps the FastAPI application; collaborators are injected so tests can share them."""

    def __init__(
        self,
        database: Database,
        hub: BroadcastHub,
        reconciler: WebhookReconciler,
        queue: QueueManager,
        settings: Optional[Settings] = None,
        synthesizer: Optional[SpeechSynthesizer] = None,
        cipher: Optional[TokenCipher] = None,
        synthetic: Optional[SyntheticDonations] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._db = database
        self._hub = hub
        self._reconciler = reconciler
        self._queue = queue
        self._synthesizer = synthesizer
        self._cipher = cipher or TokenCipher(None)
        self._synthetic = synthetic or SyntheticDonations(database, hub, self._cipher)
        self._app = FastAPI(title="Jar Stream", version="1.0.0")
        self._register_error_handlers()

        @self._app.get("/health", status_code=status.HTTP_200_OK)
        async def health() -> Dict[str, Any]:
            return {"status": "ok", "connections": self._hub.stats()}

        # -- donor flow -----------------------------------------------------------

        @self._app.get("/api/donations/create")
        async def create_donation(
            nickname: str = "",
            amount: str = "",
            message: str = "",
            youtube: Optional[str] = None,
            streamer: Optional[str] = None,
            referer: Optional[str] = Header(default=None),
        ):
            request = DonationRequest(
                nickname=nickname,
                amount=amount,
                message=message,
                youtube_url=youtube,
                streamer=streamer,
                referer=referer,
            )
            try:
                with self._db.session() as session:
                    created = create_intent(
                        request, StreamerStore(session, self._cipher), IntentStore(session), self._settings
                    )
            except DonationValidationError:
                raise
            except Exception:
                logger.exception("intent.create_failed")
                raise ApiError(500, translate("internal_error", self._settings.locale)) from None
            return {"url": created.payment_url, "identifier": created.identifier}

        # -- bank webhooks -------------------------------------------------------

        @self._app.get("/api/monobank/webhook/{webhook_id}")
        async def webhook_probe(webhook_id: str) -> Dict[str, bool]:
            # The bank checks the URL with a GET before it starts delivering.
            return {"ok": True}

        @self._app.post("/api/monobank/webhook/{webhook_id}")
        async def streamer_webhook(webhook_id: str, request: Request) -> JSONResponse:
            raw_body = await request.body()
            result = await self._reconciler.handle(webhook_id, raw_body, request.headers.get(SIGNATURE_HEADER))
            return JSONResponse(result.body(), status_code=result.status_code)

        @self._app.post("/api/monobank/webhook")
        async def legacy_webhook(
            request: Request,
            x_admin_token: Optional[str] = Header(default=None),
        ) -> JSONResponse:
            raw_body = await request.body()
            result = await self._reconciler.handle_legacy(raw_body, x_admin_token)
            return JSONResponse(result.body(), status_code=result.status_code)

        # -- live stream --------------------------------------------------------

        @self._app.get("/api/stream")
        async def event_stream(
            streamer_id: Optional[int] = Query(default=None, alias="streamerId"),
            token: Optional[str] = None,
        ) -> StreamingResponse:
            scope = None
            if streamer_id is not None or token:
                scope = self._resolve_streamer(streamer_id, token)
            subscription = self._hub.subscribe(scope)
            return StreamingResponse(
                self._hub.stream(subscription),
                media_type="text/event-stream",
                headers=STREAM_HEADERS,
            )

        # -- video queue --------------------------------------------------------

        @self._app.get("/api/youtube/queue")
        async def queue_view(
            streamer_id: Optional[int] = Query(default=None, alias="streamerId"),
            token: Optional[str] = None,
        ) -> Dict[str, Any]:
            snapshot = self._queue.snapshot(self._resolve_streamer(streamer_id, token))
            stats = snapshot.statistics.to_json_dict()
            return {
                "queue": [item.to_json_dict() for item in snapshot.queue],
                **stats,
                "currentlyPlaying": snapshot.currently_playing.to_json_dict() if snapshot.currently_playing else None,
            }

        @self._app.post("/api/youtube/queue")
        async def queue_update(
            request: Request,
            streamer_id: Optional[int] = Query(default=None, alias="streamerId"),
            token: Optional[str] = None,
        ) -> Dict[str, Any]:
            scope = self._resolve_streamer(streamer_id, token)
            command = await self._parse(request, StatusUpdate, "Invalid status")
            if command.action != "stop" and command.status is None:
                raise ApiError(400, "Invalid status")
            applied = self._queue.update_status(scope, command.identifier, command.status, command.action)
            return {
                "success": True,
                "message": f"Video status updated to: {applied.value}",
                "identifier": command.identifier,
                "status": applied.value,
            }

        @self._app.delete("/api/youtube/queue")
        async def queue_clear(
            streamer_id: Optional[int] = Query(default=None, alias="streamerId"),
            token: Optional[str] = None,
        ) -> Dict[str, Any]:
            cleared = self._queue.clear(self._resolve_streamer(streamer_id, token))
            return {"success": True, "clearedCount": cleared, "message": f"Cleared {cleared} finished videos"}

        @self._app.patch("/api/youtube/queue")
        async def queue_advance(
            streamer_id: Optional[int] = Query(default=None, alias="streamerId"),
            token: Optional[str] = None,
        ) -> Dict[str, Any]:
            item = self._queue.advance(self._resolve_streamer(streamer_id, token))
            if item is None:
                return {"nextVideo": None, "message": "No videos in queue"}
            return {
                "success": True,
                "nextVideo": item.to_json_dict(),
                "message": f"Playing video from {item.nickname}",
            }

        @self._app.post("/api/youtube/tts-complete")
        async def tts_complete(request: Request) -> Dict[str, Any]:
            command = await self._parse(request, TtsComplete, "Missing identifier or streamerId")
            if command.streamer_id is None and not command.token:
                raise ApiError(400, "Missing identifier or streamerId")
            scope = self._resolve_streamer(command.streamer_id, command.token)
            outcome = self._queue.mark_tts_complete(scope, command.identifier)
            if not outcome.updated:
                return {
                    "success": True,
                    "message": "Video already processed",
                    "currentStatus": outcome.status.value if outcome.status else None,
                }
            return {"success": True, "message": "Video moved to pending", "identifier": outcome.identifier}

        @self._app.get("/api/youtube/settings")
        async def youtube_settings(
            streamer_id: Optional[int] = Query(default=None, alias="streamerId"),
            token: Optional[str] = None,
        ) -> Dict[str, Any]:
            scope = self._resolve_streamer(streamer_id, token)
            with self._db.session() as session:
                options = StreamerStore(session, self._cipher).get_youtube_settings(scope)
            return {"settings": options.to_json_dict()}

        @self._app.put("/api/youtube/settings")
        async def save_youtube_settings(
            request: Request,
            streamer_id: int = Query(..., alias="streamerId"),
            x_admin_token: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:
            self._require_admin(x_admin_token)
            self._require_streamer(streamer_id)
            options = await self._parse(request, YouTubeSettings, "Invalid settings")
            with self._db.session() as session:
                StreamerStore(session, self._cipher).save_youtube_settings(streamer_id, options)
            logger.info("settings.youtube_saved", extra={"streamer_id": streamer_id})
            return {"success": True, "settings": options.to_json_dict()}

        @self._app.post("/api/youtube/replay")
        async def replay_video(
            request: Request,
            streamer_id: int = Query(..., alias="streamerId"),
            x_admin_token: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:
            self._require_admin(x_admin_token)
            command = await self._parse(request, ReplayCommand, "Donation ID required")
            try:
                replay = self._synthetic.replay(streamer_id, command.donation_id)
            except ReplayNotFoundError:
                raise ApiError(404, "Donation with YouTube video not found") from None
            return {"success": True, "identifier": replay.identifier, "message": "Video queued for replay"}

        # -- streamer controls ---------------------------------------------------

        @self._app.get("/api/donations/pause")
        async def pause_state(
            streamer_id: Optional[int] = Query(default=None, alias="streamerId"),
            token: Optional[str] = None,
        ) -> Dict[str, bool]:
            scope = self._resolve_streamer(streamer_id, token)
            with self._db.session() as session:
                paused = StreamerStore(session, self._cipher).is_paused(scope)
            return {"paused": paused}

        @self._app.post("/api/donations/pause")
        async def set_pause(
            request: Request,
            streamer_id: int = Query(..., alias="streamerId"),
            x_admin_token: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:
            self._require_admin(x_admin_token)
            command = await self._parse(request, PauseCommand, "Invalid pause state")
            with self._db.session() as session:
                updated = StreamerStore(session, self._cipher).set_paused(streamer_id, command.paused)
            if not updated:
                raise ApiError(404, "Streamer settings not found")
            logger.info("donations.pause_changed", extra={"streamer_id": streamer_id, "paused": command.paused})
            return {"success": True, "paused": command.paused}

        @self._app.post("/api/donations/test")
        async def test_donation(
            streamer_id: int = Query(..., alias="streamerId"),
            x_admin_token: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:
            self._require_admin(x_admin_token)
            self._require_streamer(streamer_id)
            try:
                event = self._synthetic.create_test_donation(streamer_id)
            except JarNotConnectedError:
                raise ApiError(400, translate("jar_not_configured", self._settings.locale)) from None
            return {"success": True, "donation": event.to_json_dict()}

        @self._app.delete("/api/donations/test")
        async def purge_test_donations(
            streamer_id: int = Query(..., alias="streamerId"),
            x_admin_token: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:
            self._require_admin(x_admin_token)
            events, intents = self._synthetic.purge_test_data(streamer_id)
            return {"success": True, "deletedEvents": events, "deletedIntents": intents}

        @self._app.get("/api/panel/status")
        async def panel_status(
            streamer_id: int = Query(..., alias="streamerId"),
            x_admin_token: Optional[str] = Header(default=None),
        ) -> Dict[str, Any]:
            self._require_admin(x_admin_token)
            self._require_streamer(streamer_id)
            with self._db.session() as session:
                config = StreamerStore(session, self._cipher).get_config(streamer_id)
                donations = EventStore(session).list_events(streamer_id)
            latest = donations[-1] if donations else None
            connected = bool(config and config.jar_id)
            return {
                "status": {
                    "isActive": latest is not None,
                    "event": latest.to_json_dict() if latest else None,
                    "isConnected": connected,
                    "jarTitle": config.jar_title if connected and config else None,
                    "jarGoal": config.jar_goal if connected and config else None,
                    "obsWidgetToken": config.obs_widget_token if config else None,
                    "webhookUrl": config.webhook_url if config else None,
                    "donationsPaused": config.donations_paused if config else False,
                },
                "donations": [event.to_json_dict() for event in donations],
            }

        @self._app.get("/api/widget/status")
        async def widget_status(token: str = Query(..., min_length=1)) -> Dict[str, Any]:
            scope = self._resolve_streamer(None, token)
            with self._db.session() as session:
                latest = EventStore(session).latest_event(scope)
                paused = StreamerStore(session, self._cipher).is_paused(scope)
            return {
                "streamerId": scope,
                "isActive": latest is not None,
                "event": latest.to_json_dict() if latest else None,
                "paused": paused,
            }

        @self._app.get("/api/tts")
        async def speech(text: str = Query(..., min_length=1), voice: Optional[str] = None) -> Response:
            if self._synthesizer is None:
                raise SpeechSynthesisError("Speech backend is not configured")
            audio = await self._synthesizer.synthesize(text, voice)
            return Response(content=audio, media_type=AUDIO_MEDIA_TYPE, headers={"Cache-Control": "no-store"})

    # -- helpers ------------------------------------------------------------------

    def _register_error_handlers(self) -> None:
        @self._app.exception_handler(ApiError)
        async def api_error(_: Request, exc: ApiError) -> JSONResponse:
            return JSONResponse({"error": exc.message, **exc.extra}, status_code=exc.status_code)

        @self._app.exception_handler(DonationValidationError)
        async def donation_invalid(_: Request, exc: DonationValidationError) -> JSONResponse:
            logger.info("intent.rejected", extra={"code": exc.code})
            return JSONResponse({"error": exc.localized(self._settings), "code": exc.code}, status_code=400)

        @self._app.exception_handler(VideoNotFoundError)
        async def video_missing(_: Request, exc: VideoNotFoundError) -> JSONResponse:
            return JSONResponse({"error": "Video not found"}, status_code=404)

        @self._app.exception_handler(InvalidTransitionError)
        async def bad_transition(_: Request, exc: InvalidTransitionError) -> JSONResponse:
            logger.info(
                "queue.transition_rejected",
                extra={"identifier": exc.identifier, "target": exc.target.value},
            )
            return JSONResponse(
                {
                    "error": "Invalid status transition",
                    "currentStatus": exc.current.value if exc.current else None,
                    "status": exc.target.value,
                },
                status_code=409,
            )

        @self._app.exception_handler(HubFullError)
        async def hub_full(_: Request, exc: HubFullError) -> JSONResponse:
            logger.warning("hub.full")
            return JSONResponse({"error": str(exc)}, status_code=503)

        @self._app.exception_handler(SpeechSynthesisError)
        async def speech_failed(_: Request, exc: SpeechSynthesisError) -> JSONResponse:
            return JSONResponse({"error": str(exc)}, status_code=502)

    async def _parse(self, request: Request, model: type[BaseModel], message: str) -> Any:
        try:
            return model.model_validate_json(await request.body())
        except ValidationError:
            raise ApiError(400, message) from None

    def _require_admin(self, supplied: Optional[str]) -> None:
        expected = self._settings.admin_token
        if expected is None:
            return
        if not hmac.compare_digest((supplied or "").encode(), expected.get_secret_value().encode()):
            raise ApiError(401, "Unauthorized")

    def _require_streamer(self, streamer_id: int) -> None:
        with self._db.session() as session:
            if not StreamerStore(session, self._cipher).streamer_exists(streamer_id):
                raise ApiError(404, "Streamer not found")

    def _resolve_streamer(self, streamer_id: Optional[int], token: Optional[str]) -> int:
        """Widget access: the capability token wins, an explicit id is the kiosk fallback."""

        if token:
            with self._db.session() as session:
                resolved = StreamerStore(session, self._cipher).find_streamer_by_widget_token(token)
            if resolved is None:
                raise ApiError(401, "Unauthorized")
            return resolved
        if streamer_id is not None:
            return streamer_id
        raise ApiError(401, "Unauthorized")

    @property
    def app(self) -> FastAPI:
        return self._app
