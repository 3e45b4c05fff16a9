"""Widget-side client for the queue, settings and pause endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

from ..models import QueueItem, VideoStatus, YouTubeSettings

logger = logging.getLogger(__name__)


class OverlayApiError(RuntimeError):
    """A widget call to the server failed."""


class QueueApiClient:
    """Every call is scoped by the widget token or, failing that, the streamer id."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        streamer_id: Optional[int] = None,
        token: Optional[str] = None,
    ) -> None:
        if not token and streamer_id is None:
            raise ValueError("A widget token or streamer id is required")
        self._client = client
        self._scope: dict[str, Any] = {"token": token} if token else {"streamerId": streamer_id}

    async def youtube_settings(self) -> YouTubeSettings:
        payload = await self._request("GET", "/api/youtube/settings")
        return YouTubeSettings.model_validate(payload.get("settings") or {})

    async def paused(self) -> bool:
        payload = await self._request("GET", "/api/donations/pause")
        return bool(payload.get("paused"))

    async def tts_complete(self, identifier: str) -> bool:
        """``True`` when the item exists on the server (whether or not it moved)."""

        body = {"identifier": identifier, **self._scope}
        try:
            await self._request("POST", "/api/youtube/tts-complete", json=body, scoped=False)
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 404:
                return False
            raise OverlayApiError("tts-complete failed") from exc
        return True

    async def advance(self) -> Optional[QueueItem]:
        payload = await self._request("PATCH", "/api/youtube/queue")
        item = payload.get("nextVideo")
        return QueueItem.model_validate(item) if item else None

    async def report(self, identifier: str, status: VideoStatus) -> None:
        await self._request("POST", "/api/youtube/queue", json={"identifier": identifier, "status": status.value})

    async def _request(
        self, method: str, path: str, *, json: Optional[dict[str, Any]] = None, scoped: bool = True
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, params=self._scope if scoped else None, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError:
            raise
        except httpx.HTTPError as exc:
            raise OverlayApiError(f"{method} {path} failed") from exc
        return response.json()


class PauseMonitor:
    """Polls the server-side pause flag; dequeuing waits while it is set."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[bool]],
        interval: float = 3.0,
    ) -> None:
        self._fetch = fetch
        self._interval = interval
        self._resumed = asyncio.Event()
        self._resumed.set()

    @property
    def paused(self) -> bool:
        return not self._resumed.is_set()

    def set_paused(self, paused: bool) -> None:
        if paused == self.paused:
            return
        if paused:
            self._resumed.clear()
        else:
            self._resumed.set()
        logger.info("overlay.pause_changed", extra={"paused": paused})

    async def wait_resumed(self) -> None:
        await self._resumed.wait()

    async def poll_once(self) -> None:
        try:
            self.set_paused(await self._fetch())
        except (httpx.HTTPError, OverlayApiError) as exc:
            # keep the last known state
            logger.warning("overlay.pause_poll_failed", extra={"error": str(exc)})

    async def run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._interval)
