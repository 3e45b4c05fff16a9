"""Wires a headless overlay widget from settings."""

from __future__ import annotations

from typing import Optional

import httpx

from ..config import Settings
from .api import PauseMonitor, QueueApiClient
from .notifications import NotificationPlayer
from .speech import SpeechClient
from .stream import EventStreamClient
from .surfaces import LoggingDisplay, SilentAudioOutput, SimulatedVideoSurface
from .videos import OEmbedValidator, VideoPlayer
from .widget import OverlayWidget


async def run_headless_overlay(
    settings: Settings,
    *,
    token: Optional[str] = None,
    streamer_id: Optional[int] = None,
) -> None:
    timeout = httpx.Timeout(settings.http_timeout_sec)
    async with httpx.AsyncClient(base_url=str(settings.overlay_server_url), timeout=timeout) as server, \
            httpx.AsyncClient(timeout=timeout) as external:
        api = QueueApiClient(server, streamer_id=streamer_id, token=token)
        pause = PauseMonitor(api.paused, interval=settings.overlay_pause_poll_sec)
        display = LoggingDisplay()
        widget = OverlayWidget(
            EventStreamClient(
                server,
                streamer_id=streamer_id,
                token=token,
                reconnect_delay=settings.overlay_reconnect_delay_sec,
            ),
            api,
            NotificationPlayer(
                display,
                SilentAudioOutput(),
                SpeechClient(server, settings.tts_voice),
                currency=settings.display_currency,
                gate=pause.wait_resumed,
            ),
            VideoPlayer(api, SimulatedVideoSurface(), display, OEmbedValidator(external)),
            pause,
        )
        await widget.run()
