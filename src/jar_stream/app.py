"""Application bootstrap and lifecycle management."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import uvicorn

from .api.server import ControlServer
from .broadcast import BroadcastHub
from .config import Settings, get_settings
from .crypto import TokenCipher
from .donation import PublicKeyCache, SignatureVerifier, WebhookReconciler
from .logging import configure_logging
from .queue import QueueManager
from .storage import Database
from .tts import HttpSpeechSynthesizer, SpeechSynthesizer

logger = logging.getLogger(__name__)


class JarStreamApp:
    """Coordinates storage, verification, fan-out and the HTTP layer."""

    def __init__(self, settings: Optional[Settings] = None, database: Optional[Database] = None) -> None:
        self._settings = settings or get_settings()
        configure_logging(self._settings.log_level)

        key = self._settings.encryption_key
        self._cipher = TokenCipher(key.get_secret_value() if key else None)
        self._database = database or Database(self._settings.database_url)
        self._hub = BroadcastHub(self._settings)
        self._verifier = SignatureVerifier(
            self._settings,
            cache=PublicKeyCache(self._settings.pubkey_cache_ttl_sec),
        )
        self._reconciler = WebhookReconciler(
            self._database, self._hub, self._verifier, self._settings, cipher=self._cipher
        )
        self._queue = QueueManager(self._database, self._hub, self._settings)
        self._synthesizer: Optional[SpeechSynthesizer] = None
        if self._settings.tts_endpoint is not None:
            self._synthesizer = HttpSpeechSynthesizer(self._settings)
        self._control = ControlServer(
            self._database,
            self._hub,
            self._reconciler,
            self._queue,
            self._settings,
            synthesizer=self._synthesizer,
            cipher=self._cipher,
        )

        self._api_task: Optional[asyncio.Task[None]] = None
        self._api_server: Optional[uvicorn.Server] = None

    @property
    def control(self) -> ControlServer:
        return self._control

    async def start(self) -> None:
        self._database.create_all()
        self._api_task = asyncio.create_task(self._run_api(), name="control-api")
        logger.info(
            "app.started",
            extra={"host": self._settings.api_host, "port": self._settings.api_port},
        )

    async def stop(self) -> None:
        if self._api_server:
            self._api_server.should_exit = True
        if self._api_task:
            try:
                await self._api_task
            except asyncio.CancelledError:
                pass

        if self._synthesizer is not None:
            await self._synthesizer.aclose()
        await self._verifier.aclose()
        self._database.dispose()
        logger.info("app.stopped")

    async def _run_api(self) -> None:
        config = uvicorn.Config(
            self._control.app,
            host=self._settings.api_host,
            port=self._settings.api_port,
            log_level=self._settings.log_level.value.lower(),
            log_config=None,
            loop="asyncio",
            lifespan="off",
            timeout_graceful_shutdown=5,
        )
        self._api_server = uvicorn.Server(config)
        try:
            await self._api_server.serve()
        except asyncio.CancelledError:
            pass
