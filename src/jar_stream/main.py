"""Server entry point: run until SIGINT/SIGTERM, then shut down cleanly."""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Optional

from .app import JarStreamApp
from .config import Settings

logger = logging.getLogger(__name__)


def _install_stop_signals(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - Windows
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def main(settings: Optional[Settings] = None) -> None:
    app = JarStreamApp(settings)
    stop = asyncio.Event()
    _install_stop_signals(stop)

    await app.start()
    try:
        await stop.wait()
        logger.info("app.shutdown_requested")
    finally:
        await app.stop()


if __name__ == "__main__":
    asyncio.run(main())
