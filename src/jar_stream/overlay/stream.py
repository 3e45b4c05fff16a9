"""Server-sent event consumer for ``/api/stream`` with fixed-interval reconnects."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class StreamFrame:
    event: str
    data: str

    def json(self) -> Any:
        return json.loads(self.data)


async def parse_frames(lines: AsyncIterator[str]) -> AsyncIterator[StreamFrame]:
    """Group ``event:``/``data:`` lines into frames; a blank line ends a frame."""

    event = "message"
    data: list[str] = []
    async for line in lines:
        if not line:
            if data:
                yield StreamFrame(event, "\n".join(data))
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if data:
        yield StreamFrame(event, "\n".join(data))


class EventStreamClient:
    """Yields frames forever; every dropped connection is retried after ``reconnect_delay``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        streamer_id: Optional[int] = None,
        token: Optional[str] = None,
        reconnect_delay: float = 3.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self._params: dict[str, Any] = {}
        if token:
            self._params["token"] = token
        elif streamer_id is not None:
            self._params["streamerId"] = streamer_id
        self._reconnect_delay = reconnect_delay
        self._sleep = sleep
        self._closed = False
        self.connections = 0

    def close(self) -> None:
        self._closed = True

    async def frames(self) -> AsyncIterator[StreamFrame]:
        while not self._closed:
            try:
                async with self._client.stream(
                    "GET",
                    "/api/stream",
                    params=self._params,
                    timeout=httpx.Timeout(10.0, read=None),
                ) as response:
                    response.raise_for_status()
                    self.connections += 1
                    logger.info("overlay.stream_connected", extra={"attempt": self.connections})
                    async for frame in parse_frames(response.aiter_lines()):
                        yield frame
                logger.warning("overlay.stream_closed")
            except httpx.HTTPError as exc:
                logger.warning("overlay.stream_error", extra={"error": str(exc)})
            if self._closed:
                break
            await self._sleep(self._reconnect_delay)
