"""In-process fan-out of confirmed donations to live overlay connections."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import threading
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .config import Settings, get_settings
from .models import DonationEvent, QueueSnapshot

logger = logging.getLogger(__name__)

DONATION_EVENT = "donation"
PING_EVENT = "ping"
QUEUE_EVENT = "queue"


class HubFullError(RuntimeError):
    """Raised when the connection limit has been reached."""


def format_frame(event: str, data: str) -> str:
    """Serialize one server-sent event frame."""

    lines = "".join(f"data: {line}\n" for line in data.splitlines() or [""])
    return f"event: {event}\n{lines}\n"


@dataclass(eq=False, slots=True)
class Subscription:
    """One live push connection, optionally scoped to a streamer."""

    id: int
    streamer_id: Optional[int]
    frames: asyncio.Queue[str]
    connected_at: float
    active: bool = True
    delivered: int = field(default=0)

    def accepts(self, streamer_id: int) -> bool:
        return self.streamer_id is None or self.streamer_id == streamer_id


class BroadcastHub:
    """Registry of open connections; publish is best-effort, at-most-once, no replay."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._heartbeat = self._settings.heartbeat_interval_sec
        self._max_connections = self._settings.max_stream_connections
        self._buffer_size = self._settings.subscriber_buffer_size
        self._subscribers: dict[int, Subscription] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    def subscribe(self, streamer_id: Optional[int] = None) -> Subscription:
        with self._lock:
            if len(self._subscribers) >= self._max_connections:
                raise HubFullError("Too many open stream connections")
            subscription = Subscription(
                id=next(self._ids),
                streamer_id=streamer_id,
                frames=asyncio.Queue(self._buffer_size),
                connected_at=self._clock(),
            )
            self._subscribers[subscription.id] = subscription
            total = len(self._subscribers)
        subscription.frames.put_nowait(self._ping_frame())
        logger.info("hub.subscribed", extra={"client": subscription.id, "streamer_id": streamer_id, "total": total})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
            total = len(self._subscribers)
        subscription.active = False
        if removed is not None:
            logger.info("hub.unsubscribed", extra={"client": subscription.id, "total": total})

    def publish(self, streamer_id: int, event: str, payload: dict[str, Any]) -> int:
        """Push ``payload`` to every matching connection; returns how many accepted it."""

        frame = format_frame(event, json.dumps(payload, ensure_ascii=False))
        with self._lock:
            targets = [sub for sub in self._subscribers.values() if sub.accepts(streamer_id)]

        sent = 0
        for subscription in targets:
            if not subscription.active:
                continue
            try:
                subscription.frames.put_nowait(frame)
            except asyncio.QueueFull:
                logger.warning("hub.slow_client_dropped", extra={"client": subscription.id})
                self.unsubscribe(subscription)
                continue
            subscription.delivered += 1
            sent += 1
        logger.info(
            "hub.published",
            extra={"event": event, "streamer_id": streamer_id, "sent": sent, "targets": len(targets)},
        )
        return sent

    def publish_donation(self, event: DonationEvent) -> int:
        return self.publish(event.streamer_id, DONATION_EVENT, event.to_json_dict())

    def publish_queue(self, streamer_id: int, snapshot: QueueSnapshot) -> int:
        payload = {
            "currentlyPlaying": snapshot.currently_playing.to_json_dict() if snapshot.currently_playing else None,
            "queueStats": snapshot.statistics.to_json_dict(),
            "pendingCount": snapshot.statistics.pending_videos,
        }
        return self.publish(streamer_id, QUEUE_EVENT, payload)

    async def stream(self, subscription: Subscription) -> AsyncIterator[str]:
        """Yield frames for one connection, interleaving periodic heartbeats."""

        loop = asyncio.get_running_loop()
        next_ping = loop.time() + self._heartbeat
        try:
            while subscription.active:
                timeout = max(0.0, next_ping - loop.time())
                try:
                    frame = await asyncio.wait_for(subscription.frames.get(), timeout)
                except asyncio.TimeoutError:
                    frame = self._ping_frame()
                    next_ping = loop.time() + self._heartbeat
                yield frame
        finally:
            self.unsubscribe(subscription)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            subscribers = list(self._subscribers.values())
        by_streamer: dict[str, int] = {}
        for sub in subscribers:
            key = str(sub.streamer_id) if sub.streamer_id is not None else "all"
            by_streamer[key] = by_streamer.get(key, 0) + 1
        return {"total": len(subscribers), "byStreamer": by_streamer}

    def _ping_frame(self) -> str:
        return format_frame(PING_EVENT, str(int(self._clock() * 1000)))
