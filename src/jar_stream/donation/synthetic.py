"""Panel-triggered donations that bypass the bank: test donations and video replays."""

from __future__ import annotations

import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from ..broadcast import BroadcastHub
from ..crypto import TokenCipher
from ..models import DonationEvent, DonationIntent
from ..storage import TEST_IDENTIFIER_PREFIX, Database, EventStore, IntentStore, StreamerStore

logger = logging.getLogger(__name__)

REPLAY_IDENTIFIER_PREFIX = "replay-"
DEFAULT_JAR_TITLE = "Monobank jar"

SAMPLE_NICKNAMES = (
    "CoolViewer2024",
    "StreamFan_UA",
    "GenerousSupporter",
    "LoyalFollower",
    "ContentLover",
    "KindDonator",
    "StreamHero",
)
SAMPLE_MESSAGES = (
    "Thanks for the stream!",
    "Keep it up!",
    "Supporting the channel!",
    "Great content, see you tomorrow.",
    "Hi! I have been watching your streams for months and always have a great time. Keep going!",
)
SAMPLE_AMOUNTS = (10, 25, 50, 100, 150, 200, 300, 500, 777, 1000)
SAMPLE_VIDEOS = (
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "https://www.youtube.com/watch?v=9bZkp7q19f0",
    "https://youtu.be/fJ9rUzIMcZQ",
    None,
    None,
)


class JarNotConnectedError(RuntimeError):
    """Test donations need a connected jar to snapshot its title."""


class ReplayNotFoundError(LookupError):
    """No stored video donation with that id for the streamer."""


class SyntheticDonations:
    def __init__(
        self,
        database: Database,
        hub: BroadcastHub,
        cipher: Optional[TokenCipher] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db = database
        self._hub = hub
        self._cipher = cipher or TokenCipher(None)
        self._rng = rng or random.Random()
        self._clock = clock

    def test_identifier(self) -> str:
        suffix = "".join(self._rng.choices(string.ascii_lowercase + string.digits, k=9))
        return f"{TEST_IDENTIFIER_PREFIX}{int(self._clock() * 1000)}-{suffix}"

    def create_test_donation(self, streamer_id: int) -> DonationEvent:
        """Persist a random intent + event pair and broadcast it like a confirmed donation."""

        with self._db.session() as session:
            config = StreamerStore(session, self._cipher).get_config(streamer_id)
            if config is None or not config.jar_id:
                raise JarNotConnectedError(streamer_id)

            nickname = self._rng.choice(SAMPLE_NICKNAMES)
            message = self._rng.choice(SAMPLE_MESSAGES)
            amount = self._rng.choice(SAMPLE_AMOUNTS)
            youtube_url = self._rng.choice(SAMPLE_VIDEOS)
            identifier = self.test_identifier()
            now = datetime.now(timezone.utc)

            IntentStore(session).append(
                DonationIntent(
                    identifier=identifier,
                    streamer_id=streamer_id,
                    nickname=nickname,
                    message=message,
                    amount=amount,
                    youtube_url=youtube_url,
                    created_at=now,
                )
            )
            event = EventStore(session).append(
                DonationEvent(
                    identifier=identifier,
                    streamer_id=streamer_id,
                    nickname=nickname,
                    message=message,
                    amount=float(amount),
                    mono_comment=f"Test donation {amount}",
                    jar_title=config.jar_title or DEFAULT_JAR_TITLE,
                    youtube_url=youtube_url,
                    created_at=now,
                )
            )

        logger.info(
            "synthetic.test_donation",
            extra={"streamer_id": streamer_id, "identifier": identifier, "video": bool(youtube_url)},
        )
        self._hub.publish_donation(event)
        return event

    def purge_test_data(self, streamer_id: int) -> tuple[int, int]:
        with self._db.session() as session:
            return EventStore(session).purge_test_data(streamer_id)

    def replay(self, streamer_id: int, event_id: int) -> DonationEvent:
        """Rebroadcast a stored video donation under a fresh identifier; nothing is persisted."""

        with self._db.session() as session:
            original = EventStore(session).get_event(streamer_id, event_id)
        if original is None or not original.youtube_url:
            raise ReplayNotFoundError(event_id)

        replay = original.model_copy(
            update={
                "id": None,
                "identifier": f"{REPLAY_IDENTIFIER_PREFIX}{original.identifier}-{int(self._clock() * 1000)}",
                "video_status": None,
                "created_at": datetime.now(timezone.utc),
            }
        )
        logger.info("synthetic.replay", extra={"streamer_id": streamer_id, "source": original.identifier})
        self._hub.publish_donation(replay)
        return replay
