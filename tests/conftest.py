from __future__ import annotations

import pytest

from jar_stream.broadcast import BroadcastHub
from jar_stream.models import StreamerWebhookConfig
from jar_stream.storage import Database

from .utils import make_settings, seed_streamer


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def hub(settings) -> BroadcastHub:
    return BroadcastHub(settings)


@pytest.fixture
def streamer(database) -> StreamerWebhookConfig:
    return seed_streamer(database, "ann")
