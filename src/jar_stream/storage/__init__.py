"""Relational store for intents, donation events and streamer settings."""

__all__ = [
    "Database",
    "DuplicateEventError",
    "EventStore",
    "IntentStore",
    "StreamerStore",
    "TEST_IDENTIFIER_PREFIX",
]

from .db import Database
from .repository import (
    TEST_IDENTIFIER_PREFIX,
    DuplicateEventError,
    EventStore,
    IntentStore,
    StreamerStore,
)
