"""Overlay client runtime consuming the live donation stream."""

from .api import OverlayApiError, PauseMonitor, QueueApiClient
from .notifications import NotificationPlayer, NotificationState, NotificationTimings
from .speech import SpeechClient, announcement_text, estimate_speech_duration
from .stream import EventStreamClient, StreamFrame, parse_frames
from .surfaces import (
    AudioOutput,
    Display,
    LoggingDisplay,
    SilentAudioOutput,
    SimulatedVideoSurface,
    VideoPlaybackError,
    VideoSurface,
)
from .videos import ClipInfo, OEmbedValidator, VideoPlayer, VideoTimings
from .widget import OverlayWidget

__all__ = [
    "AudioOutput",
    "ClipInfo",
    "Display",
    "EventStreamClient",
    "LoggingDisplay",
    "NotificationPlayer",
    "NotificationState",
    "NotificationTimings",
    "OEmbedValidator",
    "OverlayApiError",
    "OverlayWidget",
    "PauseMonitor",
    "QueueApiClient",
    "SilentAudioOutput",
    "SimulatedVideoSurface",
    "SpeechClient",
    "StreamFrame",
    "VideoPlaybackError",
    "VideoPlayer",
    "VideoSurface",
    "VideoTimings",
    "announcement_text",
    "estimate_speech_duration",
    "parse_frames",
]
