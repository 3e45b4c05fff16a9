"""HTTP API for donations, webhooks, live stream and queue control."""

from .server import ControlServer

__all__ = ["ControlServer"]
