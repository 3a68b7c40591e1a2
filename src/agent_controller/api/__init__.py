"""HTTP and WebSocket API for the agent controller (requires the api extra)."""

from .server import app, create_app

__all__ = ["app", "create_app"]
