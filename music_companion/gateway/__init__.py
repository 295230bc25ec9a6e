"""Web gateway: WebSocket feed, REST API and the OBS widget page."""

from .app import create_app

__all__ = ["create_app"]
