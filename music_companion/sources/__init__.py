"""Media source adapters for music_companion."""

from .base import SourceAdapter, SourceRegistry, UnknownSourceError
from .macos_music import MacMusicSource
from .spotify import SpotifyAuthError, SpotifySource
from .windows_media import WindowsMediaSource

__all__ = [
    "SourceAdapter",
    "SourceRegistry",
    "UnknownSourceError",
    "MacMusicSource",
    "SpotifySource",
    "SpotifyAuthError",
    "WindowsMediaSource",
    "build_registry",
]


def build_registry(config) -> SourceRegistry:
    """Create the adapters described by a Config, with its default source active."""
    adapters = [
        WindowsMediaSource(timeout=config.source_timeout),
        MacMusicSource(timeout=config.source_timeout),
        SpotifySource(
            client_id=config.spotify_client_id,
            client_secret=config.spotify_client_secret,
            redirect_uri=config.spotify_redirect_uri,
            timeout=config.source_timeout,
        ),
    ]
    return SourceRegistry(adapters, active=config.default_source)
