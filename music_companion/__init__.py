"""music_companion - keeps OBS overlays in sync with the playing track."""

__version__ = "0.1.0"
