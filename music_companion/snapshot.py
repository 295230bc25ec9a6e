"""Canonical playback snapshot and its wire representation."""

import math
from dataclasses import dataclass, replace
from typing import Any, Optional


IDLE_TRACK_KEY = "none"

MESSAGE_TRACK = "track"
MESSAGE_PROVIDER = "provider"


def _text(value: Any) -> Optional[str]:
    """Normalize an optional text field; blank strings count as absent."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _millis(value: Any) -> int:
    """Normalize a millisecond field to a non-negative int."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return int(number)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "playing")
    return bool(value)


@dataclass(frozen=True)
class Snapshot:
    """One normalized, immutable observation of playback state."""
    playing: bool = False
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_art: Optional[str] = None
    duration_ms: int = 0
    progress_ms: int = 0
    source: str = "unknown"
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict], source: Optional[str] = None) -> "Snapshot":
        """
        Build a snapshot from adapter or wire output.

        Accepts both the wire keys (``duration``, ``progress``, ``albumArt``)
        and the attribute names, numbers as strings or floats, and blank
        strings for missing values.

        Args:
            data: Raw mapping, or None for "nothing playing"
            source: Adapter tag to use when the mapping does not carry one

        Returns:
            Normalized Snapshot
        """
        if not data:
            return cls(source=source or "unknown")

        def pick(*keys):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return None

        return cls(
            playing=_flag(pick("playing", "is_playing")),
            title=_text(pick("title", "name")),
            artist=_text(pick("artist")),
            album=_text(pick("album")),
            album_art=_text(pick("albumArt", "album_art")),
            duration_ms=_millis(pick("duration", "duration_ms")),
            progress_ms=_millis(pick("progress", "progress_ms")),
            source=_text(pick("source")) or source or "unknown",
            error=_text(pick("error")),
        )

    @classmethod
    def error_snapshot(cls, source: str, message: str) -> "Snapshot":
        """Snapshot describing a failed poll."""
        return cls(playing=False, source=source, error=message or "Unknown error")

    @property
    def has_track(self) -> bool:
        """True when the snapshot describes a track at all."""
        return self.title is not None

    @property
    def is_idle(self) -> bool:
        """True when nothing usable is playing."""
        return not self.has_track

    @property
    def is_playing(self) -> bool:
        """Effective playing flag; errored or idle snapshots never play."""
        return self.playing and self.error is None and self.has_track

    @property
    def track_key(self) -> tuple:
        """Identity used for change detection."""
        if not self.has_track:
            return (IDLE_TRACK_KEY,)
        return (self.title, self.artist)

    def clamped_progress(self) -> int:
        """Progress clamped to the duration when the duration is known."""
        progress = max(0, self.progress_ms)
        if self.duration_ms > 0:
            return min(progress, self.duration_ms)
        return progress

    def with_progress(self, progress_ms: int) -> "Snapshot":
        return replace(self, progress_ms=max(0, int(progress_ms)))

    def to_dict(self) -> dict:
        """Snapshot JSON using the wire field names."""
        data = {
            "playing": self.is_playing,
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "albumArt": self.album_art,
            "duration": self.duration_ms,
            "progress": self.clamped_progress(),
            "source": self.source,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def track_message(snapshot: Optional[Snapshot]) -> dict:
    """
    Build the ``track`` wire message for a snapshot.

    ``data`` is null when nothing is playing and there is no error to show.
    """
    if snapshot is None or (snapshot.is_idle and snapshot.error is None):
        return {"type": MESSAGE_TRACK, "data": None}
    return {"type": MESSAGE_TRACK, "data": snapshot.to_dict()}


def provider_message(name: str) -> dict:
    """Build the ``provider`` wire message announcing the active source."""
    return {"type": MESSAGE_PROVIDER, "data": name}
