"""Observer-side position extrapolation between sparse updates."""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from .snapshot import MESSAGE_TRACK, Snapshot


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


def format_time(ms: Optional[float]) -> str:
    """Format milliseconds as m:ss."""
    if not ms or ms < 0:
        return "0:00"
    seconds = int(ms // 1000)
    minutes = seconds // 60
    return f"{minutes}:{seconds % 60:02d}"


class SyncStrategy:
    # Every push is already significant; re-baseline on all of them
    ALWAYS = "always"
    # Re-derive significance locally and ignore pushes within the seek threshold
    DRIFT_GATED = "drift_gated"


@dataclass(frozen=True)
class Baseline:
    """Progress value and the clock reading it was observed at."""
    progress_at_sync: int
    synced_at: float
    playing: bool
    duration_ms: int

    def position(self, now: float) -> int:
        if self.playing:
            position = self.progress_at_sync + (now - self.synced_at)
        else:
            position = self.progress_at_sync
        position = max(0, int(position))
        if self.duration_ms > 0:
            position = min(position, self.duration_ms)
        return position


@dataclass(frozen=True)
class RenderFrame:
    """Everything a display needs for one tick."""
    idle: bool
    playing: bool
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_art: Optional[str] = None
    error: Optional[str] = None
    position_ms: int = 0
    duration_ms: int = 0

    @property
    def percent(self) -> float:
        if self.duration_ms <= 0:
            return 0.0
        return min(100.0, self.position_ms / self.duration_ms * 100.0)

    @property
    def current_time(self) -> str:
        return format_time(self.position_ms)

    @property
    def total_time(self) -> str:
        return format_time(self.duration_ms)


class ObserverRenderer:
    """Keeps a baseline per observer and extrapolates the displayed position.

    The baseline is replaced as a whole on every re-sync, so a render tick
    running on another thread sees either the old or the new pair, never a
    mix of the two.
    """

    def __init__(
        self,
        strategy: str = SyncStrategy.ALWAYS,
        seek_threshold_ms: int = 2500,
        clock: Callable[[], float] = monotonic_ms,
    ):
        if strategy not in (SyncStrategy.ALWAYS, SyncStrategy.DRIFT_GATED):
            raise ValueError(f"Unknown sync strategy: {strategy}")
        self.strategy = strategy
        self.seek_threshold_ms = seek_threshold_ms
        self._clock = clock
        self.snapshot: Optional[Snapshot] = None
        self.baseline: Optional[Baseline] = None
        self.resyncs = 0

    @property
    def playing(self) -> bool:
        return self.baseline is not None and self.baseline.playing

    def _needs_resync(self, snapshot: Snapshot, now: float) -> bool:
        if self.strategy == SyncStrategy.ALWAYS:
            return True
        previous = self.snapshot
        if previous is None or self.baseline is None:
            return True
        if snapshot.track_key != previous.track_key:
            return True
        if snapshot.is_playing != self.baseline.playing:
            return True
        drift = abs(snapshot.clamped_progress() - self.baseline.position(now))
        return drift > self.seek_threshold_ms

    def apply(self, snapshot: Optional[Snapshot], now: Optional[float] = None) -> bool:
        """
        Take a pushed snapshot into account.

        Args:
            snapshot: Pushed snapshot; None means nothing is playing
            now: Clock reading in ms, defaults to the renderer's clock

        Returns:
            True if the baseline was reset
        """
        now = self._clock() if now is None else now
        if snapshot is None:
            snapshot = Snapshot()

        resync = self._needs_resync(snapshot, now)
        if resync:
            self.baseline = Baseline(
                progress_at_sync=snapshot.clamped_progress(),
                synced_at=now,
                playing=snapshot.is_playing,
                duration_ms=snapshot.duration_ms,
            )
            self.resyncs += 1
        elif self.baseline.duration_ms != snapshot.duration_ms:
            # Keep the extrapolation but pick up a late-arriving duration
            self.baseline = Baseline(
                progress_at_sync=self.baseline.progress_at_sync,
                synced_at=self.baseline.synced_at,
                playing=self.baseline.playing,
                duration_ms=snapshot.duration_ms,
            )
        self.snapshot = snapshot
        return resync

    def apply_message(self, message: dict, now: Optional[float] = None) -> bool:
        """Apply a wire message; messages other than ``track`` are ignored."""
        if message.get("type") != MESSAGE_TRACK:
            return False
        data = message.get("data")
        if data is not None and not isinstance(data, dict):
            return False
        snapshot = Snapshot.from_dict(data) if data else None
        return self.apply(snapshot, now)

    def position(self, now: Optional[float] = None) -> int:
        """Extrapolated position in ms, recomputed from the baseline."""
        baseline = self.baseline
        if baseline is None:
            return 0
        return baseline.position(self._clock() if now is None else now)

    def frame(self, now: Optional[float] = None) -> RenderFrame:
        """Build the display state for one render tick."""
        snapshot, baseline = self.snapshot, self.baseline
        if snapshot is None or baseline is None or snapshot.is_idle:
            return RenderFrame(
                idle=True,
                playing=False,
                error=snapshot.error if snapshot is not None else None,
            )
        now = self._clock() if now is None else now
        return RenderFrame(
            idle=False,
            playing=baseline.playing,
            title=snapshot.title,
            artist=snapshot.artist,
            album=snapshot.album,
            album_art=snapshot.album_art,
            error=snapshot.error,
            position_ms=baseline.position(now),
            duration_ms=baseline.duration_ms,
        )
