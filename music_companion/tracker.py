"""Significance classification of consecutive playback snapshots."""

import logging
from dataclasses import dataclass
from typing import Optional

from .config import PollTiming
from .snapshot import Snapshot

logger = logging.getLogger("music_companion.tracker")


class Reason:
    FIRST = "first"
    TRACK = "track"
    PLAY_STATE = "play_state"
    SEEK = "seek"


@dataclass(frozen=True)
class ComparisonState:
    """What the tracker remembers about the previous poll."""
    last_track_key: Optional[tuple] = None
    last_playing: Optional[bool] = None
    last_progress_ms: Optional[int] = None

    @property
    def is_unknown(self) -> bool:
        return self.last_track_key is None


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one snapshot."""
    significant: bool
    reason: Optional[str]
    state: ComparisonState
    drift_ms: Optional[int] = None


def classify(
    snapshot: Snapshot,
    state: ComparisonState,
    timing: PollTiming,
) -> Classification:
    """
    Decide whether a snapshot is worth telling observers about.

    A snapshot is significant when it is the first one observed, the track
    identity changed, the playing flag flipped, or the progress moved further
    from the expected value than the seek threshold allows.

    Args:
        snapshot: Newly polled snapshot
        state: Comparison state left by the previous poll
        timing: Poll period, jitter tolerance and seek threshold

    Returns:
        Classification carrying the updated comparison state, which always
        reflects the new snapshot whether or not it is significant
    """
    track_key = snapshot.track_key
    playing = snapshot.is_playing
    progress = snapshot.progress_ms

    is_new_track = track_key != state.last_track_key
    play_state_changed = (
        state.last_playing is not None and state.last_playing != playing
    )

    drift = None
    user_seeked = False
    if not is_new_track and state.last_progress_ms is not None:
        if state.last_playing:
            expected = state.last_progress_ms + timing.expected_advance_ms
        else:
            expected = state.last_progress_ms
        drift = abs(progress - expected)
        user_seeked = drift > timing.seek_threshold_ms

    if state.is_unknown:
        reason = Reason.FIRST
    elif is_new_track:
        reason = Reason.TRACK
    elif play_state_changed:
        reason = Reason.PLAY_STATE
    elif user_seeked:
        reason = Reason.SEEK
    else:
        reason = None

    new_state = ComparisonState(
        last_track_key=track_key,
        last_playing=playing,
        last_progress_ms=progress,
    )
    return Classification(
        significant=reason is not None,
        reason=reason,
        state=new_state,
        drift_ms=drift,
    )


class StateTracker:
    """Owns the comparison state across polls."""

    def __init__(self, timing: Optional[PollTiming] = None):
        self.timing = (timing or PollTiming()).validate()
        self.state = ComparisonState()

    def observe(self, snapshot: Snapshot) -> Classification:
        """Classify a snapshot and advance the comparison state."""
        result = classify(snapshot, self.state, self.timing)
        self.state = result.state
        if result.significant:
            logger.debug(
                f"Significant change ({result.reason}): "
                f"{snapshot.title!r} playing={snapshot.is_playing} "
                f"progress={snapshot.progress_ms} drift={result.drift_ms}"
            )
        return result

    def reset(self) -> None:
        """Forget the previous poll so the next snapshot is broadcast."""
        self.state = ComparisonState()
