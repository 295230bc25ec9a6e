"""Tests for observer-side extrapolation."""

import pytest

from music_companion.renderer import ObserverRenderer, SyncStrategy, format_time
from music_companion.snapshot import Snapshot

from tests.conftest import track


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock(10_000.0)


class TestExtrapolation:
    """Tests for position computation between pushes."""

    def test_rebaseline_reports_pushed_progress(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(progress=42_000))
        assert renderer.position() == 42_000

    def test_advances_while_playing(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(progress=1000))
        clock.now += 2500
        assert renderer.position() == 3500

    def test_monotonic_while_playing(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(progress=0, duration=5000))
        previous = -1
        for _ in range(100):
            clock.now += 73
            current = renderer.position()
            assert current >= previous
            previous = current
        assert previous == 5000

    def test_clamped_at_duration(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(progress=199_000, duration=200_000))
        clock.now += 60_000
        assert renderer.position() == 200_000

    def test_unknown_duration_unbounded(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(progress=199_000, duration=0))
        clock.now += 60_000
        assert renderer.position() == 259_000

    def test_constant_while_paused(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(playing=False, progress=30_000))
        for _ in range(10):
            clock.now += 1000
            assert renderer.position() == 30_000

    def test_recomputed_from_baseline(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(progress=0))
        for _ in range(1000):
            clock.now += 16.5
            renderer.position()
        assert renderer.position() == 16_500

    def test_position_before_any_push(self, clock):
        assert ObserverRenderer(clock=clock).position() == 0

    def test_error_snapshot_is_paused(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(Snapshot(playing=True, title="T", progress_ms=500, error="x"))
        clock.now += 5000
        assert renderer.position() == 500


class TestAlwaysStrategy:
    """Tests for the default re-sync-on-every-push strategy."""

    def test_every_push_rebaselines(self, clock):
        renderer = ObserverRenderer(clock=clock)
        assert renderer.apply(track(progress=0)) is True
        clock.now += 1000
        assert renderer.apply(track(progress=1100)) is True
        assert renderer.position() == 1100
        assert renderer.resyncs == 2


class TestDriftGatedStrategy:
    """Tests for the client-side significance fallback."""

    def make(self, clock):
        return ObserverRenderer(
            strategy=SyncStrategy.DRIFT_GATED, seek_threshold_ms=2500, clock=clock
        )

    def test_small_drift_keeps_baseline(self, clock):
        renderer = self.make(clock)
        renderer.apply(track(progress=0))
        clock.now += 1000
        assert renderer.apply(track(progress=1400)) is False
        assert renderer.position() == 1000

    def test_seek_rebaselines(self, clock):
        renderer = self.make(clock)
        renderer.apply(track(progress=0))
        clock.now += 1000
        assert renderer.apply(track(progress=60_000)) is True
        assert renderer.position() == 60_000

    def test_track_change_rebaselines(self, clock):
        renderer = self.make(clock)
        renderer.apply(track(progress=5000))
        assert renderer.apply(track(title="B", progress=5000)) is True

    def test_pause_rebaselines(self, clock):
        renderer = self.make(clock)
        renderer.apply(track(progress=5000))
        clock.now += 500
        assert renderer.apply(track(playing=False, progress=5500)) is True
        clock.now += 5000
        assert renderer.position() == 5500

    def test_late_duration_picked_up(self, clock):
        renderer = self.make(clock)
        renderer.apply(track(progress=0, duration=0))
        assert renderer.apply(track(progress=0, duration=3000)) is False
        clock.now += 10_000
        assert renderer.position() == 3000

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            ObserverRenderer(strategy="sometimes")


class TestMessages:
    """Tests for wire messages and render frames."""

    def test_track_message(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply_message({
            "type": "track",
            "data": {"title": "T", "artist": "A", "playing": True,
                     "progress": 61_000, "duration": 180_000},
        })
        frame = renderer.frame()
        assert frame.idle is False
        assert frame.title == "T"
        assert frame.current_time == "1:01"
        assert frame.total_time == "3:00"

    def test_null_data_is_idle(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track())
        renderer.apply_message({"type": "track", "data": None})
        assert renderer.frame().idle is True
        assert renderer.playing is False

    def test_error_surfaced_in_idle_frame(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply_message({"type": "track", "data": {"playing": False, "error": "No media session"}})
        frame = renderer.frame()
        assert frame.idle is True
        assert frame.error == "No media session"

    def test_other_messages_ignored(self, clock):
        renderer = ObserverRenderer(clock=clock)
        assert renderer.apply_message({"type": "provider", "data": "spotify"}) is False
        assert renderer.snapshot is None

    def test_track_with_non_object_data_ignored(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(title="Kept"))
        assert renderer.apply_message({"type": "track", "data": ["not", "a", "track"]}) is False
        assert renderer.snapshot.title == "Kept"

    def test_frame_percent(self, clock):
        renderer = ObserverRenderer(clock=clock)
        renderer.apply(track(progress=50_000, duration=200_000, playing=False))
        assert renderer.frame().percent == 25.0


class TestFormatTime:
    def test_format(self):
        assert format_time(0) == "0:00"
        assert format_time(None) == "0:00"
        assert format_time(-5) == "0:00"
        assert format_time(59_999) == "0:59"
        assert format_time(600_000) == "10:00"
