"""Shared fixtures and fakes."""

import asyncio
import os

import pytest

from music_companion.config import PollTiming
from music_companion.hub import BroadcastHub
from music_companion.poll_loop import PollLoop
from music_companion.snapshot import Snapshot
from music_companion.sources import SourceAdapter, SourceRegistry
from music_companion.tracker import StateTracker


class ScriptedSource(SourceAdapter):
    """Returns queued results in order; repeats the last one when exhausted."""

    def __init__(self, name="fake", results=None):
        self.name = name
        self.results = list(results or [])
        self.calls = 0
        self._last = Snapshot(source=name)

    async def fetch(self):
        self.calls += 1
        if self.results:
            self._last = self.results.pop(0)
        result = self._last
        if isinstance(result, BaseException):
            raise result
        return result


class RaisingSource(ScriptedSource):
    """Bypasses the adapter contract and raises out of get_current_track."""

    async def get_current_track(self):
        self.calls += 1
        raise RuntimeError("adapter broke its contract")


class HangingSource(ScriptedSource):
    async def get_current_track(self):
        self.calls += 1
        await asyncio.sleep(60)


class FakeWebSocket:
    """Records what the hub sends."""

    def __init__(self, fail=False, delay=0.0):
        self.accepted = False
        self.sent = []
        self.fail = fail
        self.delay = delay

    async def accept(self):
        self.accepted = True

    async def send_text(self, data):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def track(title="A", artist="X", playing=True, progress=0, duration=200000, **kwargs):
    return Snapshot(
        playing=playing,
        title=title,
        artist=artist,
        progress_ms=progress,
        duration_ms=duration,
        source="fake",
        **kwargs,
    )


@pytest.fixture
def timing():
    return PollTiming(poll_interval_ms=1000, jitter_tolerance_ms=500, seek_threshold_ms=2500)


@pytest.fixture
def make_loop(timing):
    """Build a poll loop around scripted sources."""

    def _make(*sources, poll_timeout=5.0, send_timeout=2.0):
        sources = sources or (ScriptedSource(),)
        registry = SourceRegistry(sources)
        hub = BroadcastHub(send_timeout=send_timeout)
        return PollLoop(registry, StateTracker(timing), hub, poll_timeout=poll_timeout)

    return _make


@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration variables inherited from the environment."""
    for key in list(os.environ):
        if key.startswith("MUSIC_COMPANION_") or key in (
            "PORT", "DEFAULT_PROVIDER", "SPOTIFY_CLIENT_ID",
            "SPOTIFY_CLIENT_SECRET", "SPOTIFY_REDIRECT_URI",
        ):
            monkeypatch.delenv(key)
    return monkeypatch
