"""Tests for source adapters and the registry."""

import asyncio
from unittest.mock import patch

import httpx
import pytest

from music_companion.snapshot import Snapshot
from music_companion.sources import (
    MacMusicSource,
    SourceRegistry,
    SpotifyAuthError,
    SpotifySource,
    UnknownSourceError,
    WindowsMediaSource,
)
from music_companion.sources.macos_music import parse_osascript_output
from music_companion.sources.spotify import parse_currently_playing, pick_album_art
from music_companion.sources.windows_media import parse_session_output

from tests.conftest import ScriptedSource


class HungProcess:
    """Subprocess stand-in that never finishes on its own."""

    def __init__(self):
        self.returncode = None
        self.killed = False
        self.reaped = False

    async def communicate(self):
        await asyncio.sleep(60)

    def kill(self):
        self.killed = True

    async def wait(self):
        self.reaped = True
        self.returncode = -9
        return self.returncode


def spawning(process):
    async def create_subprocess_exec(*args, **kwargs):
        return process

    return create_subprocess_exec


class TestSourceAdapter:
    """Tests for the base adapter contract."""

    def test_exception_becomes_error_snapshot(self):
        source = ScriptedSource(results=[RuntimeError("exec failed")])
        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.error == "exec failed"
        assert snapshot.source == "fake"
        assert snapshot.is_playing is False

    def test_none_becomes_idle_snapshot(self):
        source = ScriptedSource(results=[None])
        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.is_idle
        assert snapshot.error is None


class TestSourceRegistry:
    """Tests for adapter selection."""

    def test_first_adapter_active_by_default(self):
        registry = SourceRegistry([ScriptedSource("a"), ScriptedSource("b")])
        assert registry.active_name == "a"
        assert registry.names() == ["a", "b"]

    def test_select(self):
        registry = SourceRegistry([ScriptedSource("a"), ScriptedSource("b")])
        registry.select("b")
        assert registry.active.name == "b"

    def test_unknown_names(self):
        registry = SourceRegistry([ScriptedSource("a")])
        with pytest.raises(UnknownSourceError):
            registry.select("zzz")
        with pytest.raises(UnknownSourceError):
            SourceRegistry([ScriptedSource("a")], active="zzz")

    def test_empty_registry(self):
        with pytest.raises(ValueError):
            SourceRegistry([])


class TestWindowsMedia:
    """Tests for the Windows media session adapter."""

    def test_parse_output(self):
        out = (
            '{"playing":true,"title":"Song","artist":"Band","album":"LP",'
            '"albumArt":null,"duration":180000,"progress":42000,'
            '"source":"windows","appName":"Spotify.exe"}\r\n'
        )
        snapshot = parse_session_output(out)
        assert snapshot.title == "Song"
        assert snapshot.progress_ms == 42000
        assert snapshot.source == "windows"

    def test_parse_no_session(self):
        snapshot = parse_session_output('{"playing":false,"error":"No media session"}')
        assert snapshot.error == "No media session"
        assert snapshot.is_idle

    def test_parse_warning_before_json(self):
        snapshot = parse_session_output('WARNING: something\n{"title":"Song"}')
        assert snapshot.title == "Song"

    def test_parse_malformed(self):
        with pytest.raises(ValueError):
            parse_session_output("not json")
        with pytest.raises(ValueError):
            parse_session_output("")

    def test_non_windows_platform(self):
        source = WindowsMediaSource(platform="linux")
        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.error == "Windows Media Session is only available on Windows"

    def test_timeout_kills_and_reaps_powershell(self):
        process = HungProcess()
        source = WindowsMediaSource(timeout=0.05, platform="win32")

        with patch("music_companion.sources.windows_media.asyncio.create_subprocess_exec",
                   new=spawning(process)):
            snapshot = asyncio.run(source.get_current_track())

        assert snapshot.error == "Media session query timed out"
        assert process.killed is True
        assert process.reaped is True


class TestMacMusic:
    """Tests for the Apple Music adapter."""

    def test_parse_playing(self):
        snapshot = parse_osascript_output("OK=1|Song|Band|LP|215.5|12.25|true\n")
        assert snapshot.title == "Song"
        assert snapshot.duration_ms == 215500
        assert snapshot.progress_ms == 12250
        assert snapshot.playing is True
        assert snapshot.source == "macos"

    def test_parse_decimal_comma(self):
        snapshot = parse_osascript_output("OK=1|Song|Band|LP|215,5|12,25|false")
        assert snapshot.duration_ms == 215500
        assert snapshot.playing is False

    def test_parse_not_running(self):
        assert parse_osascript_output("OK=0").is_idle

    def test_parse_truncated(self):
        with pytest.raises(ValueError):
            parse_osascript_output("OK=1|Song|Band")

    def test_non_macos_platform(self):
        snapshot = asyncio.run(MacMusicSource(platform="win32").get_current_track())
        assert snapshot.error is not None

    def test_timeout_kills_and_reaps_osascript(self):
        process = HungProcess()
        source = MacMusicSource(timeout=0.05, platform="darwin")

        with patch("music_companion.sources.macos_music.asyncio.create_subprocess_exec",
                   new=spawning(process)):
            snapshot = asyncio.run(source.get_current_track())

        assert snapshot.error == "osascript timed out"
        assert process.killed is True
        assert process.reaped is True


CURRENTLY_PLAYING = {
    "is_playing": True,
    "progress_ms": 30000,
    "item": {
        "name": "Song",
        "duration_ms": 200000,
        "artists": [{"name": "One"}, {"name": "Two"}],
        "album": {
            "name": "LP",
            "images": [
                {"url": "https://i/640", "width": 640},
                {"url": "https://i/300", "width": 300},
                {"url": "https://i/64", "width": 64},
            ],
        },
    },
}


def spotify_with(handler, clock=lambda: 1000.0, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SpotifySource(
        client_id="id", client_secret="secret", client=client, clock=clock, **kwargs
    )


class TestSpotify:
    """Tests for the Spotify adapter."""

    def test_parse_currently_playing(self):
        snapshot = parse_currently_playing(CURRENTLY_PLAYING)
        assert snapshot.title == "Song"
        assert snapshot.artist == "One, Two"
        assert snapshot.album_art == "https://i/300"
        assert snapshot.progress_ms == 30000
        assert snapshot.source == "spotify"

    def test_parse_without_item(self):
        assert parse_currently_playing({"is_playing": False}).is_idle

    def test_album_art_fallback(self):
        assert pick_album_art({"images": [{"url": "u", "width": 640}]}) == "u"
        assert pick_album_art({"images": []}) is None
        assert pick_album_art(None) is None

    def test_missing_credentials(self):
        source = SpotifySource()
        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.error == "Spotify credentials not configured"

    def test_needs_auth(self):
        source = spotify_with(lambda request: httpx.Response(500))
        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.error == "Spotify authorization required"

    def test_auth_url(self):
        source = SpotifySource(client_id="id", client_secret="s")
        url = source.get_auth_url()
        assert url.startswith("https://accounts.spotify.com/authorize?")
        assert "client_id=id" in url
        assert "user-read-currently-playing" in url

    def test_callback_and_poll(self):
        def handler(request):
            if request.url.path == "/api/token":
                return httpx.Response(200, json={
                    "access_token": "tok", "refresh_token": "ref", "expires_in": 3600,
                })
            assert request.headers["Authorization"] == "Bearer tok"
            return httpx.Response(200, json=CURRENTLY_PLAYING)

        source = spotify_with(handler)

        async def scenario():
            await source.handle_callback("code")
            return await source.get_current_track()

        snapshot = asyncio.run(scenario())
        assert source.is_authenticated()
        assert snapshot.title == "Song"

    def test_nothing_playing(self):
        source = spotify_with(lambda request: httpx.Response(204))
        source.access_token = "tok"
        source.token_expiry = 100_000.0
        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.is_idle
        assert snapshot.error is None

    def test_unauthorized_refreshes_once(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if request.url.path == "/api/token":
                return httpx.Response(200, json={"access_token": "new", "expires_in": 3600})
            if request.headers["Authorization"] == "Bearer old":
                return httpx.Response(401)
            return httpx.Response(200, json=CURRENTLY_PLAYING)

        source = spotify_with(handler)
        source.access_token = "old"
        source.refresh_token = "ref"
        source.token_expiry = 100_000.0

        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.title == "Song"
        assert calls.count("/api/token") == 1

    def test_token_near_expiry_refreshed(self):
        def handler(request):
            if request.url.path == "/api/token":
                return httpx.Response(200, json={"access_token": "new", "expires_in": 3600})
            return httpx.Response(204)

        source = spotify_with(handler, clock=lambda: 1000.0)
        source.access_token = "old"
        source.refresh_token = "ref"
        source.token_expiry = 1100.0

        asyncio.run(source.get_current_track())
        assert source.access_token == "new"
        assert source.token_expiry == 4600.0

    def test_api_error_becomes_error_snapshot(self):
        source = spotify_with(lambda request: httpx.Response(503))
        source.access_token = "tok"
        source.token_expiry = 100_000.0
        snapshot = asyncio.run(source.get_current_track())
        assert snapshot.error == "Spotify API error: 503"

    def test_rejected_code(self):
        source = spotify_with(lambda request: httpx.Response(400, text="invalid_grant"))
        with pytest.raises(SpotifyAuthError):
            asyncio.run(source.handle_callback("bad"))
