"""Spotify Web API source with a minimal OAuth authorization-code flow."""

import logging
import time
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx

from ..snapshot import Snapshot
from .base import SourceAdapter

logger = logging.getLogger("music_companion.sources.spotify")

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"
CURRENTLY_PLAYING_URL = "https://api.spotify.com/v1/me/player/currently-playing"
SCOPES = "user-read-currently-playing user-read-playback-state"

# Refresh tokens that expire within this many seconds
REFRESH_MARGIN_SECONDS = 300


class SpotifyAuthError(Exception):
    """Token exchange or refresh failed."""
    pass


class SpotifyAPIError(Exception):
    """Unexpected response from the Spotify Web API."""
    pass


def pick_album_art(album: Optional[dict]) -> Optional[str]:
    """Prefer the 300px image, falling back to the first one."""
    images = (album or {}).get("images") or []
    for image in images:
        if image.get("width") == 300 and image.get("url"):
            return image["url"]
    if images:
        return images[0].get("url")
    return None


def parse_currently_playing(data: dict) -> Snapshot:
    """Convert a currently-playing response body to a snapshot."""
    item = data.get("item")
    if not item:
        return Snapshot(source=SpotifySource.name)

    artists = ", ".join(a.get("name", "") for a in item.get("artists") or [] if a.get("name"))
    album = item.get("album") or {}
    return Snapshot.from_dict(
        {
            "playing": data.get("is_playing", False),
            "title": item.get("name"),
            "artist": artists,
            "album": album.get("name"),
            "albumArt": pick_album_art(album),
            "duration": item.get("duration_ms"),
            "progress": data.get("progress_ms"),
        },
        source=SpotifySource.name,
    )


class SpotifySource(SourceAdapter):
    """Polls the Spotify "currently playing" endpoint."""

    name = "spotify"

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        redirect_uri: str = "http://localhost:3000/api/spotify/callback",
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 5.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._clock = clock

        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.token_expiry: Optional[float] = None

    def has_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def is_authenticated(self) -> bool:
        return bool(
            self.access_token
            and self.token_expiry
            and self._clock() < self.token_expiry
        )

    def get_auth_url(self) -> str:
        """URL the user visits to grant access."""
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "scope": SCOPES,
            "show_dialog": "true",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def _request_token(self, form: dict) -> dict:
        try:
            response = await self._client.post(
                TOKEN_URL,
                data=form,
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            raise SpotifyAuthError(f"Token request failed: {e}") from e

        if response.status_code != 200:
            raise SpotifyAuthError(f"Token request failed: {response.text}")

        data = response.json()
        self.access_token = data["access_token"]
        self.token_expiry = self._clock() + int(data.get("expires_in", 3600))
        if data.get("refresh_token"):
            self.refresh_token = data["refresh_token"]
        return data

    async def handle_callback(self, code: str) -> dict:
        """
        Exchange an authorization code for tokens.

        Raises:
            SpotifyAuthError: If Spotify rejects the exchange
        """
        data = await self._request_token({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.redirect_uri,
        })
        logger.info("Spotify authorization completed")
        return data

    async def refresh_access_token(self) -> dict:
        if not self.refresh_token:
            raise SpotifyAuthError("No refresh token available")
        return await self._request_token({
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
        })

    async def ensure_token(self) -> bool:
        """Make sure a usable access token is present, refreshing if close to expiry."""
        if not self.access_token:
            return False

        if self.token_expiry and self._clock() > self.token_expiry - REFRESH_MARGIN_SECONDS:
            try:
                await self.refresh_access_token()
            except SpotifyAuthError as e:
                logger.error(f"Failed to refresh token: {e}")
                return False

        return True

    async def fetch(self) -> Snapshot:
        if not self.has_credentials():
            return Snapshot.error_snapshot(self.name, "Spotify credentials not configured")

        if not await self.ensure_token():
            return Snapshot.error_snapshot(self.name, "Spotify authorization required")

        response = await self._currently_playing()
        if response.status_code == 401:
            # Token revoked or expired early; retry once with a fresh one
            await self.refresh_access_token()
            response = await self._currently_playing()

        # No content means nothing is playing
        if response.status_code == 204:
            return Snapshot(source=self.name)

        if response.status_code != 200:
            raise SpotifyAPIError(f"Spotify API error: {response.status_code}")

        return parse_currently_playing(response.json())

    async def _currently_playing(self) -> httpx.Response:
        return await self._client.get(
            CURRENTLY_PLAYING_URL,
            headers={"Authorization": f"Bearer {self.access_token}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
