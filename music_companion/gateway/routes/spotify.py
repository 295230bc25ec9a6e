"""Spotify authorization routes."""

import html
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from ...sources import SpotifyAuthError, SpotifySource, UnknownSourceError

logger = logging.getLogger("music_companion.gateway.spotify")

router = APIRouter()

CONNECTED_PAGE = """<html>
  <body style="font-family: system-ui; display: flex; justify-content: center; align-items: center; height: 100vh; margin: 0; background: #1a1a2e;">
    <div style="text-align: center; color: white;">
      <h2 style="color: #1DB954;">Spotify Connected!</h2>
      <p>You can close this window and return to the widget.</p>
      <script>setTimeout(() => window.close(), 2000);</script>
    </div>
  </body>
</html>"""


def _spotify(request: Request) -> SpotifySource:
    try:
        return request.app.state.poll_loop.registry.get(SpotifySource.name)
    except UnknownSourceError:
        raise HTTPException(status_code=404, detail="Spotify source not configured")


@router.get("/auth")
async def spotify_auth(request: Request):
    """Redirect to the Spotify consent page."""
    return RedirectResponse(_spotify(request).get_auth_url())


@router.get("/callback", response_class=HTMLResponse)
async def spotify_callback(
    request: Request,
    code: Optional[str] = None,
    error: Optional[str] = None,
):
    """OAuth redirect target; exchanges the code for tokens."""
    if error:
        return HTMLResponse(
            f"<script>window.close();</script><p>Authorization denied: {html.escape(error)}</p>"
        )
    if not code:
        return HTMLResponse("<p>Error: missing authorization code</p>", status_code=400)

    try:
        await _spotify(request).handle_callback(code)
    except SpotifyAuthError as e:
        logger.error(f"Spotify callback failed: {e}")
        return HTMLResponse(f"<p>Error: {html.escape(str(e))}</p>", status_code=500)
    return HTMLResponse(CONNECTED_PAGE)


@router.get("/status")
async def spotify_status(request: Request):
    spotify = _spotify(request)
    return {
        "authenticated": spotify.is_authenticated(),
        "hasCredentials": spotify.has_credentials(),
    }
