"""FastAPI application for the Music Companion gateway."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from ..config import Config
from ..poll_loop import PollLoop
from .routes import spotify, system, track, websocket

logger = logging.getLogger("music_companion.gateway")


def create_app(
    poll_loop: PollLoop,
    config: Optional[Config] = None,
    start_polling: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        poll_loop: Poll loop wired to the source registry, tracker and hub
        config: Configuration exposed through /api/config
        start_polling: Start the poll loop with the application lifespan

    Returns:
        Configured FastAPI application
    """
    config = config or Config.load()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        poll_loop.hub.provider = poll_loop.registry.active_name
        if start_polling:
            poll_loop.start()
        try:
            yield
        finally:
            await poll_loop.stop()
            await poll_loop.hub.close()
            await poll_loop.registry.aclose()

    app = FastAPI(
        title="Music Companion",
        description="Now-playing feed for OBS browser overlays",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.poll_loop = poll_loop
    app.state.hub = poll_loop.hub
    app.state.started_at = datetime.now()

    # OBS browser sources load the widget from a file or another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
    app.state.templates = templates

    # Include API routers
    app.include_router(track.router, prefix="/api", tags=["Track"])
    app.include_router(system.router, prefix="/api", tags=["System"])
    app.include_router(spotify.router, prefix="/api/spotify", tags=["Spotify"])
    app.include_router(websocket.router, tags=["WebSocket"])

    @app.get("/widget", response_class=HTMLResponse)
    async def widget_page(request: Request, theme: Optional[str] = None):
        """Widget page for an OBS browser source."""
        return templates.TemplateResponse(
            request,
            "widget.html",
            {"theme": theme or "default"},
        )

    logger.info("Gateway application created")
    return app
