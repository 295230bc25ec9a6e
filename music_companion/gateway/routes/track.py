"""Track and provider API routes."""

import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from ...sources import UnknownSourceError

logger = logging.getLogger("music_companion.gateway.track")

router = APIRouter()


class ProviderResponse(BaseModel):
    """Active and available sources."""
    current: str
    available: list[str]


class ProviderSelect(BaseModel):
    """Request model for switching the source."""
    provider: str


class ProviderSelected(BaseModel):
    success: bool
    provider: str


@router.get("/track")
async def get_track(request: Request):
    """
    Get the current known track.

    Served from the last poll; the source is never queried outside the
    poll loop.
    """
    snapshot = request.app.state.hub.current
    if snapshot is None:
        return {"playing": False}
    return snapshot.to_dict()


@router.get("/provider", response_model=ProviderResponse)
async def get_provider(request: Request):
    """Get the active source and the registered ones."""
    registry = request.app.state.poll_loop.registry
    return ProviderResponse(current=registry.active_name, available=registry.names())


@router.post("/provider", response_model=ProviderSelected)
async def set_provider(request: Request, body: ProviderSelect):
    """Switch the active source."""
    poll_loop = request.app.state.poll_loop
    try:
        await poll_loop.switch_source(body.provider)
    except UnknownSourceError:
        raise HTTPException(status_code=400, detail="Invalid provider")
    return ProviderSelected(success=True, provider=poll_loop.registry.active_name)
