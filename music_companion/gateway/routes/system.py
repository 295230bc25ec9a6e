"""System API routes - health, status, config."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime


class StatusResponse(BaseModel):
    """Service status response."""
    status: str
    timestamp: datetime
    poll_loop: str
    source: str
    observers: int
    polls: int
    published: int
    current_title: Optional[str] = None
    uptime_seconds: Optional[float] = None


class ConfigResponse(BaseModel):
    """Current configuration response."""
    log_level: str
    poll_interval_ms: int
    jitter_tolerance_ms: int
    seek_threshold_ms: int
    poll_timeout: float
    gateway_host: str
    gateway_port: int


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns 200 OK if the service is healthy.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(),
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request):
    """
    Get service status.

    Returns information about the running service.
    """
    hub = request.app.state.hub
    poll_loop = request.app.state.poll_loop
    started_at = request.app.state.started_at

    current = hub.current
    return StatusResponse(
        status="running",
        timestamp=datetime.now(),
        poll_loop=poll_loop.state,
        source=poll_loop.registry.active_name,
        observers=len(hub),
        polls=poll_loop.polls,
        published=hub.published,
        current_title=current.title if current is not None else None,
        uptime_seconds=(datetime.now() - started_at).total_seconds(),
    )


@router.get("/config", response_model=ConfigResponse)
async def get_config(request: Request):
    """
    Get current configuration.

    Note: Spotify credentials are not exposed.
    """
    config = request.app.state.config
    return ConfigResponse(
        log_level=config.log_level,
        poll_interval_ms=config.poll_interval_ms,
        jitter_tolerance_ms=config.jitter_tolerance_ms,
        seek_threshold_ms=config.seek_threshold_ms,
        poll_timeout=config.poll_timeout,
        gateway_host=config.gateway_host,
        gateway_port=config.gateway_port,
    )
