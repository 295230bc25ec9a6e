"""Terminal observer: follows the server over WebSocket and renders progress."""

import asyncio
import json
import logging
from typing import Optional

import websockets
from rich.console import Console, Group
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.text import Text

from .renderer import ObserverRenderer, RenderFrame

logger = logging.getLogger("music_companion.observer")

RENDER_INTERVAL = 0.1
RECONNECT_DELAY = 3.0


def render_frame(frame: RenderFrame):
    """Build the rich renderable for one frame."""
    if frame.idle:
        message = frame.error or "No music playing"
        return Text(f"♪ {message}", style="dim")

    state = "▶" if frame.playing else "⏸"
    title = Text(f"{state} {frame.title}", style="bold")
    artist = Text(frame.artist or "Unknown Artist", style="cyan")
    bar = ProgressBar(
        total=max(frame.duration_ms, 1),
        completed=frame.position_ms,
        width=40,
    )
    times = Text(f"{frame.current_time} / {frame.total_time}")
    return Group(title, artist, bar, times)


async def _render_loop(renderer: ObserverRenderer, live: Live) -> None:
    while True:
        live.update(render_frame(renderer.frame()))
        await asyncio.sleep(RENDER_INTERVAL)


async def follow(url: str, renderer: ObserverRenderer) -> None:
    """Apply every message from one WebSocket session to the renderer."""
    async with websockets.connect(url) as ws:
        logger.info(f"Connected to {url}")
        async for raw in ws:
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring malformed message: {raw[:80]!r}")
                continue
            if not isinstance(message, dict):
                logger.warning(f"Ignoring non-object message: {raw[:80]!r}")
                continue
            if message.get("type") == "provider":
                logger.info(f"Provider changed to: {message.get('data')}")
            renderer.apply_message(message)


async def watch(
    url: str,
    renderer: Optional[ObserverRenderer] = None,
    console: Optional[Console] = None,
    reconnect_delay: float = RECONNECT_DELAY,
) -> None:
    """
    Follow the server until cancelled, reconnecting after disconnects.

    The render loop runs independently of message arrival so the position
    keeps advancing between pushes.

    Args:
        url: WebSocket URL, e.g. ws://127.0.0.1:3000/ws
        renderer: Renderer to drive, a fresh one by default
        console: rich console to draw on
        reconnect_delay: Seconds to wait before reconnecting
    """
    renderer = renderer or ObserverRenderer()
    with Live(render_frame(renderer.frame()), console=console, refresh_per_second=10) as live:
        render_task = asyncio.create_task(_render_loop(renderer, live))
        try:
            while True:
                try:
                    await follow(url, renderer)
                    logger.info("Disconnected, reconnecting...")
                except (OSError, websockets.ConnectionClosed, websockets.InvalidHandshake) as e:
                    logger.warning(f"Connection to {url} failed: {e}")
                await asyncio.sleep(reconnect_delay)
        finally:
            render_task.cancel()
            try:
                await render_task
            except asyncio.CancelledError:
                pass
