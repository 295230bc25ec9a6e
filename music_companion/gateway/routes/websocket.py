"""WebSocket endpoint observers connect to for playback updates."""

import asyncio
import json
import logging
from datetime import datetime

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger("music_companion.gateway.websocket")

router = APIRouter()

HEARTBEAT_INTERVAL = 30.0


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Observers receive:
    - The current track immediately on connect, if one is known
    - A ``track`` message on every significant playback change
    - ``provider`` messages when the active source changes
    - Periodic heartbeats when idle
    """
    hub = websocket.app.state.hub
    await hub.connect(websocket)

    try:
        while True:
            # Wait for messages from client (keepalive or commands)
            try:
                data = await asyncio.wait_for(
                    websocket.receive_text(),
                    timeout=HEARTBEAT_INTERVAL
                )

                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    reply = {"type": "pong", "timestamp": datetime.now().isoformat()}
                    if not hub.send(websocket, reply):
                        break

            except asyncio.TimeoutError:
                heartbeat = {"type": "heartbeat", "timestamp": datetime.now().isoformat()}
                if not hub.send(websocket, heartbeat):
                    break

    except WebSocketDisconnect:
        hub.disconnect(websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        hub.disconnect(websocket)
