"""Fan-out of playback updates to connected observers."""

import asyncio
import json
import logging
from typing import Any, Optional, Protocol

from .snapshot import Snapshot, provider_message, track_message

logger = logging.getLogger("music_companion.hub")

MAX_PENDING = 32


class Observer(Protocol):
    """The slice of a WebSocket the hub needs."""

    async def accept(self) -> None: ...

    async def send_text(self, data: str) -> None: ...


class _Outbox:
    """Pending messages for one observer, written in order by its own task."""

    def __init__(self, websocket: Observer, max_pending: int):
        self.websocket = websocket
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self.writer: Optional[asyncio.Task] = None

    def discard_pending(self) -> None:
        while not self.queue.empty():
            self.queue.get_nowait()
            self.queue.task_done()


class BroadcastHub:
    """Registry of observer connections with best-effort broadcast.

    Holds the current known snapshot so that newly connected observers are
    greeted with it straight away instead of waiting for the next change.

    Publishing only queues messages: every observer has a writer task that
    sends its queue in order, so a slow or stalled observer never holds up
    the caller or the other observers.
    """

    def __init__(self, send_timeout: float = 2.0, max_pending: int = MAX_PENDING):
        self.send_timeout = send_timeout
        self.max_pending = max_pending
        self.current: Optional[Snapshot] = None
        self.provider: Optional[str] = None
        self.published = 0
        self._outboxes: list[_Outbox] = []

    def __len__(self) -> int:
        return len(self._outboxes)

    @property
    def active_connections(self) -> list[Observer]:
        return [outbox.websocket for outbox in self._outboxes]

    def _find(self, websocket: Observer) -> Optional[_Outbox]:
        for outbox in self._outboxes:
            if outbox.websocket is websocket:
                return outbox
        return None

    async def connect(self, websocket: Observer) -> None:
        """Accept a new observer and greet it with the current state."""
        await websocket.accept()

        # Queue the greeting and register in one step, so any later publish
        # is queued behind it
        outbox = _Outbox(websocket, self.max_pending)
        if self.current is not None:
            outbox.queue.put_nowait(json.dumps(track_message(self.current), default=str))
        if self.provider is not None:
            outbox.queue.put_nowait(json.dumps(provider_message(self.provider)))
        self._outboxes.append(outbox)
        outbox.writer = asyncio.create_task(self._write(outbox), name="music_companion-observer")
        logger.info(f"Observer connected. Total connections: {len(self._outboxes)}")

    def disconnect(self, websocket: Observer) -> None:
        """Remove an observer; unknown observers are ignored."""
        outbox = self._find(websocket)
        if outbox is None:
            return
        self._remove(outbox)
        if outbox.writer is not None and outbox.writer is not asyncio.current_task():
            outbox.writer.cancel()

    def _remove(self, outbox: _Outbox) -> None:
        if outbox in self._outboxes:
            self._outboxes.remove(outbox)
            logger.info(f"Observer disconnected. Total connections: {len(self._outboxes)}")
        outbox.discard_pending()

    def set_current(self, snapshot: Snapshot) -> None:
        """Record the latest polled snapshot without broadcasting it."""
        self.current = snapshot

    async def publish(self, snapshot: Snapshot) -> int:
        """
        Queue a significant snapshot for every observer.

        Returns:
            Number of observers the message was queued for
        """
        self.current = snapshot
        self.published += 1
        return self.broadcast(track_message(snapshot))

    async def announce_provider(self, name: str) -> int:
        """Tell observers which source is active."""
        self.provider = name
        return self.broadcast(provider_message(name))

    def broadcast(self, message: dict[str, Any]) -> int:
        """Queue a message for all observers, dropping the ones too far behind."""
        if not self._outboxes:
            return 0

        message_text = json.dumps(message, default=str)
        queued = 0
        for outbox in list(self._outboxes):
            if self._enqueue(outbox, message_text):
                queued += 1
        return queued

    def send(self, websocket: Observer, message: dict[str, Any]) -> bool:
        """Queue a message for one observer, behind anything already pending."""
        outbox = self._find(websocket)
        if outbox is None:
            return False
        return self._enqueue(outbox, json.dumps(message, default=str))

    def _enqueue(self, outbox: _Outbox, text: str) -> bool:
        try:
            outbox.queue.put_nowait(text)
        except asyncio.QueueFull:
            logger.warning("Observer too far behind, dropping connection")
            self.disconnect(outbox.websocket)
            return False
        return True

    async def flush(self) -> None:
        """Wait until every message queued so far has been sent or discarded."""
        await asyncio.gather(*(outbox.queue.join() for outbox in list(self._outboxes)))

    async def close(self) -> None:
        """Stop all writer tasks and forget every observer."""
        outboxes, self._outboxes = self._outboxes, []
        writers = [outbox.writer for outbox in outboxes if outbox.writer is not None]
        for outbox in outboxes:
            outbox.discard_pending()
        for writer in writers:
            writer.cancel()
        await asyncio.gather(*writers, return_exceptions=True)

    async def _write(self, outbox: _Outbox) -> None:
        while True:
            text = await outbox.queue.get()
            try:
                delivered = await self._send(outbox.websocket, text)
            finally:
                outbox.queue.task_done()
            if not delivered:
                self._remove(outbox)
                return

    async def _send(self, websocket: Observer, text: str) -> bool:
        try:
            await asyncio.wait_for(websocket.send_text(text), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning("Observer too slow, dropping connection")
            return False
        except Exception as e:
            logger.debug(f"Failed to send to observer: {e}")
            return False
        return True
