"""Fixed-period driver that polls the active source and publishes changes."""

import asyncio
import logging
from typing import Optional

from .hub import BroadcastHub
from .snapshot import Snapshot
from .sources import SourceRegistry
from .tracker import Classification, StateTracker

logger = logging.getLogger("music_companion.poll_loop")


class LoopState:
    IDLE = "idle"
    RUNNING = "running"


class PollLoop:
    """Polls the active source once per tick and feeds the hub.

    Ticks never overlap: the next one is scheduled only after the current
    poll has completed or timed out.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        tracker: StateTracker,
        hub: BroadcastHub,
        poll_timeout: float = 5.0,
    ):
        """Initialize the poll loop.

        Args:
            registry: Source adapters; the active one is read on every tick
            tracker: Significance classifier
            hub: Observer registry to update and publish to
            poll_timeout: Seconds a single poll may take before it counts as failed
        """
        self.registry = registry
        self.tracker = tracker
        self.hub = hub
        self.poll_timeout = poll_timeout
        self.interval = tracker.timing.poll_interval
        self.polls = 0
        self._task: Optional[asyncio.Task] = None
        self._last_error: Optional[str] = None

    @property
    def state(self) -> str:
        if self._task is not None and not self._task.done():
            return LoopState.RUNNING
        return LoopState.IDLE

    def start(self) -> asyncio.Task:
        """Start polling, replacing any loop that is already running."""
        if self._task is not None and not self._task.done():
            logger.info("Restarting poll loop")
            self._task.cancel()
        logger.info(f"Poll loop starting. Interval: {self.interval}s")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="music_companion-poll"
        )
        return self._task

    async def stop(self) -> None:
        """Stop polling and wait for the loop to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Poll loop stopped")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.tick()
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.interval - elapsed))

    async def poll_once(self) -> Optional[Snapshot]:
        """
        Ask the active source for a snapshot, bounded by the poll timeout.

        Returns:
            The snapshot (an error snapshot on timeout), or None when the
            adapter raised instead of reporting its failure
        """
        adapter = self.registry.active
        try:
            snapshot = await asyncio.wait_for(
                adapter.get_current_track(), timeout=self.poll_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Source '{adapter.name}' timed out after {self.poll_timeout}s")
            return Snapshot.error_snapshot(adapter.name, "Source timed out")
        except Exception:
            logger.exception(f"Error polling source '{adapter.name}'")
            return None

        if snapshot.error is not None and snapshot.error != self._last_error:
            logger.warning(f"Source '{adapter.name}' reported: {snapshot.error}")
        elif snapshot.error is not None:
            logger.debug(f"Source '{adapter.name}' still reporting: {snapshot.error}")
        self._last_error = snapshot.error
        return snapshot

    async def tick(self) -> Optional[Classification]:
        """Run one poll/classify/publish cycle."""
        self.polls += 1
        snapshot = await self.poll_once()
        if snapshot is None:
            return None

        result = self.tracker.observe(snapshot)
        self.hub.set_current(snapshot)
        if result.significant:
            queued = await self.hub.publish(snapshot)
            logger.info(
                f"Published {result.reason} update "
                f"({snapshot.title or 'nothing playing'}) for {queued} observer(s)"
            )
        return result

    async def switch_source(self, name: str) -> None:
        """
        Activate another source and make sure its first snapshot is published.

        Raises:
            UnknownSourceError: If no adapter has that name
        """
        self.registry.select(name)
        self.tracker.reset()
        await self.hub.announce_provider(name)
