"""Source adapter contract and the registry of available adapters."""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional

from ..snapshot import Snapshot

logger = logging.getLogger("music_companion.sources")


class UnknownSourceError(KeyError):
    """Requested source adapter is not registered."""
    pass


class SourceAdapter(ABC):
    """Something that can be polled for the current playback snapshot.

    Subclasses implement ``fetch``. Callers use ``get_current_track``,
    which never raises: any failure becomes an error snapshot.
    """

    name: str = "unknown"

    @abstractmethod
    async def fetch(self) -> Snapshot:
        """Query the media source. May raise on failure."""

    async def get_current_track(self) -> Snapshot:
        """Return the current snapshot, or an error snapshot on failure."""
        try:
            snapshot = await self.fetch()
        except Exception as e:
            logger.debug(f"Source '{self.name}' failed: {e}", exc_info=True)
            return Snapshot.error_snapshot(self.name, str(e) or type(e).__name__)
        if snapshot is None:
            return Snapshot(source=self.name)
        return snapshot

    async def aclose(self) -> None:
        """Release adapter resources."""
        return None


class SourceRegistry:
    """Named adapters with one of them active at a time."""

    def __init__(self, adapters: Iterable[SourceAdapter], active: Optional[str] = None):
        self._adapters: Dict[str, SourceAdapter] = {}
        for adapter in adapters:
            self._adapters[adapter.name] = adapter
        if not self._adapters:
            raise ValueError("At least one source adapter is required")
        if active is None:
            active = next(iter(self._adapters))
        self._active = self._require(active)

    def _require(self, name: str) -> str:
        if name not in self._adapters:
            raise UnknownSourceError(name)
        return name

    @property
    def active_name(self) -> str:
        return self._active

    @property
    def active(self) -> SourceAdapter:
        return self._adapters[self._active]

    def names(self) -> list[str]:
        return list(self._adapters)

    def get(self, name: str) -> SourceAdapter:
        return self._adapters[self._require(name)]

    def select(self, name: str) -> SourceAdapter:
        """
        Make a registered adapter the active one.

        Raises:
            UnknownSourceError: If no adapter has that name
        """
        self._active = self._require(name)
        logger.info(f"Active source set to '{name}'")
        return self.active

    async def aclose(self) -> None:
        for adapter in self._adapters.values():
            await adapter.aclose()
