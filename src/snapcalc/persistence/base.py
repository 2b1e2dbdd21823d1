"""
Base implementation for recovery statistics persistence.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class BaseStatisticsStore(ABC):
    """Base class for statistics store implementations.

    A store keeps one snapshot as produced by ``RecoveryStatistics.snapshot()``;
    saving replaces whatever was stored before.
    """

    def __init__(self):
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize the storage backend."""
        if not self._initialized:
            await self._setup()
            self._initialized = True

    @abstractmethod
    async def _setup(self) -> None:
        """Setup the storage backend. Override in subclasses."""
        pass

    @abstractmethod
    async def save_snapshot(self, snapshot: dict[str, Any]) -> None:
        """Persist a statistics snapshot."""
        pass

    @abstractmethod
    async def load_snapshot(self) -> dict[str, Any] | None:
        """Load the stored snapshot, or None when nothing was saved."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove all stored statistics."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass
