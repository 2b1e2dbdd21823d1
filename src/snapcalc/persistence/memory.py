"""In-memory implementation of the statistics store."""
import asyncio
import copy
from typing import Any

from .base import BaseStatisticsStore


class MemoryStatisticsStore(BaseStatisticsStore):
    """In-memory statistics store.

    Useful for testing and scenarios where statistics need not survive
    a restart.
    """

    def __init__(self):
        super().__init__()
        self._snapshot: dict[str, Any] | None = None
        self._lock = asyncio.Lock()

    async def _setup(self) -> None:
        """No setup needed for memory storage."""
        pass

    async def save_snapshot(self, snapshot: dict[str, Any]) -> None:
        async with self._lock:
            self._snapshot = copy.deepcopy(snapshot)

    async def load_snapshot(self) -> dict[str, Any] | None:
        async with self._lock:
            return copy.deepcopy(self._snapshot)

    async def clear(self) -> None:
        async with self._lock:
            self._snapshot = None
