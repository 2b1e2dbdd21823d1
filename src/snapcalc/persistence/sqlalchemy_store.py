"""SQLAlchemy-based statistics store."""
import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .base import BaseStatisticsStore
from .models import Base, RecoveryStatisticsModel

logger = logging.getLogger(__name__)


class SQLAlchemyStatisticsStore(BaseStatisticsStore):
    """Statistics store backed by an async SQLAlchemy engine."""

    def __init__(self, database_url: str | None = None):
        """Initialize the store.

        Args:
            database_url: SQLAlchemy database URL. Defaults to SQLite in the user data dir.

        """
        super().__init__()
        if database_url is None:
            data_dir = Path.home() / ".snapcalc" / "data"
            data_dir.mkdir(parents=True, exist_ok=True)
            database_url = f"sqlite+aiosqlite:///{data_dir / 'statistics.db'}"

        self.database_url = database_url
        self.engine = create_async_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        self._init_lock = asyncio.Lock()

    async def _ensure_initialized(self) -> None:
        """Ensure database tables are created."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._initialized = True

    async def _setup(self) -> None:
        await self._ensure_initialized()

    async def save_snapshot(self, snapshot: dict[str, Any]) -> None:
        """Replace the stored rows with the snapshot's error keys."""
        await self._ensure_initialized()

        history = snapshot.get("history", {})
        rates = snapshot.get("success_rates", {})
        keys = set(history) | set(rates)

        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(delete(RecoveryStatisticsModel))
                session.add_all(
                    RecoveryStatisticsModel(
                        error_key=key,
                        success_rate=rates.get(key),
                        history=json.dumps(history.get(key, [])),
                    )
                    for key in sorted(keys)
                )

        logger.debug(f"Saved recovery statistics for {len(keys)} error keys")

    async def load_snapshot(self) -> dict[str, Any] | None:
        await self._ensure_initialized()

        async with self.session_factory() as session:
            result = await session.execute(select(RecoveryStatisticsModel))
            rows = result.scalars().all()

        if not rows:
            return None

        snapshot: dict[str, Any] = {"history": {}, "success_rates": {}, "taken_at": time.time()}
        for row in rows:
            try:
                entries = json.loads(row.history)
            except json.JSONDecodeError as e:
                logger.error(f"Discarding corrupt history for {row.error_key}: {e}")
                entries = []
            if entries:
                snapshot["history"][row.error_key] = entries
            if row.success_rate is not None:
                snapshot["success_rates"][row.error_key] = row.success_rate
        return snapshot

    async def clear(self) -> None:
        await self._ensure_initialized()

        async with self.session_factory() as session:
            async with session.begin():
                await session.execute(delete(RecoveryStatisticsModel))

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
