"""Storage backends for recovery statistics."""
from .base import BaseStatisticsStore
from .memory import MemoryStatisticsStore
from .sqlalchemy_store import SQLAlchemyStatisticsStore

__all__ = [
    'BaseStatisticsStore',
    'MemoryStatisticsStore',
    'SQLAlchemyStatisticsStore',
]
