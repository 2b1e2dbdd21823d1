"""SQLAlchemy models for recovery statistics persistence."""
from datetime import UTC, datetime

from sqlalchemy import DateTime, Float, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class RecoveryStatisticsModel(Base):
    """One row per error key: its success rate and recent occurrences."""

    __tablename__ = 'recovery_statistics'

    error_key: Mapped[str] = mapped_column(String(255), primary_key=True)

    success_rate: Mapped[float | None] = mapped_column(Float, nullable=True)

    # JSON list of occurrence dicts, oldest first
    history: Mapped[str] = mapped_column(Text, nullable=False, default='[]')

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        index=True
    )

    def __repr__(self) -> str:
        return (
            f"<RecoveryStatisticsModel(error_key='{self.error_key}', "
            f"success_rate={self.success_rate})>"
        )
