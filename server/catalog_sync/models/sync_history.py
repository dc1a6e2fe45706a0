"""Sync history model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class SyncHistoryStatus(str, Enum):
    """Sync history status enumeration."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncHistoryRecord(Base):
    """Audit row for one brand within one sync run."""

    __tablename__ = "tour_sync_history"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    provider: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    brand: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    status: Mapped[SyncHistoryStatus] = mapped_column(String(16), nullable=False, index=True)
    tours_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    departures_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('running', 'completed', 'failed')",
            name="ck_tour_sync_history_status"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<SyncHistoryRecord(id={self.id}, brand='{self.brand}', "
            f"status='{self.status}', started_at={self.started_at})>"
        )
