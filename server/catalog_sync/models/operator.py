"""Tour operator model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .tour import Tour


class Operator(Base):
    """A tour operator (brand) that owns catalog tours."""

    __tablename__ = "tour_operators"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Matched case-insensitively by the sync engine
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[str] = mapped_column(String(64), nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    tours: Mapped[list["Tour"]] = relationship("Tour", back_populates="operator")

    def __repr__(self) -> str:
        return f"<Operator(id={self.id}, code='{self.code}')>"
