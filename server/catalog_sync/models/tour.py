"""Tour model and its wholly-owned child collections."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .departure import Departure
    from .operator import Operator


class MediaType(str, Enum):
    """Media type enumeration."""
    IMAGE = "image"
    BROCHURE = "brochure"
    VIDEO = "video"
    MAP = "map"


class InclusionType(str, Enum):
    """Inclusion type enumeration."""
    INCLUDED = "included"
    EXCLUDED = "excluded"
    HIGHLIGHT = "highlight"


class Tour(Base):
    """
    A catalog tour.

    Identified by the natural key ``(provider, provider_identifier, season)``.
    ``is_active``/``last_seen_at`` carry the reconciliation state: a sync run
    that observes the tour sets both, the staleness sweep clears ``is_active``
    for rows whose ``last_seen_at`` predates the run.
    """

    __tablename__ = "tours"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Natural key
    provider: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider_identifier: Mapped[str] = mapped_column(String(64), nullable=False)
    season: Mapped[str] = mapped_column(String(16), nullable=False, index=True)

    operator_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("tour_operators.id"),
        nullable=True,
        index=True
    )
    operator_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    nights: Mapped[int | None] = mapped_column(Integer, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    start_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_city_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_city_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    end_city_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_city_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Reconciliation state
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_identifier", "season", name="uq_tour_natural_key"),
    )

    operator: Mapped["Operator"] = relationship("Operator", back_populates="tours")
    departures: Mapped[list["Departure"]] = relationship(
        "Departure",
        back_populates="tour",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return (
            f"<Tour(id={self.id}, provider_identifier='{self.provider_identifier}', "
            f"season='{self.season}', active={self.is_active})>"
        )


class ItineraryDay(Base):
    """One day of a tour's itinerary."""

    __tablename__ = "tour_itinerary_days"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    overnight_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    overnight_city_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    overnight_city_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tour_id", "day_number", name="uq_itinerary_day_tour_day"),
    )


class Hotel(Base):
    """A hotel stay on a tour."""

    __tablename__ = "tour_hotels"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    day_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    hotel_name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())


class Media(Base):
    """An image, brochure, video or map attached to a tour."""

    __tablename__ = "tour_media"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    media_type: Mapped[MediaType] = mapped_column(String(16), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "media_type IN ('image', 'brochure', 'video', 'map')",
            name="ck_tour_media_type"
        ),
    )


class Inclusion(Base):
    """A highlight, included feature or excluded feature of a tour."""

    __tablename__ = "tour_inclusions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    inclusion_type: Mapped[InclusionType] = mapped_column(String(16), nullable=False, index=True)
    category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "inclusion_type IN ('included', 'excluded', 'highlight')",
            name="ck_tour_inclusion_type"
        ),
    )
