"""Departure and cabin pricing model definitions."""

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base

if TYPE_CHECKING:
    from .tour import Tour


class Departure(Base):
    """
    A dated departure of a tour.

    Identified by ``(tour_id, departure_code, season, land_start_date)`` where
    a missing start date matches only other missing start dates.
    """

    __tablename__ = "tour_departures"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    tour_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    departure_code: Mapped[str] = mapped_column(String(64), nullable=False)
    season: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    land_start_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    land_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    guaranteed_departure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ship_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Minimum cabin price in minor units, NULL when no cabin pricing exists
    base_price_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")

    start_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_city_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    start_city_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    end_city_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    end_city_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        nullable=False,
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "tour_id", "departure_code", "season", "land_start_date",
            name="uq_departure_natural_key"
        ),
        CheckConstraint(
            "base_price_cents IS NULL OR base_price_cents >= 0",
            name="ck_departure_base_price_non_negative"
        ),
        CheckConstraint("length(currency) = 3", name="ck_departure_currency_length"),
    )

    tour: Mapped["Tour"] = relationship("Tour", back_populates="departures")
    cabin_pricing: Mapped[list["CabinPricing"]] = relationship(
        "CabinPricing",
        back_populates="departure",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self) -> str:
        return (
            f"<Departure(id={self.id}, tour_id={self.tour_id}, code='{self.departure_code}', "
            f"start={self.land_start_date}, base_price_cents={self.base_price_cents})>"
        )


class CabinPricing(Base):
    """Per-cabin price of a departure, replaced wholesale on every sync."""

    __tablename__ = "tour_departure_pricing"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    departure_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tour_departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    cabin_category: Mapped[str | None] = mapped_column(String(255), nullable=True)
    price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    discount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="CAD")
    created_at: Mapped[datetime] = mapped_column(nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint("price_cents >= 0", name="ck_cabin_pricing_price_non_negative"),
    )

    departure: Mapped["Departure"] = relationship("Departure", back_populates="cabin_pricing")
