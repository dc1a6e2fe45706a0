"""Persistence operations used by catalog synchronization."""

import logging
from datetime import date, datetime
from typing import Optional, Sequence, Type
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.departure import CabinPricing, Departure
from ..models.operator import Operator
from ..models.sync_history import SyncHistoryRecord, SyncHistoryStatus
from ..models.tour import Hotel, Inclusion, ItineraryDay, Media, Tour

logger = logging.getLogger(__name__)

# Child collections owned by a tour and replaced wholesale on every sync
TourChild = Type[ItineraryDay] | Type[Hotel] | Type[Media] | Type[Inclusion]


class CatalogStore:
    """
    Natural-key lookups, wholesale child replacement and staleness sweeps.

    The store flushes but never commits: transaction boundaries belong to the
    caller, which commits once per catalog record.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    # Operators

    async def find_operator(self, code: str) -> Optional[Operator]:
        stmt = select(Operator).where(func.lower(Operator.code) == code.lower())
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_or_create_operator(self, code: str, name: str, provider: str) -> Operator:
        """
        Resolve an operator by case-insensitive code, creating it when absent.

        Commits the insert. A concurrent insert of the same code loses on the
        unique constraint; the winner is then re-read.
        """
        operator = await self.find_operator(code)
        if operator:
            return operator

        operator = Operator(code=code.lower(), name=name, provider=provider)
        self.db.add(operator)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            operator = await self.find_operator(code)
            if operator is None:
                raise
            return operator

        logger.info(
            "Tour operator created",
            extra={"operator_id": str(operator.id), "operator_code": operator.code}
        )
        return operator

    # Tours and departures

    async def find_tour(self, provider: str, provider_identifier: str, season: str) -> Optional[Tour]:
        stmt = select(Tour).where(
            Tour.provider == provider,
            Tour.provider_identifier == provider_identifier,
            Tour.season == season,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_tour(self, tour_id: UUID) -> Optional[Tour]:
        return await self.db.get(Tour, tour_id)

    async def find_departure(
        self,
        tour_id: UUID,
        departure_code: str,
        season: str,
        land_start_date: Optional[date],
    ) -> Optional[Departure]:
        """Natural-key lookup; a missing start date only matches missing start dates."""
        stmt = select(Departure).where(
            Departure.tour_id == tour_id,
            Departure.departure_code == departure_code,
            Departure.season == season,
        )
        if land_start_date is None:
            stmt = stmt.where(Departure.land_start_date.is_(None))
        else:
            stmt = stmt.where(Departure.land_start_date == land_start_date)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_active_tour_keys(self, operator_id: UUID) -> set[tuple[str, str]]:
        """``(provider_identifier, season)`` of every active tour of an operator."""
        stmt = select(Tour.provider_identifier, Tour.season).where(
            Tour.operator_id == operator_id,
            Tour.is_active.is_(True),
        )
        result = await self.db.execute(stmt)
        return {(row.provider_identifier, row.season) for row in result}

    # Children

    async def replace_children(self, tour_id: UUID, model: TourChild, rows: Sequence) -> int:
        """
        Delete every ``model`` row of the tour and insert ``rows`` in its place.

        Runs even when ``rows`` is empty, which clears the collection.
        """
        await self.db.execute(delete(model).where(model.tour_id == tour_id))
        for row in rows:
            row.tour_id = tour_id
            self.db.add(row)
        await self.db.flush()
        return len(rows)

    async def replace_cabin_pricing(self, departure_id: UUID, rows: Sequence[CabinPricing]) -> int:
        await self.db.execute(delete(CabinPricing).where(CabinPricing.departure_id == departure_id))
        for row in rows:
            row.departure_id = departure_id
            self.db.add(row)
        await self.db.flush()
        return len(rows)

    # Media

    async def list_media_urls(self, tour_id: UUID) -> set[str]:
        result = await self.db.execute(select(Media.url).where(Media.tour_id == tour_id))
        return set(result.scalars().all())

    async def next_media_sort_order(self, tour_id: UUID) -> int:
        result = await self.db.execute(
            select(func.max(Media.sort_order)).where(Media.tour_id == tour_id)
        )
        current = result.scalar()
        return 0 if current is None else current + 1

    # Staleness sweep

    async def mark_stale_tours_inactive(self, operator_id: UUID, run_started_at: datetime) -> int:
        """Deactivate active tours of the operator not seen since ``run_started_at``."""
        stmt = (
            update(Tour)
            .where(
                Tour.operator_id == operator_id,
                Tour.is_active.is_(True),
                Tour.last_seen_at < run_started_at,
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def mark_stale_departures_inactive(self, operator_id: UUID, run_started_at: datetime) -> int:
        """Deactivate active departures, of the operator's tours, not seen since ``run_started_at``."""
        operator_tours = select(Tour.id).where(Tour.operator_id == operator_id)
        stmt = (
            update(Departure)
            .where(
                Departure.tour_id.in_(operator_tours),
                Departure.is_active.is_(True),
                Departure.last_seen_at < run_started_at,
            )
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount or 0

    async def touch_tour(
        self,
        operator_id: UUID,
        provider: str,
        provider_identifier: str,
        season: str,
        seen_at: datetime,
    ) -> bool:
        """
        Advance ``last_seen_at`` of a stored tour and its active departures.

        Nothing else changes. Returns whether the tour exists.
        """
        natural_key = (
            Tour.operator_id == operator_id,
            Tour.provider == provider,
            Tour.provider_identifier == provider_identifier,
            Tour.season == season,
        )
        tour_ids = select(Tour.id).where(*natural_key)
        result = await self.db.execute(
            update(Tour)
            .where(*natural_key)
            .values(last_seen_at=seen_at)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            return False

        await self.db.execute(
            update(Departure)
            .where(Departure.tour_id.in_(tour_ids), Departure.is_active.is_(True))
            .values(last_seen_at=seen_at)
            .execution_options(synchronize_session=False)
        )
        return True

    # Sync history

    async def create_history(
        self, provider: str, brand: str, currency: str, started_at: datetime
    ) -> SyncHistoryRecord:
        record = SyncHistoryRecord(
            provider=provider,
            brand=brand,
            currency=currency,
            started_at=started_at,
            status=SyncHistoryStatus.RUNNING.value,
        )
        self.db.add(record)
        await self.db.commit()
        return record

    async def finalize_history(
        self,
        record_id: UUID,
        status: SyncHistoryStatus,
        completed_at: datetime,
        duration_ms: int,
        tours_synced: int,
        departures_synced: int,
        errors_count: int,
        error_message: Optional[str],
    ) -> None:
        await self.db.execute(
            update(SyncHistoryRecord)
            .where(SyncHistoryRecord.id == record_id)
            .values(
                status=status.value,
                completed_at=completed_at,
                duration_ms=duration_ms,
                tours_synced=tours_synced,
                departures_synced=departures_synced,
                errors_count=errors_count,
                error_message=error_message,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def list_history(self, brand: Optional[str] = None, limit: int = 20) -> list[SyncHistoryRecord]:
        stmt = select(SyncHistoryRecord).order_by(SyncHistoryRecord.started_at.desc()).limit(limit)
        if brand:
            stmt = stmt.where(func.lower(SyncHistoryRecord.brand) == brand.lower())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
