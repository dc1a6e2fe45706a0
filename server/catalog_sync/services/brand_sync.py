"""Synchronization of one brand's catalog."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..core.config import settings
from ..core.exceptions import CatalogFetchError, CatalogParseError
from ..core.observability import metrics_collector
from ..models.sync_history import SyncHistoryStatus
from ..schemas.catalog import CatalogTour
from ..schemas.sync import SyncErrorType, SyncMetrics, SyncOptions
from .catalog_client import CatalogClient
from .catalog_store import CatalogStore
from .geocoding import GeocodingResolver, NullGeocodingResolver
from .tour_upserter import TourUpserter, TourUpsertOutcome, default_season

logger = logging.getLogger(__name__)


class SyncDeadline:
    """Monotonic wall-clock budget of a sync run; ``seconds`` of 0 or None never expires."""

    def __init__(self, seconds: Optional[float] = None):
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds if seconds else None

    @property
    def expired(self) -> bool:
        return self._expires_at is not None and time.monotonic() >= self._expires_at


def classify_error(error: Exception) -> SyncErrorType:
    """Map an exception raised while syncing a record to its error type."""
    if isinstance(error, ValidationError):
        return SyncErrorType.VALIDATION_ERROR
    if isinstance(error, SQLAlchemyError):
        return SyncErrorType.DB_ERROR
    if isinstance(error, (CatalogFetchError, httpx.HTTPError)):
        return SyncErrorType.API_ERROR
    if isinstance(error, (CatalogParseError, ValueError, TypeError)):
        return SyncErrorType.PARSE_ERROR
    return SyncErrorType.UNKNOWN


def record_identifier(item: Any) -> Optional[str]:
    """Natural identifier of a raw catalog record, for error reports."""
    if isinstance(item, dict):
        value = item.get("TourNumber", item.get("tour_number"))
        return str(value) if value not in (None, "") else None
    return None


def _error_message(error: Exception) -> str:
    message = str(error) or error.__class__.__name__
    return message[:1000]


class BrandFatalError(Exception):
    """A failure that ends a brand's sync before or after its records."""

    def __init__(self, message: str, error_type: SyncErrorType):
        super().__init__(message)
        self.error_type = error_type


class BrandSyncWorker:
    """
    Pulls one brand's catalog and reconciles it record by record.

    Each record is written and committed on its own; a failing record is
    rolled back, reported in the metrics and skipped. Failures that make the
    whole brand unusable (catalog fetch, operator resolution, sweep) are
    reported in the returned metrics and never raised.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        catalog_client: CatalogClient,
        geocoder: Optional[GeocodingResolver] = None,
        provider: Optional[str] = None,
        media_base_url: Optional[str] = None,
        fetch_content: Optional[bool] = None,
    ):
        self.session_factory = session_factory
        self.catalog_client = catalog_client
        self.geocoder = geocoder or NullGeocodingResolver()
        self.provider = provider or settings.catalog_provider
        self.media_base_url = media_base_url
        self.fetch_content = fetch_content

    def _upserter(self, store: CatalogStore) -> TourUpserter:
        return TourUpserter(
            store,
            self.geocoder,
            catalog_client=self.catalog_client,
            provider=self.provider,
            media_base_url=self.media_base_url,
            fetch_content=self.fetch_content,
        )

    async def sync_brand(
        self,
        brand: str,
        currency: str,
        options: SyncOptions,
        deadline: Optional[SyncDeadline] = None,
    ) -> SyncMetrics:
        metrics = SyncMetrics(brand=brand, currency=currency, dry_run=options.dry_run)
        deadline = deadline or SyncDeadline()

        logger.info(
            "Brand sync started",
            extra={
                "brand": brand,
                "currency": currency,
                "force_full_sync": options.force_full_sync,
                "dry_run": options.dry_run,
            }
        )

        async with self.session_factory() as db:
            store = CatalogStore(db)
            if options.dry_run:
                await self._preview_brand(store, brand, currency, options, deadline, metrics)
            else:
                await self._sync_brand(store, brand, currency, options, deadline, metrics)

        metrics.finish()
        metrics_collector.record_tours(brand, metrics.tours_created, metrics.tours_updated)
        metrics_collector.record_departures(brand, metrics.departures_created, metrics.departures_updated)
        if not options.dry_run:
            metrics_collector.record_marked_inactive(
                brand, metrics.tours_marked_inactive, metrics.departures_marked_inactive
            )

        logger.info(
            "Brand sync finished",
            extra={
                "brand": brand,
                "dry_run": options.dry_run,
                "tours_synced": metrics.tours_synced,
                "departures_synced": metrics.departures_synced,
                "tours_marked_inactive": metrics.tours_marked_inactive,
                "departures_marked_inactive": metrics.departures_marked_inactive,
                "errors": metrics.error_count,
                "duration_ms": metrics.duration_ms,
            }
        )
        return metrics

    async def _sync_brand(
        self,
        store: CatalogStore,
        brand: str,
        currency: str,
        options: SyncOptions,
        deadline: SyncDeadline,
        metrics: SyncMetrics,
    ) -> None:
        history_id = await self._create_history(store, brand, currency, metrics.started_at)
        fatal = False

        try:
            items = await self._fetch(brand, currency)
            metrics.tours_fetched = len(items)
            operator_id, operator_code = await self._resolve_operator(store, brand)

            # Rows observed from here on carry a later last_seen_at
            run_started_at = datetime.now(timezone.utc)

            await self._sync_records(store, items, operator_id, operator_code, currency, deadline, metrics)

            if options.force_full_sync:
                logger.info("Staleness sweep skipped for full sync", extra={"brand": brand})
            elif metrics.deadline_exceeded:
                logger.warning("Staleness sweep skipped, run deadline exceeded", extra={"brand": brand})
            else:
                await self._sweep(store, brand, operator_id, run_started_at, metrics)
        except BrandFatalError as e:
            fatal = True
            self._record_error(metrics, brand, str(e), e.error_type)
            logger.error(
                "Brand sync failed",
                extra={"brand": brand, "error_type": e.error_type.value, "error": str(e)}
            )
        except Exception as e:
            fatal = True
            self._record_error(metrics, brand, _error_message(e), SyncErrorType.UNKNOWN)
            logger.exception("Brand sync failed unexpectedly", extra={"brand": brand})
            try:
                await store.db.rollback()
            except SQLAlchemyError as rollback_error:
                logger.warning(
                    "Rollback after brand failure failed",
                    extra={"brand": brand, "error": str(rollback_error)}
                )

        metrics.finish()
        await self._finalize_history(store, history_id, metrics, failed=fatal)

    async def _fetch(self, brand: str, currency: str) -> list[dict[str, Any]]:
        try:
            return await self.catalog_client.fetch_brand_tours(brand, currency)
        except CatalogParseError as e:
            raise BrandFatalError(f"Catalog for {brand} could not be parsed: {e}", SyncErrorType.PARSE_ERROR) from e
        except Exception as e:
            raise BrandFatalError(f"Catalog fetch for {brand} failed: {_error_message(e)}", SyncErrorType.API_ERROR) from e

    async def _resolve_operator(self, store: CatalogStore, brand: str) -> tuple[UUID, str]:
        try:
            operator = await store.get_or_create_operator(brand.lower(), brand, self.provider)
            return operator.id, operator.code
        except SQLAlchemyError as e:
            await store.db.rollback()
            raise BrandFatalError(
                f"Operator resolution for {brand} failed: {_error_message(e)}", SyncErrorType.DB_ERROR
            ) from e

    async def _sync_records(
        self,
        store: CatalogStore,
        items: list[dict[str, Any]],
        operator_id: UUID,
        operator_code: str,
        currency: str,
        deadline: SyncDeadline,
        metrics: SyncMetrics,
    ) -> None:
        upserter = self._upserter(store)

        for index, item in enumerate(items):
            if deadline.expired:
                metrics.deadline_exceeded = True
                self._record_error(
                    metrics,
                    metrics.brand,
                    f"Run deadline exceeded after {index} of {len(items)} tours",
                    SyncErrorType.DEADLINE_EXCEEDED,
                )
                return

            tour_code = record_identifier(item)
            seen_at = datetime.now(timezone.utc)
            try:
                record = CatalogTour.model_validate(item)
                outcome = await upserter.upsert_tour(record, operator_id, operator_code, currency, seen_at)
                await store.db.commit()
            except Exception as e:
                await store.db.rollback()
                await self._mark_failed_record_seen(store, item, operator_id, seen_at)
                error_type = classify_error(e)
                self._record_error(metrics, metrics.brand, _error_message(e), error_type, tour_code)
                logger.warning(
                    "Tour sync failed, continuing with next tour",
                    extra={
                        "brand": metrics.brand,
                        "tour_number": tour_code,
                        "error_type": error_type.value,
                        "error": str(e),
                    }
                )
                continue

            self._merge(metrics, outcome)

    async def _mark_failed_record_seen(
        self, store: CatalogStore, item: Any, operator_id: UUID, seen_at: datetime
    ) -> None:
        """
        Advance ``last_seen_at`` of the stored tour a failing record refers to.

        The record was in the catalog, so the sweep must not deactivate the
        tour or its departures; their content stays as last written.
        """
        tour_number = record_identifier(item)
        if tour_number is None:
            return
        season = item.get("Season", item.get("season"))
        season = str(season).strip() if season not in (None, "") else default_season(seen_at)

        try:
            touched = await store.touch_tour(operator_id, self.provider, tour_number.strip(), season, seen_at)
            await store.db.commit()
        except SQLAlchemyError as e:
            await store.db.rollback()
            logger.warning(
                "Failed to keep failing tour from the sweep",
                extra={"tour_number": tour_number, "season": season, "error": str(e)}
            )
            return

        if touched:
            logger.info(
                "Failing tour marked as seen",
                extra={"tour_number": tour_number, "season": season}
            )

    async def _sweep(
        self,
        store: CatalogStore,
        brand: str,
        operator_id: UUID,
        run_started_at: datetime,
        metrics: SyncMetrics,
    ) -> None:
        try:
            tours = await store.mark_stale_tours_inactive(operator_id, run_started_at)
            departures = await store.mark_stale_departures_inactive(operator_id, run_started_at)
            await store.db.commit()
        except SQLAlchemyError as e:
            await store.db.rollback()
            raise BrandFatalError(
                f"Staleness sweep for {brand} failed: {_error_message(e)}", SyncErrorType.DB_ERROR
            ) from e

        metrics.tours_marked_inactive = tours
        metrics.departures_marked_inactive = departures
        if tours or departures:
            logger.info(
                "Stale catalog rows marked inactive",
                extra={"brand": brand, "tours": tours, "departures": departures}
            )

    async def _preview_brand(
        self,
        store: CatalogStore,
        brand: str,
        currency: str,
        options: SyncOptions,
        deadline: SyncDeadline,
        metrics: SyncMetrics,
    ) -> None:
        """Fetch and classify every record against the store without writing."""
        try:
            items = await self._fetch(brand, currency)
        except BrandFatalError as e:
            self._record_error(metrics, brand, str(e), e.error_type)
            return

        metrics.tours_fetched = len(items)
        operator = await store.find_operator(brand)
        operator_id = operator.id if operator else None
        upserter = self._upserter(store)
        seen: set[tuple[str, str]] = set()

        for index, item in enumerate(items):
            if deadline.expired:
                metrics.deadline_exceeded = True
                self._record_error(
                    metrics,
                    brand,
                    f"Run deadline exceeded after {index} of {len(items)} tours",
                    SyncErrorType.DEADLINE_EXCEEDED,
                )
                return

            tour_code = record_identifier(item)
            try:
                record = CatalogTour.model_validate(item)
                outcome = await upserter.preview_tour(record)
            except Exception as e:
                self._record_error(metrics, brand, _error_message(e), classify_error(e), tour_code)
                continue

            seen.add((record.tour_number, record.season or default_season()))
            self._merge(metrics, outcome)

        if operator_id is not None and not options.force_full_sync:
            active = await store.list_active_tour_keys(operator_id)
            metrics.tours_marked_inactive = len(active - seen)

    @staticmethod
    def _merge(metrics: SyncMetrics, outcome: TourUpsertOutcome) -> None:
        metrics.tours_synced += 1
        if outcome.tour_created:
            metrics.tours_created += 1
        else:
            metrics.tours_updated += 1
        metrics.departures_synced += outcome.departures_synced
        metrics.departures_created += outcome.departures_created
        metrics.departures_updated += outcome.departures_updated
        metrics.itinerary_days_synced += outcome.itinerary_days
        metrics.hotels_synced += outcome.hotels
        metrics.media_synced += outcome.media
        metrics.inclusions_synced += outcome.inclusions

    @staticmethod
    def _record_error(
        metrics: SyncMetrics,
        brand: str,
        message: str,
        error_type: SyncErrorType,
        tour_code: Optional[str] = None,
    ) -> None:
        metrics.record_error(message, error_type, tour_code)
        metrics_collector.record_sync_error(brand, error_type.value)

    async def _create_history(
        self, store: CatalogStore, brand: str, currency: str, started_at: datetime
    ) -> Optional[UUID]:
        try:
            record = await store.create_history(self.provider, brand, currency, started_at)
            return record.id
        except Exception as e:
            await store.db.rollback()
            logger.warning(
                "Failed to create sync history record",
                extra={"brand": brand, "error": str(e)}
            )
            return None

    async def _finalize_history(
        self, store: CatalogStore, history_id: Optional[UUID], metrics: SyncMetrics, failed: bool
    ) -> None:
        if history_id is None:
            return
        try:
            await store.finalize_history(
                history_id,
                status=SyncHistoryStatus.FAILED if failed else SyncHistoryStatus.COMPLETED,
                completed_at=metrics.completed_at or datetime.now(timezone.utc),
                duration_ms=metrics.duration_ms,
                tours_synced=metrics.tours_synced,
                departures_synced=metrics.departures_synced,
                errors_count=metrics.error_count,
                error_message=metrics.errors[0].message if metrics.errors else None,
            )
        except Exception as e:
            await store.db.rollback()
            logger.warning(
                "Failed to finalize sync history record",
                extra={"brand": metrics.brand, "history_id": str(history_id), "error": str(e)}
            )
