"""Entry point of catalog sync runs: guards, brand loop and result aggregation."""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import (
    SyncEnvironmentNotPermittedError,
    SyncInProgressError,
    SyncLockUnavailableError,
)
from ..core.locks import DistributedLock, build_distributed_lock
from ..core.observability import metrics_collector
from ..schemas.sync import (
    SyncErrorType,
    SyncMetrics,
    SyncOptions,
    SyncResult,
    SyncRunStatus,
    SyncStatusResponse,
)
from .brand_sync import BrandSyncWorker, SyncDeadline
from .catalog_client import CatalogClient, HttpCatalogClient
from .geocoding import GeocodingResolver, build_geocoding_resolver

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def determine_status(results: list[SyncMetrics]) -> SyncRunStatus:
    """
    Overall status of a run.

    ``failed`` when no brand ran, or when nothing was synced and every brand
    reported errors; ``partial`` when any brand reported errors.
    """
    if not results:
        return SyncRunStatus.FAILED
    total_tours = sum(r.tours_synced for r in results)
    if total_tours == 0 and all(r.has_errors for r in results):
        return SyncRunStatus.FAILED
    if any(r.has_errors for r in results):
        return SyncRunStatus.PARTIAL
    return SyncRunStatus.COMPLETED


class SyncOrchestrator:
    """
    Runs catalog syncs one at a time.

    A run is refused, in this order, when the environment is not the primary
    sync environment (unless bypassed), when this instance is already running
    a sync, and when another process holds the distributed sync lock. Brands
    are then synced sequentially; a brand failure never stops the others.
    """

    def __init__(
        self,
        brand_worker: BrandSyncWorker,
        distributed_lock: DistributedLock,
        app_settings: Optional[Settings] = None,
    ):
        self.brand_worker = brand_worker
        self.distributed_lock = distributed_lock
        self.settings = app_settings or default_settings
        self._run_lock = asyncio.Lock()

    def is_sync_in_progress(self) -> bool:
        return self._run_lock.locked()

    def get_sync_status(self) -> SyncStatusResponse:
        return SyncStatusResponse(in_progress=self.is_sync_in_progress())

    def is_environment_permitted(self) -> bool:
        return self.settings.is_primary_sync_environment or self.settings.bypass_sync_environment_guard

    def check_environment(self) -> None:
        if not self.is_environment_permitted():
            logger.warning(
                "Sync refused outside the primary environment",
                extra={
                    "environment": self.settings.environment,
                    "primary_environment": self.settings.sync_primary_environment,
                }
            )
            raise SyncEnvironmentNotPermittedError(
                environment=self.settings.environment,
                primary_environment=self.settings.sync_primary_environment,
            )

    async def run_sync(self, options: Optional[SyncOptions] = None) -> SyncResult:
        """
        Run a sync over the requested (or configured) brands.

        Raises:
            SyncEnvironmentNotPermittedError: Not the primary environment
            SyncInProgressError: A run is already executing in this process
            SyncLockUnavailableError: Another process holds the sync lock
        """
        options = options or SyncOptions()
        self.check_environment()

        # locked() and the uncontended acquire below run without yielding
        if self._run_lock.locked():
            raise SyncInProgressError()

        async with self._run_lock:
            lock_key = self.settings.sync_lock_key
            if not await self.distributed_lock.try_acquire(lock_key):
                logger.warning("Sync lock held by another process", extra={"lock_key": lock_key})
                raise SyncLockUnavailableError(lock_key)

            metrics_collector.set_sync_in_progress(True)
            try:
                return await self._run(options)
            finally:
                metrics_collector.set_sync_in_progress(False)
                try:
                    await self.distributed_lock.release(lock_key)
                except Exception as e:
                    logger.warning(
                        "Failed to release sync lock",
                        extra={"lock_key": lock_key, "error": str(e)}
                    )

    async def _run(self, options: SyncOptions) -> SyncResult:
        brands = options.brands or list(self.settings.sync_brands)
        currency = options.currency or self.settings.sync_default_currency
        deadline = SyncDeadline(self.settings.sync_run_deadline_seconds)
        started_at = datetime.now(timezone.utc)
        started = time.perf_counter()
        results: list[SyncMetrics] = []

        # Coordinates cached by an earlier run are looked up again
        reset = getattr(self.brand_worker.geocoder, "reset", None)
        if reset is not None:
            reset()

        logger.info(
            "Catalog sync started",
            extra={
                "brands": brands,
                "currency": currency,
                "force_full_sync": options.force_full_sync,
                "dry_run": options.dry_run,
            }
        )

        with tracer.start_as_current_span("catalog_sync.run") as span:
            span.set_attribute("sync.brands", brands)
            span.set_attribute("sync.dry_run", options.dry_run)
            span.set_attribute("sync.force_full_sync", options.force_full_sync)

            for brand in brands:
                if deadline.expired:
                    results.append(self._skipped_for_deadline(brand, currency, options))
                    continue

                with tracer.start_as_current_span("catalog_sync.brand") as brand_span:
                    brand_span.set_attribute("sync.brand", brand)
                    metrics = await self._sync_brand(brand, currency, options, deadline)
                    brand_span.set_attribute("sync.tours_synced", metrics.tours_synced)
                    brand_span.set_attribute("sync.errors", metrics.error_count)
                results.append(metrics)

            status = determine_status(results)
            span.set_attribute("sync.status", status.value)

        duration = time.perf_counter() - started
        result = SyncResult(
            status=status,
            dry_run=options.dry_run,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            duration_ms=int(duration * 1000),
            brand_results=results,
            total_tours_synced=sum(r.tours_synced for r in results),
            total_departures_synced=sum(r.departures_synced for r in results),
            total_errors=sum(r.error_count for r in results),
        )
        metrics_collector.record_sync_run(status.value, options.dry_run, duration)

        log = logger.info if status is SyncRunStatus.COMPLETED else logger.warning
        log(
            "Catalog sync finished",
            extra={
                "status": status.value,
                "dry_run": options.dry_run,
                "tours_synced": result.total_tours_synced,
                "departures_synced": result.total_departures_synced,
                "errors": result.total_errors,
                "duration_ms": result.duration_ms,
                "brands": {r.brand: r.error_count for r in results},
            }
        )
        return result

    async def _sync_brand(
        self, brand: str, currency: str, options: SyncOptions, deadline: SyncDeadline
    ) -> SyncMetrics:
        try:
            return await self.brand_worker.sync_brand(brand, currency, options, deadline)
        except Exception as e:
            logger.error(
                "Unexpected error syncing brand",
                exc_info=True,
                extra={"brand": brand, "error": str(e)}
            )
            metrics = SyncMetrics(brand=brand, currency=currency, dry_run=options.dry_run)
            metrics.record_error(str(e) or e.__class__.__name__, SyncErrorType.UNKNOWN)
            metrics_collector.record_sync_error(brand, SyncErrorType.UNKNOWN.value)
            metrics.finish()
            return metrics

    @staticmethod
    def _skipped_for_deadline(brand: str, currency: str, options: SyncOptions) -> SyncMetrics:
        logger.warning("Brand skipped, run deadline exceeded", extra={"brand": brand})
        metrics = SyncMetrics(brand=brand, currency=currency, dry_run=options.dry_run, deadline_exceeded=True)
        metrics.record_error("Run deadline exceeded before brand started", SyncErrorType.DEADLINE_EXCEEDED)
        metrics_collector.record_sync_error(brand, SyncErrorType.DEADLINE_EXCEEDED.value)
        metrics.finish()
        return metrics

    async def close(self) -> None:
        """Close the outbound HTTP clients of the collaborators."""
        for collaborator in (self.brand_worker.catalog_client, self.brand_worker.geocoder):
            close = getattr(collaborator, "close", None)
            if close is not None:
                await close()


def build_sync_orchestrator(
    engine: AsyncEngine,
    session_factory: async_sessionmaker,
    catalog_client: Optional[CatalogClient] = None,
    geocoder: Optional[GeocodingResolver] = None,
    distributed_lock: Optional[DistributedLock] = None,
    app_settings: Optional[Settings] = None,
) -> SyncOrchestrator:
    """Wire an orchestrator from settings, with optional collaborator overrides."""
    worker = BrandSyncWorker(
        session_factory,
        catalog_client or HttpCatalogClient.from_settings(),
        geocoder or build_geocoding_resolver(),
    )
    return SyncOrchestrator(
        worker,
        distributed_lock or build_distributed_lock(engine),
        app_settings=app_settings,
    )
