"""Tour import router: sync runs, sync status and media batch import."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.dependencies import InternalApiKey, get_db, get_media_fetcher, get_sync_orchestrator
from ..schemas.common import Problem
from ..schemas.media import BatchImportResult, MediaImportRequest
from ..schemas.sync import (
    BrandsResponse,
    SyncHistoryEntry,
    SyncHistoryResponse,
    SyncOptions,
    SyncResult,
    SyncStatusResponse,
)
from ..services.catalog_store import CatalogStore
from ..services.media_import import MediaBatchImporter, MediaFetcher
from ..services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tour-import",
    tags=["tour-import"],
    dependencies=[InternalApiKey],
    responses={401: {"model": Problem, "description": "Missing or wrong X-API-Key"}},
)

SYNC_GUARD_RESPONSES = {
    403: {"model": Problem, "description": "Not the primary sync environment"},
    409: {"model": Problem, "description": "Sync in progress or sync lock held elsewhere"},
}


@router.post("/sync", response_model=SyncResult, responses=SYNC_GUARD_RESPONSES)
async def run_sync(
    options: Optional[SyncOptions] = Body(None),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> SyncResult:
    """
    Run a catalog sync and wait for its result.

    Partial and failed runs are reported in the body with status 200; a run
    refused by a guard is reported as problem details (403 or 409).
    """
    options = options or SyncOptions()
    logger.info(
        "Sync requested",
        extra={
            "brands": options.brands,
            "currency": options.currency,
            "force_full_sync": options.force_full_sync,
            "dry_run": options.dry_run,
        }
    )
    return await orchestrator.run_sync(options)


@router.post("/sync/dry-run", response_model=SyncResult, responses=SYNC_GUARD_RESPONSES)
async def run_dry_run(
    options: Optional[SyncOptions] = Body(None),
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> SyncResult:
    """Fetch and classify every brand's catalog without writing."""
    options = (options or SyncOptions()).model_copy(update={"dry_run": True})
    return await orchestrator.run_sync(options)


@router.get("/sync/status", response_model=SyncStatusResponse)
async def sync_status(
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
) -> SyncStatusResponse:
    return orchestrator.get_sync_status()


@router.get("/sync/history", response_model=SyncHistoryResponse)
async def sync_history(
    brand: Optional[str] = Query(None, description="Only rows of this brand"),
    limit: int = Query(20, ge=1, le=100, description="Maximum rows, newest first"),
    db: AsyncSession = Depends(get_db),
) -> SyncHistoryResponse:
    rows = await CatalogStore(db).list_history(brand=brand, limit=limit)
    return SyncHistoryResponse(items=[SyncHistoryEntry.model_validate(r) for r in rows])


@router.get("/brands", response_model=BrandsResponse)
async def list_brands() -> BrandsResponse:
    return BrandsResponse(brands=list(settings.sync_brands), default_currency=settings.sync_default_currency)


@router.post(
    "/tours/{tour_id}/media/import",
    response_model=BatchImportResult,
    responses={404: {"model": Problem, "description": "Tour not found"}},
)
async def import_tour_media(
    tour_id: UUID,
    request: MediaImportRequest,
    db: AsyncSession = Depends(get_db),
    fetcher: MediaFetcher = Depends(get_media_fetcher),
) -> BatchImportResult:
    """
    Attach a batch of media URLs to a tour.

    Each URL is probed before it is stored. Duplicates within the batch and
    URLs the tour already has are counted as skipped.
    """
    importer = MediaBatchImporter(db, fetcher)
    return await importer.import_media(tour_id, request.items)
