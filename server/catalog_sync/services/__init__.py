"""Service layer package."""

from .brand_sync import BrandSyncWorker, SyncDeadline
from .catalog_client import CatalogClient, HttpCatalogClient
from .catalog_store import CatalogStore
from .geocoding import GeocodingResolver, GoogleGeocodingResolver, NullGeocodingResolver
from .media_import import ConcurrentBatchImporter, HttpMediaFetcher, MediaBatchImporter
from .sync_orchestrator import SyncOrchestrator, build_sync_orchestrator
from .tour_upserter import TourUpserter

__all__ = [
    "BrandSyncWorker",
    "CatalogClient",
    "CatalogStore",
    "ConcurrentBatchImporter",
    "GeocodingResolver",
    "GoogleGeocodingResolver",
    "HttpCatalogClient",
    "HttpMediaFetcher",
    "MediaBatchImporter",
    "NullGeocodingResolver",
    "SyncDeadline",
    "SyncOrchestrator",
    "TourUpserter",
    "build_sync_orchestrator",
]
