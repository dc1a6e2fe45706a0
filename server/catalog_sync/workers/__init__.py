"""Background workers package."""

from .base import BaseWorker
from .manager import WorkerManager
from .tour_sync_worker import TourSyncWorker

__all__ = ["BaseWorker", "TourSyncWorker", "WorkerManager"]
