"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict

from ..services.sync_orchestrator import SyncOrchestrator
from .base import BaseWorker
from .tour_sync_worker import TourSyncWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Coordinates starting, stopping, and monitoring of all background workers.
    """

    def __init__(self, orchestrator: SyncOrchestrator):
        """Initialize the worker manager."""
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers(orchestrator)

    def _setup_workers(self, orchestrator: SyncOrchestrator) -> None:
        """Initialize all workers."""
        # Catalog sync - daily at the configured local time
        self.workers["tour_sync"] = TourSyncWorker(orchestrator)

        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        """Start all workers."""
        logger.info("Starting all workers")

        for name, worker in self.workers.items():
            try:
                await worker.start()
                logger.info(f"Started worker: {name}")
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        logger.info("Stopping all workers")

        names = [name for name, worker in self.workers.items() if worker.is_running]
        results = await asyncio.gather(
            *(self.workers[name].stop() for name in names), return_exceptions=True
        )

        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {str(result)}")
            else:
                logger.info(f"Stopped worker: {name}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        """Map worker names to their running status."""
        return {name: worker.is_running for name, worker in self.workers.items()}
