"""Scheduled daily catalog sync."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from ..core.config import Settings, settings as default_settings
from ..core.exceptions import SyncInProgressError, SyncLockUnavailableError
from ..schemas.sync import SyncOptions
from ..services.sync_orchestrator import SyncOrchestrator
from .base import BaseWorker

logger = logging.getLogger(__name__)


def seconds_until_daily(hour: int, minute: int, tz_name: str, now: Optional[datetime] = None) -> float:
    """Seconds from ``now`` until the next ``hour:minute`` wall-clock time in ``tz_name``."""
    tz = ZoneInfo(tz_name)
    now = (now or datetime.now(timezone.utc)).astimezone(tz)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target = target + timedelta(days=1)
    # Subtract in UTC so a DST change in between is accounted for
    return (target.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


class TourSyncWorker(BaseWorker):
    """
    Background worker that runs the full catalog sync once a day.

    Skips (and logs) a scheduled run when scheduling is disabled, when this
    is not the primary sync environment, or when a sync is already running.
    """

    def __init__(self, orchestrator: SyncOrchestrator, app_settings: Optional[Settings] = None):
        super().__init__(name="TourSync", interval_seconds=24 * 60 * 60)
        self.orchestrator = orchestrator
        self.settings = app_settings or default_settings

    def seconds_until_next_run(self) -> float:
        return seconds_until_daily(
            self.settings.tour_sync_cron_hour,
            self.settings.tour_sync_cron_minute,
            self.settings.tour_sync_timezone,
        )

    async def process(self) -> None:
        """Run one scheduled sync."""
        if not self.settings.enable_scheduled_tour_sync:
            logger.info("Scheduled tour sync disabled, skipping", extra={"worker": self.name})
            return

        if not self.orchestrator.is_environment_permitted():
            logger.info(
                "Scheduled tour sync skipped outside the primary environment",
                extra={"worker": self.name, "environment": self.settings.environment}
            )
            return

        if self.orchestrator.is_sync_in_progress():
            logger.info("Scheduled tour sync skipped, a sync is in progress", extra={"worker": self.name})
            return

        try:
            result = await self.orchestrator.run_sync(SyncOptions())
        except (SyncInProgressError, SyncLockUnavailableError) as e:
            logger.info(
                "Scheduled tour sync skipped, sync lock is held",
                extra={"worker": self.name, "reason": e.title}
            )
            return

        logger.info(
            "Scheduled tour sync finished",
            extra={
                "worker": self.name,
                "status": result.status.value,
                "tours_synced": result.total_tours_synced,
                "errors": result.total_errors,
            }
        )
