"""Unit tests for the scheduled sync worker."""

from datetime import datetime, timezone

import pytest

from catalog_sync.core.config import Settings
from catalog_sync.core.exceptions import SyncLockUnavailableError
from catalog_sync.schemas.sync import SyncRunStatus
from catalog_sync.workers.manager import WorkerManager
from catalog_sync.workers.tour_sync_worker import TourSyncWorker, seconds_until_daily


class FakeOrchestrator:
    def __init__(self, permitted=True, in_progress=False, error=None):
        self.permitted = permitted
        self.in_progress = in_progress
        self.error = error
        self.runs = []

    def is_environment_permitted(self):
        return self.permitted

    def is_sync_in_progress(self):
        return self.in_progress

    async def run_sync(self, options=None):
        self.runs.append(options)
        if self.error:
            raise self.error
        return FakeResult()


class FakeResult:
    status = SyncRunStatus.COMPLETED
    total_tours_synced = 3
    total_errors = 0


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def test_seconds_until_later_today():
    # 02:00 in Toronto (EDT)
    assert seconds_until_daily(3, 0, "America/Toronto", now=_utc(2026, 10, 18, 6, 0)) == 3600


def test_seconds_until_tomorrow_when_time_has_passed():
    # 04:00 in Toronto (EDT)
    assert seconds_until_daily(3, 0, "America/Toronto", now=_utc(2026, 10, 18, 8, 0)) == 23 * 3600


def test_exact_time_schedules_next_day():
    assert seconds_until_daily(3, 0, "UTC", now=_utc(2026, 10, 18, 3, 0)) == 24 * 3600


def test_seconds_until_across_dst_change():
    # Clocks fall back on 2026-11-01, so 03:00 EST is 24 real hours after 04:00 EDT
    assert seconds_until_daily(3, 0, "America/Toronto", now=_utc(2026, 10, 31, 8, 0)) == 24 * 3600


def test_worker_schedule_uses_settings():
    settings = Settings(tour_sync_cron_hour=5, tour_sync_cron_minute=30, tour_sync_timezone="UTC")
    worker = TourSyncWorker(FakeOrchestrator(), app_settings=settings)

    delay = worker.seconds_until_next_run()

    assert 0 < delay <= 24 * 3600


@pytest.mark.asyncio
async def test_worker_skips_when_disabled():
    orchestrator = FakeOrchestrator()
    worker = TourSyncWorker(orchestrator, app_settings=Settings(enable_scheduled_tour_sync=False))

    await worker.process()

    assert orchestrator.runs == []


@pytest.mark.asyncio
async def test_worker_skips_outside_primary_environment():
    orchestrator = FakeOrchestrator(permitted=False)
    worker = TourSyncWorker(orchestrator, app_settings=Settings(enable_scheduled_tour_sync=True))

    await worker.process()

    assert orchestrator.runs == []


@pytest.mark.asyncio
async def test_worker_skips_when_sync_in_progress():
    orchestrator = FakeOrchestrator(in_progress=True)
    worker = TourSyncWorker(orchestrator, app_settings=Settings(enable_scheduled_tour_sync=True))

    await worker.process()

    assert orchestrator.runs == []


@pytest.mark.asyncio
async def test_worker_runs_full_sync():
    orchestrator = FakeOrchestrator()
    worker = TourSyncWorker(orchestrator, app_settings=Settings(enable_scheduled_tour_sync=True))

    await worker.process()

    assert len(orchestrator.runs) == 1
    options = orchestrator.runs[0]
    assert options.brands is None
    assert options.dry_run is False
    assert options.force_full_sync is False


@pytest.mark.asyncio
async def test_worker_treats_held_lock_as_skip():
    orchestrator = FakeOrchestrator(error=SyncLockUnavailableError("tour_sync_lock"))
    worker = TourSyncWorker(orchestrator, app_settings=Settings(enable_scheduled_tour_sync=True))

    await worker.process()

    assert len(orchestrator.runs) == 1


def test_worker_manager_registers_tour_sync():
    manager = WorkerManager(FakeOrchestrator())

    worker = manager.get_worker("tour_sync")

    assert isinstance(worker, TourSyncWorker)
    assert manager.get_worker_status() == {"tour_sync": False}


@pytest.mark.asyncio
async def test_worker_start_and_stop():
    worker = TourSyncWorker(FakeOrchestrator(), app_settings=Settings(enable_scheduled_tour_sync=False))

    await worker.start()
    assert worker.is_running is True

    await worker.stop()
    assert worker.is_running is False
