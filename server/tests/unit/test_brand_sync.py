"""Unit tests for per-brand synchronization."""

import pytest
from sqlalchemy import func, select

from catalog_sync.core.exceptions import CatalogFetchError, CatalogParseError
from catalog_sync.models.departure import CabinPricing, Departure
from catalog_sync.models.operator import Operator
from catalog_sync.models.sync_history import SyncHistoryRecord
from catalog_sync.models.tour import Tour
from catalog_sync.schemas.sync import MAX_RECORDED_ERRORS, SyncErrorType, SyncOptions
from catalog_sync.services.brand_sync import SyncDeadline, classify_error, record_identifier
from catalog_sync.services.catalog_store import CatalogStore


class ExpiredDeadline:
    expired = True


async def _count(session_factory, model, *criteria):
    async with session_factory() as session:
        stmt = select(func.count()).select_from(model)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        return await session.scalar(stmt)


async def _active_tours(session_factory):
    async with session_factory() as session:
        rows = await session.execute(select(Tour.provider_identifier, Tour.is_active))
        return {row.provider_identifier: row.is_active for row in rows}


@pytest.mark.asyncio
async def test_sync_creates_catalog(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]

    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.tours_fetched == 2
    assert metrics.tours_synced == 2
    assert metrics.tours_created == 2
    assert metrics.departures_created == 2
    assert metrics.itinerary_days_synced == 6
    assert metrics.error_count == 0
    assert metrics.completed_at is not None
    assert catalog_client.fetches == [("Globus", "CAD")]

    async with session_factory() as session:
        operator = (await session.execute(select(Operator))).scalar_one()
        assert operator.code == "globus"

        history = (await session.execute(select(SyncHistoryRecord))).scalar_one()
        assert history.status == "completed"
        assert history.brand == "Globus"
        assert history.tours_synced == 2
        assert history.departures_synced == 2
        assert history.completed_at is not None


@pytest.mark.asyncio
async def test_sync_is_idempotent(brand_worker, catalog_client, session_factory, make_tour):
    """Running the same catalog twice updates rows instead of duplicating them."""
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]

    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())
    second = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert second.tours_created == 0
    assert second.tours_updated == 2
    assert second.departures_updated == 2
    assert second.tours_marked_inactive == 0
    assert second.departures_marked_inactive == 0

    assert await _count(session_factory, Tour) == 2
    assert await _count(session_factory, Departure) == 2
    assert await _count(session_factory, CabinPricing) == 4
    assert await _count(session_factory, Operator) == 1
    assert await _active_tours(session_factory) == {"AVO": True, "CIT": True}


@pytest.mark.asyncio
async def test_sweep_marks_missing_tours_inactive(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.tours_marked_inactive == 1
    assert metrics.departures_marked_inactive == 1
    assert await _active_tours(session_factory) == {"AVO": True, "CIT": False}
    assert await _count(session_factory, Departure, Departure.is_active.is_(False)) == 1

    # Soft delete only
    assert await _count(session_factory, Tour) == 2


@pytest.mark.asyncio
async def test_sweep_marks_dropped_departures_of_kept_tours(brand_worker, catalog_client, session_factory, make_tour):
    departures = [
        {"DepartureCode": "AVO0501", "LandStartDate": "2026-05-01"},
        {"DepartureCode": "AVO0601", "LandStartDate": "2026-06-01"},
    ]
    catalog_client.catalogs["Globus"] = [make_tour("AVO", departures=departures)]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    catalog_client.catalogs["Globus"] = [make_tour("AVO", departures=departures[:1])]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.tours_marked_inactive == 0
    assert metrics.departures_marked_inactive == 1
    async with session_factory() as session:
        rows = await session.execute(select(Departure.departure_code, Departure.is_active))
        assert {row.departure_code: row.is_active for row in rows} == {"AVO0501": True, "AVO0601": False}


@pytest.mark.asyncio
async def test_resurfacing_tour_is_reactivated(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.tours_updated == 2
    assert await _active_tours(session_factory) == {"AVO": True, "CIT": True}


@pytest.mark.asyncio
async def test_force_full_sync_skips_sweep(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions(force_full_sync=True))

    assert metrics.tours_marked_inactive == 0
    assert await _active_tours(session_factory) == {"AVO": True, "CIT": True}


@pytest.mark.asyncio
async def test_sweep_is_scoped_to_the_brand(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    catalog_client.catalogs["Cosmos"] = [make_tour("CZX")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())
    await brand_worker.sync_brand("Cosmos", "CAD", SyncOptions())

    catalog_client.catalogs["Cosmos"] = []
    metrics = await brand_worker.sync_brand("Cosmos", "CAD", SyncOptions())

    assert metrics.tours_marked_inactive == 1
    assert await _active_tours(session_factory) == {"AVO": True, "CZX": False}


@pytest.mark.asyncio
async def test_failing_record_does_not_abort_brand(brand_worker, catalog_client, session_factory, make_tour):
    """The third of five records is malformed; the other four are synced."""
    records = [make_tour(f"T{i}") for i in range(1, 6)]
    del records[2]["TourName"]
    catalog_client.catalogs["Globus"] = records

    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.tours_synced == 4
    assert metrics.error_count == 1
    error = metrics.errors[0]
    assert error.tour_code == "T3"
    assert error.error_type is SyncErrorType.VALIDATION_ERROR
    assert set(await _active_tours(session_factory)) == {"T1", "T2", "T4", "T5"}

    async with session_factory() as session:
        history = (await session.execute(select(SyncHistoryRecord))).scalar_one()
        assert history.status == "completed"
        assert history.errors_count == 1
        assert history.error_message == error.message


@pytest.mark.asyncio
async def test_failing_record_is_not_swept(brand_worker, catalog_client, session_factory, make_tour):
    """A fetched record that fails to sync keeps its stored tour and departures active."""
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("BBB")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    broken = make_tour("BBB", TourName="Renamed")
    broken["Departures"][0]["CabinPricing"][0]["Price"] = -5
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), broken]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.error_count == 1
    assert metrics.errors[0].tour_code == "BBB"
    assert metrics.tours_marked_inactive == 0
    assert metrics.departures_marked_inactive == 0
    assert await _active_tours(session_factory) == {"AVO": True, "BBB": True}
    assert await _count(session_factory, Departure, Departure.is_active.is_(False)) == 0

    # The failed write left the stored content as it was
    async with session_factory() as session:
        name = await session.scalar(select(Tour.name).where(Tour.provider_identifier == "BBB"))
        assert name == "Tour BBB"

    # Once gone from the catalog it is swept as usual
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())
    assert metrics.tours_marked_inactive == 1
    assert await _active_tours(session_factory) == {"AVO": True, "BBB": False}


@pytest.mark.asyncio
async def test_failing_new_record_creates_nothing(brand_worker, catalog_client, session_factory, make_tour):
    broken = make_tour("NEW")
    broken["Departures"][0]["CabinPricing"][0]["Price"] = -5
    catalog_client.catalogs["Globus"] = [broken]

    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.error_count == 1
    assert await _active_tours(session_factory) == {}


@pytest.mark.asyncio
async def test_unexpected_brand_failure_finalizes_history(
    brand_worker, catalog_client, session_factory, make_tour, monkeypatch
):
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]

    async def explode(self, operator_id, run_started_at):
        raise RuntimeError("sweep exploded")

    monkeypatch.setattr(CatalogStore, "mark_stale_tours_inactive", explode)

    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.tours_synced == 1
    assert metrics.error_count == 1
    assert metrics.errors[0].error_type is SyncErrorType.UNKNOWN
    assert metrics.errors[0].message == "sweep exploded"
    assert metrics.completed_at is not None

    async with session_factory() as session:
        history = (await session.execute(select(SyncHistoryRecord))).scalar_one()
        assert history.status == "failed"
        assert history.completed_at is not None
        assert history.error_message == "sweep exploded"


@pytest.mark.asyncio
async def test_error_list_is_capped(brand_worker, catalog_client, make_tour):
    catalog_client.catalogs["Globus"] = [{"TourNumber": f"BAD{i}"} for i in range(MAX_RECORDED_ERRORS + 50)]

    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.error_count == MAX_RECORDED_ERRORS + 50
    assert len(metrics.errors) == MAX_RECORDED_ERRORS
    assert metrics.tours_synced == 0


@pytest.mark.asyncio
async def test_fetch_failure_is_reported_and_skips_sweep(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    catalog_client.catalogs["Globus"] = CatalogFetchError("HTTP 503", status_code=503)
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.tours_synced == 0
    assert metrics.error_count == 1
    assert metrics.errors[0].error_type is SyncErrorType.API_ERROR
    assert await _active_tours(session_factory) == {"AVO": True}

    async with session_factory() as session:
        rows = await session.execute(
            select(SyncHistoryRecord.status).order_by(SyncHistoryRecord.started_at)
        )
        assert [row.status for row in rows] == ["completed", "failed"]


@pytest.mark.asyncio
async def test_unparseable_catalog_is_a_parse_error(brand_worker, catalog_client):
    catalog_client.catalogs["Globus"] = CatalogParseError("not a list")

    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    assert metrics.errors[0].error_type is SyncErrorType.PARSE_ERROR


@pytest.mark.asyncio
async def test_expired_deadline_stops_brand_without_sweep(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions(), ExpiredDeadline())

    assert metrics.deadline_exceeded is True
    assert metrics.tours_synced == 0
    assert metrics.errors[0].error_type is SyncErrorType.DEADLINE_EXCEEDED
    assert metrics.tours_marked_inactive == 0
    assert await _active_tours(session_factory) == {"AVO": True, "CIT": True}


@pytest.mark.asyncio
async def test_dry_run_writes_nothing(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]

    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions(dry_run=True))

    assert metrics.dry_run is True
    assert metrics.tours_created == 2
    assert metrics.departures_created == 2
    assert await _count(session_factory, Tour) == 0
    assert await _count(session_factory, Operator) == 0
    assert await _count(session_factory, SyncHistoryRecord) == 0


@pytest.mark.asyncio
async def test_dry_run_projects_updates_and_sweep(brand_worker, catalog_client, session_factory, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]
    await brand_worker.sync_brand("Globus", "CAD", SyncOptions())

    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("NEW")]
    metrics = await brand_worker.sync_brand("Globus", "CAD", SyncOptions(dry_run=True))

    assert metrics.tours_created == 1
    assert metrics.tours_updated == 1
    assert metrics.departures_updated == 1
    assert metrics.tours_marked_inactive == 1
    assert await _active_tours(session_factory) == {"AVO": True, "CIT": True}
    assert await _count(session_factory, SyncHistoryRecord) == 1


def test_classify_error():
    assert classify_error(CatalogFetchError("down")) is SyncErrorType.API_ERROR
    assert classify_error(CatalogParseError("bad")) is SyncErrorType.PARSE_ERROR
    assert classify_error(ValueError("bad number")) is SyncErrorType.PARSE_ERROR
    assert classify_error(RuntimeError("boom")) is SyncErrorType.UNKNOWN


def test_record_identifier():
    assert record_identifier({"TourNumber": 123}) == "123"
    assert record_identifier({"TourNumber": ""}) is None
    assert record_identifier(["not", "a", "record"]) is None


def test_deadline_without_budget_never_expires():
    assert SyncDeadline(None).expired is False
    assert SyncDeadline(0).expired is False
    assert SyncDeadline(3600).expired is False
