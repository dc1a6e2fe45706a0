"""Integration tests for API endpoints."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from catalog_sync.core.config import Settings
from catalog_sync.core.locks import InProcessLock
from catalog_sync.models.tour import Media, Tour
from catalog_sync.services.sync_orchestrator import SyncOrchestrator


async def _tour_id(session_factory, number):
    async with session_factory() as session:
        return await session.scalar(select(Tour.id).where(Tour.provider_identifier == number))


@pytest.mark.asyncio
async def test_sync_requires_api_key(test_client):
    response = await test_client.post("/tour-import/sync", json={})

    assert response.status_code == 401
    data = response.json()
    assert data["status"] == 401
    assert "authentication" in data["title"].lower()


@pytest.mark.asyncio
async def test_sync_rejects_wrong_api_key(test_client, catalog_client):
    response = await test_client.get("/tour-import/sync/status", headers={"X-API-Key": "wrong"})

    assert response.status_code == 401
    assert catalog_client.fetches == []


@pytest.mark.asyncio
async def test_sync_endpoint(test_client, auth_headers, catalog_client, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), make_tour("CIT")]

    response = await test_client.post(
        "/tour-import/sync", json={"brands": ["Globus"], "currency": "USD"}, headers=auth_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "completed"
    assert data["dry_run"] is False
    assert data["total_tours_synced"] == 2
    assert data["total_departures_synced"] == 2
    assert len(data["brand_results"]) == 1
    assert data["brand_results"][0]["brand"] == "Globus"
    assert data["brand_results"][0]["currency"] == "USD"


@pytest.mark.asyncio
async def test_sync_without_body_uses_configured_brands(test_client, auth_headers, catalog_client):
    response = await test_client.post("/tour-import/sync", headers=auth_headers)

    assert response.status_code == 200
    assert [r["brand"] for r in response.json()["brand_results"]] == ["Globus", "Cosmos"]
    assert catalog_client.fetches == [("Globus", "CAD"), ("Cosmos", "CAD")]


@pytest.mark.asyncio
async def test_sync_accepts_camel_case_options(test_client, auth_headers, catalog_client, make_tour, session_factory):
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]

    response = await test_client.post(
        "/tour-import/sync",
        json={"brands": ["Globus"], "dryRun": True, "forceFullSync": True},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["dry_run"] is True
    assert await _tour_id(session_factory, "AVO") is None


@pytest.mark.asyncio
async def test_partial_sync_is_reported_with_200(test_client, auth_headers, catalog_client, make_tour):
    broken = make_tour("BAD")
    del broken["TourName"]
    catalog_client.catalogs["Globus"] = [make_tour("AVO"), broken]

    response = await test_client.post("/tour-import/sync", json={"brands": ["Globus"]}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "partial"
    assert data["total_errors"] == 1
    error = data["brand_results"][0]["errors"][0]
    assert error["tour_code"] == "BAD"
    assert error["error_type"] == "validation_error"


@pytest.mark.asyncio
async def test_sync_rejects_invalid_options(test_client, auth_headers):
    response = await test_client.post(
        "/tour-import/sync", json={"brands": [], "currency": "EUR"}, headers=auth_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_dry_run_endpoint_writes_nothing(test_client, auth_headers, catalog_client, make_tour, session_factory):
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]

    response = await test_client.post("/tour-import/sync/dry-run", json={"brands": ["Globus"]}, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["dry_run"] is True
    assert data["brand_results"][0]["tours_created"] == 1
    assert await _tour_id(session_factory, "AVO") is None


@pytest.mark.asyncio
async def test_sync_outside_primary_environment(test_app, test_client, auth_headers, brand_worker):
    test_app.state.sync_orchestrator = SyncOrchestrator(
        brand_worker, InProcessLock(), app_settings=Settings(environment="staging")
    )

    response = await test_client.post("/tour-import/sync", headers=auth_headers)

    assert response.status_code == 403
    assert response.headers["content-type"].startswith("application/problem+json")
    assert response.json()["code"] == "SYNC_ENVIRONMENT_NOT_PERMITTED"


@pytest.mark.asyncio
async def test_sync_when_lock_is_held(test_client, auth_headers, sync_settings):
    await InProcessLock().try_acquire(sync_settings.sync_lock_key)

    response = await test_client.post("/tour-import/sync", headers=auth_headers)

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "SYNC_LOCK_UNAVAILABLE"
    assert data["retryable"] is True


@pytest.mark.asyncio
async def test_sync_status_endpoint(test_client, auth_headers):
    response = await test_client.get("/tour-import/sync/status", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"in_progress": False}


@pytest.mark.asyncio
async def test_brands_endpoint(test_client, auth_headers):
    response = await test_client.get("/tour-import/brands", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"brands": ["Globus", "Cosmos"], "default_currency": "CAD"}


@pytest.mark.asyncio
async def test_sync_history_endpoint(test_client, auth_headers, catalog_client, make_tour):
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    await test_client.post("/tour-import/sync", headers=auth_headers)

    response = await test_client.get("/tour-import/sync/history?brand=globus", headers=auth_headers)

    assert response.status_code == 200
    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["brand"] == "Globus"
    assert items[0]["status"] == "completed"
    assert items[0]["tours_synced"] == 1

    response = await test_client.get("/tour-import/sync/history?limit=1", headers=auth_headers)
    assert len(response.json()["items"]) == 1

    response = await test_client.get("/tour-import/sync/history?limit=0", headers=auth_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_media_import_endpoint(test_client, auth_headers, catalog_client, media_fetcher, make_tour, session_factory):
    catalog_client.catalogs["Globus"] = [make_tour("AVO")]
    await test_client.post("/tour-import/sync", json={"brands": ["Globus"]}, headers=auth_headers)
    tour_id = await _tour_id(session_factory, "AVO")
    media_fetcher.failing.add("https://cdn.example.com/missing.jpg")

    response = await test_client.post(
        f"/tour-import/tours/{tour_id}/media/import",
        json={
            "items": [
                {"url": "https://cdn.example.com/1.jpg", "caption": "Colosseum"},
                {"url": "https://cdn.example.com/missing.jpg"},
                {"url": "https://cdn.example.com/1.jpg"},
                {"url": "https://cdn.example.com/avo.pdf", "media_type": "brochure"},
                # Synthesized by the sync
                {"url": "https://media.example.com/vacation/AVO.jpg"},
            ]
        },
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert [m["url"] for m in data["successful"]] == [
        "https://cdn.example.com/1.jpg",
        "https://cdn.example.com/avo.pdf",
    ]
    assert data["successful"][1]["media_type"] == "brochure"
    assert [f["url"] for f in data["failed"]] == ["https://cdn.example.com/missing.jpg"]
    assert data["skipped"] == 2

    async with session_factory() as session:
        rows = (await session.execute(
            select(Media.url, Media.sort_order).where(Media.tour_id == tour_id)
        )).all()
    sort_orders = {row.url: row.sort_order for row in rows}
    assert len(sort_orders) == 4
    assert {sort_orders["https://cdn.example.com/1.jpg"], sort_orders["https://cdn.example.com/avo.pdf"]} == {2, 3}


@pytest.mark.asyncio
async def test_media_import_unknown_tour(test_client, auth_headers, media_fetcher):
    response = await test_client.post(
        f"/tour-import/tours/{uuid4()}/media/import",
        json={"items": [{"url": "https://cdn.example.com/1.jpg"}]},
        headers=auth_headers,
    )

    assert response.status_code == 404
    assert response.json()["resource_type"] == "tour"
    assert media_fetcher.probes == []


@pytest.mark.asyncio
async def test_media_import_rejects_empty_batch(test_client, auth_headers):
    response = await test_client.post(
        f"/tour-import/tours/{uuid4()}/media/import", json={"items": []}, headers=auth_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_health_endpoint(test_client):
    response = await test_client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "tour-catalog-sync"


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client, auth_headers, catalog_client):
    await test_client.post("/tour-import/sync", json={"brands": ["Globus"]}, headers=auth_headers)

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert "tour_sync_runs_total" in response.text


@pytest.mark.asyncio
async def test_openapi_documents_problem_responses(test_client):
    response = await test_client.get("/openapi.json")

    assert response.status_code == 200
    schema = response.json()
    assert "Problem" in schema["components"]["schemas"]
    sync_responses = schema["paths"]["/tour-import/sync"]["post"]["responses"]
    assert {"401", "403", "409"} <= set(sync_responses)
