"""Test configuration and fixtures."""

import asyncio
import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("ENABLE_SCHEDULED_TOUR_SYNC", "false")

import pytest
import pytest_asyncio
from httpx import AsyncClient

from catalog_sync.core.config import Settings
from catalog_sync.core.database import Base, build_engine, build_session_factory
from catalog_sync.core.dependencies import get_db
from catalog_sync.core.exceptions import CatalogFetchError
from catalog_sync.core.locks import InProcessLock
from catalog_sync.models import *  # noqa: F403 - Import all models
from catalog_sync.services.brand_sync import BrandSyncWorker
from catalog_sync.services.geocoding import Coordinates
from catalog_sync.services.sync_orchestrator import SyncOrchestrator

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TEST_API_KEY = "test-internal-key"
MEDIA_BASE_URL = "https://media.example.com"


class FakeCatalogClient:
    """In-memory catalog keyed by brand; a stored exception is raised on fetch."""

    def __init__(self):
        self.catalogs: dict = {}
        self.contents: dict = {}
        self.fetches: list[tuple[str, str]] = []
        # When set, fetches wait for it (used to hold a run open)
        self.gate: asyncio.Event | None = None
        self.fetch_started = asyncio.Event()

    async def fetch_brand_tours(self, brand, currency):
        self.fetches.append((brand, currency))
        self.fetch_started.set()
        if self.gate is not None:
            await self.gate.wait()
        catalog = self.catalogs.get(brand, [])
        if isinstance(catalog, Exception):
            raise catalog
        return [dict(record) for record in catalog]

    async def fetch_tour_content(self, tour_code, season, brand):
        content = self.contents.get(tour_code)
        if isinstance(content, Exception):
            raise content
        return content


class FakeGeocoder:
    """Resolves a fixed set of cities and counts lookups per city."""

    def __init__(self, known: dict | None = None):
        self.known = known or {
            "Rome": Coordinates(41.9028, 12.4964),
            "Florence": Coordinates(43.7696, 11.2558),
            "Milan": Coordinates(45.4642, 9.19),
        }
        self.lookups: list[str] = []

    async def geocode(self, city):
        if not city:
            return None
        self.lookups.append(city)
        return self.known.get(city)

    async def geocode_batch(self, cities):
        results = {}
        for city in cities:
            if city and city not in results:
                results[city] = await self.geocode(city)
        return results


class FakeMediaFetcher:
    """Probe double that fails for chosen URLs and tracks concurrency."""

    def __init__(self, failing: set | None = None, delay: float = 0.01):
        self.failing = failing or set()
        self.delay = delay
        self.probes: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def probe(self, url):
        self.probes.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if url in self.failing:
                raise CatalogFetchError(f"HTTP 404 for {url}", status_code=404)
        finally:
            self.in_flight -= 1


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = build_engine(TEST_DATABASE_URL)

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine."""
    return build_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def release_in_process_locks():
    """In-process lock ownership is class-level; start every test unlocked."""
    InProcessLock._held.clear()
    yield
    InProcessLock._held.clear()


@pytest.fixture
def catalog_client():
    return FakeCatalogClient()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def media_fetcher():
    return FakeMediaFetcher()


@pytest.fixture
def sync_settings():
    """Settings of a primary sync environment with no run deadline."""
    return Settings(
        environment="production",
        sync_primary_environment="production",
        sync_brands=["Globus", "Cosmos"],
        sync_default_currency="CAD",
        sync_run_deadline_seconds=0,
        internal_api_key=TEST_API_KEY,
    )


@pytest.fixture
def brand_worker(session_factory, catalog_client, geocoder):
    """Brand sync worker wired to the fakes and the test database."""
    return BrandSyncWorker(
        session_factory,
        catalog_client,
        geocoder,
        provider="globus",
        media_base_url=MEDIA_BASE_URL,
        fetch_content=False,
    )


@pytest.fixture
def orchestrator(brand_worker, sync_settings):
    return SyncOrchestrator(brand_worker, InProcessLock(), app_settings=sync_settings)


@pytest.fixture
def make_tour():
    """Factory for raw catalog records as the provider delivers them."""

    def _make_tour(number="AVO", season="2026", departures=None, **overrides):
        record = {
            "TourNumber": number,
            "TourCode": number,
            "TourName": f"Tour {number}",
            "Season": season,
            "Days": 10,
            "Nights": 9,
            "StartCity": "Rome",
            "EndCity": "Milan",
            "Itinerary": [
                {"DayNumber": 1, "Title": "Arrive in Rome", "OvernightCity": "Rome"},
                {"DayNumber": 2, "Title": "Rome to Florence", "OvernightCity": "Florence"},
                {"DayNumber": 3, "Title": "Florence to Milan", "OvernightCity": "Milan"},
            ],
            "Hotels": [{"DayNumber": 1, "HotelName": "Hotel Quirinale", "City": "Rome"}],
            "Highlights": ["Vatican Museums"],
            "IncludedFeatures": [{"Category": "Meals", "Description": "Daily breakfast"}],
            "ExcludedFeatures": ["Airfare"],
            "Departures": departures if departures is not None else [
                {
                    "DepartureCode": f"{number}0501",
                    "LandStartDate": "2026-05-01T00:00:00",
                    "LandEndDate": "2026-05-10T00:00:00",
                    "Status": "Available",
                    "StartCity": "Rome",
                    "EndCity": "Milan",
                    "CabinPricing": [
                        {"CabinCategory": "Standard", "Price": 2499.00},
                        {"CabinCategory": "Single", "Price": 1999.50, "Discount": 100},
                    ],
                }
            ],
        }
        record.update(overrides)
        return record

    return _make_tour


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory, orchestrator, media_fetcher):
    """Create a test FastAPI application without the lifespan."""
    from catalog_sync.main import create_app

    app = create_app(use_lifespan=False)
    app.state.sync_orchestrator = orchestrator
    app.state.media_fetcher = media_fetcher

    # Override database dependency
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    from httpx import ASGITransport
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers():
    return {"X-API-Key": TEST_API_KEY}
