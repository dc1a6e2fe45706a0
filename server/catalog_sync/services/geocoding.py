"""City name to coordinates resolution."""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

import httpx

from ..core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float


class GeocodingResolver(Protocol):
    """
    Resolves city names to coordinates.

    Implementations never raise: an unknown city or a provider failure is
    reported as ``None``.
    """

    async def geocode(self, city: Optional[str]) -> Optional[Coordinates]:
        ...

    async def geocode_batch(self, cities: Iterable[Optional[str]]) -> dict[str, Optional[Coordinates]]:
        ...


def normalize_location_key(city: str) -> str:
    return " ".join(city.lower().split())


class GeocodingUnavailable(Exception):
    """The provider gave no definitive answer (transport error, HTTP error, quota)."""


class GoogleGeocodingResolver:
    """
    Google Geocoding API resolver with a result cache.

    Only definitive answers (``OK`` and ``ZERO_RESULTS``) are cached; a
    transient failure is reported as ``None`` and asked again next time. The
    orchestrator calls ``reset()`` at the start of every run.
    """

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        timeout_seconds: float = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)
        self._cache: dict[str, Optional[Coordinates]] = {}
        if not api_key:
            logger.warning("Geocoding API key not configured, coordinates will be left empty")

    @classmethod
    def from_settings(cls) -> "GoogleGeocodingResolver":
        return cls(api_key=settings.geocoding_api_key, api_url=settings.geocoding_api_url)

    async def close(self) -> None:
        await self.client.aclose()

    def reset(self) -> None:
        """Forget cached answers."""
        self._cache.clear()

    async def geocode(self, city: Optional[str]) -> Optional[Coordinates]:
        if not city or not city.strip() or not self.api_key:
            return None

        key = normalize_location_key(city)
        if key in self._cache:
            return self._cache[key]

        try:
            result = await self._fetch(city)
        except GeocodingUnavailable as e:
            logger.warning("Geocoding unavailable", extra={"city": city, "error": str(e)})
            return None

        self._cache[key] = result
        return result

    async def geocode_batch(self, cities: Iterable[Optional[str]]) -> dict[str, Optional[Coordinates]]:
        """Resolve each distinct city once; keys are the names as given."""
        results: dict[str, Optional[Coordinates]] = {}
        for city in cities:
            if not city or city in results:
                continue
            results[city] = await self.geocode(city)
        return results

    async def _fetch(self, city: str) -> Optional[Coordinates]:
        """
        Look up one city.

        Raises:
            GeocodingUnavailable: If the provider gave no definitive answer
        """
        try:
            response = await self.client.get(self.api_url, params={"address": city, "key": self.api_key})
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GeocodingUnavailable(str(e) or e.__class__.__name__) from e

        status = data.get("status")
        if status == "ZERO_RESULTS":
            return None
        results = data.get("results") or []
        if status != "OK":
            raise GeocodingUnavailable(f"{status}: {data.get('error_message')}")
        if not results:
            return None

        try:
            location = results[0]["geometry"]["location"]
            return Coordinates(latitude=float(location["lat"]), longitude=float(location["lng"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("Geocoding result without coordinates", extra={"city": city})
            return None


class NullGeocodingResolver:
    """Resolver that knows no cities."""

    async def geocode(self, city: Optional[str]) -> Optional[Coordinates]:
        return None

    async def geocode_batch(self, cities: Iterable[Optional[str]]) -> dict[str, Optional[Coordinates]]:
        return {c: None for c in cities if c}


def build_geocoding_resolver() -> GeocodingResolver:
    if settings.geocoding_api_key:
        return GoogleGeocodingResolver.from_settings()
    return NullGeocodingResolver()
