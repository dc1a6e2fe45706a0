"""Client for the external tour catalog provider."""

import asyncio
import logging
import random
from typing import Any, Optional, Protocol

import httpx

from ..core.config import settings
from ..core.exceptions import CatalogFetchError, CatalogParseError
from ..schemas.catalog import CatalogTourContent

logger = logging.getLogger(__name__)

# Provider spelling of the supported pricing currencies
PROVIDER_CURRENCIES = {"CAD": "Canada", "USD": "US"}


class CatalogClient(Protocol):
    """
    Source of brand catalogs.

    ``fetch_brand_tours`` returns the raw record dictionaries of a brand's
    whole catalog; each record is validated individually by the caller so a
    single malformed record cannot fail the brand.
    """

    async def fetch_brand_tours(self, brand: str, currency: str) -> list[dict[str, Any]]:
        ...

    async def fetch_tour_content(
        self, tour_code: str, season: str, brand: str
    ) -> Optional[CatalogTourContent]:
        ...


class HttpCatalogClient:
    """
    HTTP implementation of :class:`CatalogClient`.

    Timeouts, transport errors and 5xx responses are retried with jittered
    backoff up to ``max_attempts``; any other failure raises
    :class:`CatalogFetchError` immediately.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 120,
        max_attempts: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self.max_attempts = max(1, max_attempts)
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    @classmethod
    def from_settings(cls) -> "HttpCatalogClient":
        return cls(
            base_url=settings.catalog_api_base_url,
            api_key=settings.catalog_api_key,
            timeout_seconds=settings.catalog_api_timeout_seconds,
            max_attempts=settings.catalog_api_max_attempts,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def fetch_brand_tours(self, brand: str, currency: str) -> list[dict[str, Any]]:
        """
        Fetch the full catalog of a brand.

        Raises:
            CatalogFetchError: The provider could not be reached or refused.
            CatalogParseError: The response is not a list of records.
        """
        payload = await self._get_json(
            "/tours",
            params={"brand": brand, "currency": PROVIDER_CURRENCIES.get(currency, currency)},
        )

        if isinstance(payload, dict):
            payload = payload.get("tours", payload.get("Tours"))
        if not isinstance(payload, list):
            raise CatalogParseError(f"Catalog for brand {brand} is not a list of tours")

        records = [r for r in payload if isinstance(r, dict)]
        if len(records) != len(payload):
            logger.warning(
                "Dropped non-object catalog entries",
                extra={"brand": brand, "dropped": len(payload) - len(records)}
            )

        logger.info(
            "Fetched brand catalog",
            extra={"brand": brand, "currency": currency, "tours": len(records)}
        )
        return records

    async def fetch_tour_content(
        self, tour_code: str, season: str, brand: str
    ) -> Optional[CatalogTourContent]:
        """Fetch the content-detail document of a tour, ``None`` when absent."""
        try:
            payload = await self._get_json(
                f"/tours/{tour_code}/content",
                params={"season": season, "brand": brand},
            )
        except CatalogFetchError as e:
            if e.status_code == 404:
                return None
            raise

        if not isinstance(payload, dict):
            raise CatalogParseError(f"Content for tour {tour_code} is not an object")
        return CatalogTourContent.model_validate(payload)

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self.client.get(path, params=params)
            except (httpx.TimeoutException, httpx.TransportError) as e:
                if attempt < self.max_attempts:
                    await self._backoff(path, attempt, str(e))
                    continue
                raise CatalogFetchError(
                    f"Catalog provider unavailable for {path}: {e.__class__.__name__}"
                ) from e

            if response.status_code >= 500 and attempt < self.max_attempts:
                await self._backoff(path, attempt, f"HTTP {response.status_code}")
                continue

            if response.status_code >= 400:
                raise CatalogFetchError(
                    f"Catalog provider returned HTTP {response.status_code} for {path}",
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as e:
                raise CatalogParseError(f"Catalog provider returned invalid JSON for {path}") from e

        raise CatalogFetchError(f"Catalog provider unavailable for {path}")

    async def _backoff(self, path: str, attempt: int, reason: str) -> None:
        # 200-800ms jitter, doubled per attempt
        delay = (0.2 + random.random() * 0.6) * (2 ** (attempt - 1))
        logger.warning(
            "Catalog request failed, retrying",
            extra={"path": path, "attempt": attempt, "reason": reason, "delay_ms": int(delay * 1000)}
        )
        await asyncio.sleep(delay)
