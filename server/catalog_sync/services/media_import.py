"""Bounded-concurrency batch import, used to attach media to tours."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol, Sequence, TypeVar
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import NotFoundError
from ..core.observability import metrics_collector
from ..models.tour import Media
from ..schemas.media import (
    BatchImportResult,
    FailedImport,
    ImportedMedia,
    ImportItemResult,
    MediaImportItem,
)
from .catalog_store import CatalogStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrentBatchImporter:
    """
    Runs an async worker over a list of items with at most ``concurrency``
    items in flight.

    Workers pull the next index from a shared cursor; results are stored by
    index, so the output order matches the input order regardless of
    completion order. A worker exception becomes a ``failed`` result for that
    item only.
    """

    @staticmethod
    async def import_all(
        items: Sequence[T],
        worker: Callable[[T], Awaitable[object]],
        concurrency: int,
        key: Callable[[T], str] = str,
    ) -> list[ImportItemResult]:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        results: list[Optional[ImportItemResult]] = [None] * len(items)
        cursor = 0

        async def run() -> None:
            nonlocal cursor
            while cursor < len(items):
                # Claim the index before the first await
                index = cursor
                cursor += 1
                item = items[index]
                try:
                    value = await worker(item)
                except Exception as e:
                    results[index] = ImportItemResult(
                        status="failed", key=key(item), error=str(e) or e.__class__.__name__
                    )
                else:
                    results[index] = ImportItemResult(status="success", key=key(item), value=value)

        await asyncio.gather(*(run() for _ in range(min(concurrency, len(items)))))
        return [r for r in results if r is not None]


class MediaFetcher(Protocol):
    """Checks that a media URL is reachable; raises when it is not."""

    async def probe(self, url: str) -> None:
        ...


class HttpMediaFetcher:
    """Probes media URLs with ``HEAD``, falling back to ``GET`` where ``HEAD`` is refused."""

    def __init__(self, timeout_seconds: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds or settings.media_import_timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )

    async def probe(self, url: str) -> None:
        response = await self.client.head(url)
        if response.status_code == 405:
            response = await self.client.get(url)
        response.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()


class MediaBatchImporter:
    """
    Attaches a batch of media URLs to a tour.

    URLs are deduplicated within the batch (first occurrence wins) and against
    media already stored for the tour; the rest are probed concurrently and
    stored one at a time, since the session cannot be shared by concurrent
    writers.
    """

    def __init__(self, db: AsyncSession, fetcher: MediaFetcher, concurrency: Optional[int] = None):
        self.db = db
        self.store = CatalogStore(db)
        self.fetcher = fetcher
        self.concurrency = concurrency or settings.media_import_concurrency

    async def import_media(self, tour_id: UUID, items: Sequence[MediaImportItem]) -> BatchImportResult:
        """
        Import media for a tour.

        Raises:
            NotFoundError: If the tour does not exist
        """
        if await self.store.get_tour(tour_id) is None:
            raise NotFoundError(resource_type="tour", resource_id=str(tour_id))

        existing = await self.store.list_media_urls(tour_id)
        pending: list[MediaImportItem] = []
        seen: set[str] = set()
        for item in items:
            if item.url in seen or item.url in existing:
                continue
            seen.add(item.url)
            pending.append(item)
        skipped = len(items) - len(pending)

        sort_order = await self.store.next_media_sort_order(tour_id)
        write_lock = asyncio.Lock()

        async def import_one(item: MediaImportItem) -> ImportedMedia:
            nonlocal sort_order
            await self.fetcher.probe(item.url)
            async with write_lock:
                media = Media(
                    tour_id=tour_id,
                    media_type=item.media_type.value,
                    url=item.url,
                    caption=item.caption,
                    sort_order=sort_order,
                )
                self.db.add(media)
                try:
                    await self.db.commit()
                except Exception:
                    await self.db.rollback()
                    raise
                sort_order += 1
                return ImportedMedia(media_id=str(media.id), url=item.url, media_type=item.media_type)

        results = await ConcurrentBatchImporter.import_all(
            pending, import_one, self.concurrency, key=lambda i: i.url
        )

        outcome = BatchImportResult(
            successful=[r.value for r in results if r.status == "success"],
            failed=[FailedImport(url=r.key, error=r.error or "unknown error") for r in results if r.status == "failed"],
            skipped=skipped,
        )
        metrics_collector.record_media_import(len(outcome.successful), len(outcome.failed), skipped)
        logger.info(
            "Media batch imported",
            extra={
                "tour_id": str(tour_id),
                "requested": len(items),
                "successful": len(outcome.successful),
                "failed": len(outcome.failed),
                "skipped": skipped,
            }
        )
        return outcome
