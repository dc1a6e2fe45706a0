"""Natural-key reconciliation of one catalog tour into the store."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from uuid import UUID

from ..core.config import settings
from ..models.departure import CabinPricing, Departure
from ..models.tour import Hotel, Inclusion, InclusionType, ItineraryDay, Media, MediaType, Tour
from ..schemas.catalog import CatalogCabinPrice, CatalogTour
from .catalog_client import CatalogClient
from .catalog_store import CatalogStore
from .geocoding import Coordinates, GeocodingResolver
from .tour_content import ParsedTourContent, parse_tour_content

logger = logging.getLogger(__name__)


def to_cents(amount: Optional[float]) -> int:
    """Minor units of a decimal amount, rounding half up."""
    if amount is None:
        return 0
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def derive_base_price_cents(cabins: Iterable[CatalogCabinPrice]) -> Optional[int]:
    """Lowest cabin price in minor units, ``None`` when there is no cabin pricing."""
    prices = [to_cents(c.price) for c in cabins]
    return min(prices) if prices else None


def default_season(now: Optional[datetime] = None) -> str:
    return str((now or datetime.now(timezone.utc)).year)


def resolve_start_city(record: CatalogTour) -> Optional[str]:
    """Record start city, else the first departure's, else day one's overnight city."""
    if record.start_city:
        return record.start_city
    if record.departures and record.departures[0].start_city:
        return record.departures[0].start_city
    if record.itinerary:
        return min(record.itinerary, key=lambda d: d.day_number).overnight_city
    return None


def resolve_end_city(record: CatalogTour) -> Optional[str]:
    """Record end city, else the first departure's, else the last day's overnight city."""
    if record.end_city:
        return record.end_city
    if record.departures and record.departures[0].end_city:
        return record.departures[0].end_city
    if record.itinerary:
        return max(record.itinerary, key=lambda d: d.day_number).overnight_city
    return None


def build_media(record: CatalogTour, brand_name: str, season: str, media_base_url: str) -> list[Media]:
    """
    Media rows of a tour.

    Explicit URLs win. Without explicit images a vacation image is synthesized
    at ``{base}/vacation/{tour_code}.jpg``; without an explicit map one is
    synthesized at ``{base}/maps/{BrandName}/{season}/{tour_code}.jpg``.
    """
    base = media_base_url.rstrip("/")
    tour_code = record.tour_code or record.tour_number
    media: list[Media] = []

    def add(media_type: MediaType, url: str, caption: Optional[str] = None) -> None:
        media.append(
            Media(media_type=media_type.value, url=url, caption=caption, sort_order=len(media))
        )

    if record.images:
        for image in record.images:
            add(image.media_type, image.url, image.caption)
    else:
        add(MediaType.IMAGE, f"{base}/vacation/{tour_code}.jpg", record.tour_name)

    if record.brochure_url:
        add(MediaType.BROCHURE, record.brochure_url)

    if record.map_url:
        add(MediaType.MAP, record.map_url)
    else:
        add(MediaType.MAP, f"{base}/maps/{brand_name.capitalize()}/{season}/{tour_code}.jpg")

    if record.video_url:
        add(MediaType.VIDEO, record.video_url)

    return media


def build_inclusions(record: CatalogTour, content: Optional[ParsedTourContent] = None) -> list[Inclusion]:
    """Highlights, then included features, then excluded features, then content-derived lines."""
    entries: list[tuple[InclusionType, Optional[str], str]] = []
    entries.extend((InclusionType.HIGHLIGHT, None, h) for h in record.highlights)
    entries.extend((InclusionType.INCLUDED, f.category, f.description) for f in record.included_features)
    entries.extend((InclusionType.EXCLUDED, None, e) for e in record.excluded_features)
    if content is not None:
        entries.extend((i.inclusion_type, i.category, i.description) for i in content.inclusions)

    inclusions: list[Inclusion] = []
    seen: set[tuple[InclusionType, str]] = set()
    for inclusion_type, category, description in entries:
        description = (description or "").strip()
        key = (inclusion_type, description.lower())
        if not description or key in seen:
            continue
        seen.add(key)
        inclusions.append(
            Inclusion(
                inclusion_type=inclusion_type.value,
                category=category,
                description=description,
                sort_order=len(inclusions),
            )
        )
    return inclusions


@dataclass
class TourUpsertOutcome:
    """Row counts of one tour upsert, merged into the brand metrics after commit."""

    tour_id: Optional[UUID] = None
    tour_created: bool = False
    departures_created: int = 0
    departures_updated: int = 0
    itinerary_days: int = 0
    hotels: int = 0
    media: int = 0
    inclusions: int = 0

    @property
    def departures_synced(self) -> int:
        return self.departures_created + self.departures_updated


class TourUpserter:
    """
    Creates or updates a tour, its departures and every owned child collection.

    Nothing is committed here; the caller commits once the whole record has
    been written, or rolls back if any part of it failed.
    """

    def __init__(
        self,
        store: CatalogStore,
        geocoder: GeocodingResolver,
        catalog_client: Optional[CatalogClient] = None,
        provider: Optional[str] = None,
        media_base_url: Optional[str] = None,
        fetch_content: Optional[bool] = None,
    ):
        self.store = store
        self.db = store.db
        self.geocoder = geocoder
        self.catalog_client = catalog_client
        self.provider = provider or settings.catalog_provider
        self.media_base_url = media_base_url or settings.catalog_media_base_url
        self.fetch_content = settings.sync_fetch_tour_content if fetch_content is None else fetch_content

    async def upsert_tour(
        self,
        record: CatalogTour,
        operator_id: UUID,
        operator_code: str,
        currency: str,
        seen_at: Optional[datetime] = None,
    ) -> TourUpsertOutcome:
        seen_at = seen_at or datetime.now(timezone.utc)
        season = record.season or default_season(seen_at)
        content = await self._load_content(record, season, operator_code)

        start_city = resolve_start_city(record)
        end_city = resolve_end_city(record)
        start_geo = await self.geocoder.geocode(start_city)
        end_geo = start_geo if end_city == start_city else await self.geocoder.geocode(end_city)

        tour = await self.store.find_tour(self.provider, record.tour_number, season)
        outcome = TourUpsertOutcome(tour_created=tour is None)
        if tour is None:
            tour = Tour(provider=self.provider, provider_identifier=record.tour_number, season=season)
            self.db.add(tour)

        tour.operator_id = operator_id
        tour.operator_code = operator_code
        tour.name = record.tour_name
        tour.days = record.days
        tour.nights = record.nights
        tour.description = record.description or content.overview
        tour.start_city = start_city
        tour.start_city_lat, tour.start_city_lng = _lat_lng(start_geo)
        tour.end_city = end_city
        tour.end_city_lat, tour.end_city_lng = _lat_lng(end_geo)
        tour.is_active = True
        tour.last_seen_at = seen_at
        await self.db.flush()
        outcome.tour_id = tour.id

        outcome.itinerary_days = await self.store.replace_children(
            tour.id, ItineraryDay, await self._build_itinerary(record, content)
        )
        outcome.hotels = await self.store.replace_children(
            tour.id,
            Hotel,
            [
                Hotel(day_number=h.day_number, hotel_name=h.hotel_name, city=h.city, description=h.description)
                for h in record.hotels
            ],
        )
        outcome.media = await self.store.replace_children(
            tour.id, Media, build_media(record, operator_code, season, self.media_base_url)
        )
        outcome.inclusions = await self.store.replace_children(
            tour.id, Inclusion, build_inclusions(record, content)
        )

        await self._upsert_departures(tour, record, season, currency, seen_at, outcome)

        logger.debug(
            "Tour upserted",
            extra={
                "tour_id": str(tour.id),
                "tour_number": record.tour_number,
                "season": season,
                "created": outcome.tour_created,
                "departures": outcome.departures_synced,
            }
        )
        return outcome

    async def preview_tour(self, record: CatalogTour) -> TourUpsertOutcome:
        """Classify a record as create or update without writing anything."""
        season = record.season or default_season()
        tour = await self.store.find_tour(self.provider, record.tour_number, season)
        if tour is None:
            return TourUpsertOutcome(tour_created=True, departures_created=len(record.departures))

        outcome = TourUpsertOutcome(tour_id=tour.id)
        for dep in record.departures:
            existing = await self.store.find_departure(
                tour.id, dep.departure_code, dep.season or season, dep.land_start_date
            )
            if existing is None:
                outcome.departures_created += 1
            else:
                outcome.departures_updated += 1
        return outcome

    async def _load_content(self, record: CatalogTour, season: str, brand: str) -> ParsedTourContent:
        if not self.fetch_content or self.catalog_client is None:
            return ParsedTourContent()
        tour_code = record.tour_code or record.tour_number
        try:
            payload = await self.catalog_client.fetch_tour_content(tour_code, season, brand)
            return parse_tour_content(payload)
        except Exception as e:
            logger.warning(
                "Tour content unavailable, continuing without it",
                extra={"tour_number": record.tour_number, "season": season, "error": str(e)}
            )
            return ParsedTourContent()

    async def _build_itinerary(self, record: CatalogTour, content: ParsedTourContent) -> list[ItineraryDay]:
        days: dict[int, ItineraryDay] = {}
        for day in record.itinerary:
            # First occurrence of a day number wins
            if day.day_number in days:
                continue
            days[day.day_number] = ItineraryDay(
                day_number=day.day_number,
                title=day.title,
                description=day.description,
                overnight_city=day.overnight_city,
            )

        for number, parsed in content.days.items():
            row = days.get(number)
            if row is None:
                days[number] = ItineraryDay(
                    day_number=number,
                    title=parsed.title,
                    description=parsed.description,
                    overnight_city=parsed.city,
                )
                continue
            row.title = row.title or parsed.title
            row.description = row.description or parsed.description
            row.overnight_city = row.overnight_city or parsed.city

        rows = [days[n] for n in sorted(days)]
        geocoded = await self.geocoder.geocode_batch({r.overnight_city for r in rows if r.overnight_city})
        for row in rows:
            row.overnight_city_lat, row.overnight_city_lng = _lat_lng(geocoded.get(row.overnight_city))
        return rows

    async def _upsert_departures(
        self,
        tour: Tour,
        record: CatalogTour,
        season: str,
        currency: str,
        seen_at: datetime,
        outcome: TourUpsertOutcome,
    ) -> None:
        cities = {c for d in record.departures for c in (d.start_city, d.end_city) if c}
        geocoded = await self.geocoder.geocode_batch(cities) if cities else {}

        for dep in record.departures:
            dep_season = dep.season or season
            departure = await self.store.find_departure(
                tour.id, dep.departure_code, dep_season, dep.land_start_date
            )
            if departure is None:
                departure = Departure(
                    tour_id=tour.id,
                    departure_code=dep.departure_code,
                    season=dep_season,
                    land_start_date=dep.land_start_date,
                )
                self.db.add(departure)
                outcome.departures_created += 1
            else:
                outcome.departures_updated += 1

            departure.land_end_date = dep.land_end_date
            departure.status = dep.status
            departure.guaranteed_departure = dep.guaranteed_departure
            departure.ship_name = dep.ship_name
            departure.base_price_cents = derive_base_price_cents(dep.cabin_pricing)
            departure.currency = currency
            departure.start_city = dep.start_city
            departure.start_city_lat, departure.start_city_lng = _lat_lng(geocoded.get(dep.start_city))
            departure.end_city = dep.end_city
            departure.end_city_lat, departure.end_city_lng = _lat_lng(geocoded.get(dep.end_city))
            departure.is_active = True
            departure.last_seen_at = seen_at
            await self.db.flush()

            await self.store.replace_cabin_pricing(
                departure.id,
                [
                    CabinPricing(
                        cabin_category=cabin.cabin_category,
                        price_cents=to_cents(cabin.price),
                        discount_cents=to_cents(cabin.discount),
                        currency=currency,
                    )
                    for cabin in dep.cabin_pricing
                ],
            )


def _lat_lng(coordinates: Optional[Coordinates]) -> tuple[Optional[float], Optional[float]]:
    if coordinates is None:
        return None, None
    return coordinates.latitude, coordinates.longitude
