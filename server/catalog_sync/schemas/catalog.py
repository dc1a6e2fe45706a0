"""Normalized catalog records as delivered by the tour provider."""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.tour import MediaType


class CatalogModel(BaseModel):
    """Base for provider records: PascalCase on the wire, snake_case in code."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


class CatalogCabinPrice(CatalogModel):
    """One cabin category price of a departure."""

    cabin_category: str | None = Field(None, alias="CabinCategory")
    price: float = Field(..., ge=0, alias="Price")
    discount: float | None = Field(None, ge=0, alias="Discount")
    currency: str | None = Field(None, alias="Currency")


class CatalogDeparture(CatalogModel):
    """A dated departure with its cabin pricing."""

    departure_code: str = Field(..., min_length=1, alias="DepartureCode")
    season: str | None = Field(None, alias="Season")
    land_start_date: date | None = Field(None, alias="LandStartDate")
    land_end_date: date | None = Field(None, alias="LandEndDate")
    status: str | None = Field(None, alias="Status")
    guaranteed_departure: bool = Field(False, alias="GuaranteedDeparture")
    ship_name: str | None = Field(None, alias="ShipName")
    start_city: str | None = Field(None, alias="StartCity")
    end_city: str | None = Field(None, alias="EndCity")
    cabin_pricing: list[CatalogCabinPrice] = Field(default_factory=list, alias="CabinPricing")

    @field_validator("land_start_date", "land_end_date", mode="before")
    @classmethod
    def date_part_only(cls, v):
        """Accept full ISO timestamps and keep only the calendar date."""
        v = _blank_to_none(v)
        if isinstance(v, str) and len(v) > 10:
            return v[:10]
        return v

    @field_validator("departure_code", "season", mode="before")
    @classmethod
    def stringify(cls, v):
        v = _blank_to_none(v)
        return str(v) if v is not None else None

    @field_validator("guaranteed_departure", mode="before")
    @classmethod
    def none_is_false(cls, v):
        return False if v is None else v

    @field_validator("cabin_pricing", mode="before")
    @classmethod
    def null_is_empty(cls, v):
        return [] if v is None else v


class CatalogItineraryDay(CatalogModel):
    day_number: int = Field(..., ge=0, alias="DayNumber")
    title: str | None = Field(None, alias="Title")
    description: str | None = Field(None, alias="Description")
    overnight_city: str | None = Field(None, alias="OvernightCity")


class CatalogHotel(CatalogModel):
    day_number: int | None = Field(None, alias="DayNumber")
    hotel_name: str = Field(..., min_length=1, alias="HotelName")
    city: str | None = Field(None, alias="City")
    description: str | None = Field(None, alias="Description")


class CatalogImage(CatalogModel):
    url: str = Field(..., min_length=1, alias="Url")
    caption: str | None = Field(None, alias="Caption")
    media_type: MediaType = Field(MediaType.IMAGE, alias="Type")

    @field_validator("media_type", mode="before")
    @classmethod
    def default_type(cls, v):
        return MediaType.IMAGE if _blank_to_none(v) is None else v


class CatalogFeature(CatalogModel):
    category: str | None = Field(None, alias="Category")
    description: str = Field(..., min_length=1, alias="Description")


class CatalogTour(CatalogModel):
    """
    One tour of a brand catalog.

    Only ``TourNumber`` and ``TourName`` are required; everything else may be
    absent and is then treated as an empty collection or unknown value.
    """

    tour_number: str = Field(..., min_length=1, alias="TourNumber")
    tour_code: str | None = Field(None, alias="TourCode")
    tour_name: str = Field(..., min_length=1, alias="TourName")
    season: str | None = Field(None, alias="Season")
    days: int | None = Field(None, ge=0, alias="Days")
    nights: int | None = Field(None, ge=0, alias="Nights")
    description: str | None = Field(None, alias="Description")
    start_city: str | None = Field(None, alias="StartCity")
    end_city: str | None = Field(None, alias="EndCity")
    travel_styles: list[str] = Field(default_factory=list, alias="TravelStyles")
    regions: list[str] = Field(default_factory=list, alias="Regions")
    countries: list[str] = Field(default_factory=list, alias="Countries")

    itinerary: list[CatalogItineraryDay] = Field(default_factory=list, alias="Itinerary")
    hotels: list[CatalogHotel] = Field(default_factory=list, alias="Hotels")

    images: list[CatalogImage] = Field(default_factory=list, alias="Images")
    brochure_url: str | None = Field(None, alias="BrochureUrl")
    map_url: str | None = Field(None, alias="MapUrl")
    video_url: str | None = Field(None, alias="VideoUrl")

    highlights: list[str] = Field(default_factory=list, alias="Highlights")
    included_features: list[CatalogFeature] = Field(default_factory=list, alias="IncludedFeatures")
    excluded_features: list[str] = Field(default_factory=list, alias="ExcludedFeatures")

    departures: list[CatalogDeparture] = Field(default_factory=list, alias="Departures")

    @field_validator("tour_number", "tour_code", "season", mode="before")
    @classmethod
    def stringify(cls, v):
        v = _blank_to_none(v)
        return str(v).strip() if v is not None else None

    @field_validator(
        "start_city", "end_city", "brochure_url", "map_url", "video_url", "description",
        mode="before",
    )
    @classmethod
    def blank_is_missing(cls, v):
        return _blank_to_none(v)

    @field_validator(
        "travel_styles", "regions", "countries", "itinerary", "hotels", "images",
        "highlights", "included_features", "excluded_features", "departures",
        mode="before",
    )
    @classmethod
    def null_is_empty(cls, v):
        return [] if v is None else v


class CatalogContentItem(CatalogModel):
    """Tour-level content block of the content-detail document."""

    content_type: str = Field(..., alias="ContentType")
    content: str = Field("", alias="Content")
    category: str | None = Field(None, alias="Category")
    format_type: str | None = Field(None, alias="FormatType")


class CatalogDayContentItem(CatalogModel):
    """Day-level content block of the content-detail document."""

    content_type: str = Field(..., alias="ContentType")
    start_day_num: int = Field(..., ge=0, alias="StartDayNum")
    content: str = Field("", alias="Content")
    use_previous_day: bool = Field(False, alias="UsePreviousDay")


class CatalogTourContent(CatalogModel):
    """Per-tour content-detail document (overview, day narratives, inclusions)."""

    tour_media: list[CatalogContentItem] = Field(default_factory=list, alias="tourMedia")
    day_media: list[CatalogDayContentItem] = Field(default_factory=list, alias="dayMedia")
