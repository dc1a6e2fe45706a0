"""Sync run request, metrics and result schemas."""

from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

# Bound on the per-brand error list; the total is still counted
MAX_RECORDED_ERRORS = 100

Currency = Literal["CAD", "USD"]


class SyncErrorType(str, Enum):
    """Classification of a recorded sync error."""
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    DB_ERROR = "db_error"
    API_ERROR = "api_error"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNKNOWN = "unknown"


class SyncRunStatus(str, Enum):
    """Overall outcome of a sync run."""
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncOptions(BaseModel):
    """
    Options of a sync run.

    Field names are snake_case; the camelCase spellings used by existing
    callers (``forceFullSync``, ``dryRun``) are accepted as well.
    """

    brands: Optional[list[str]] = Field(
        None, min_length=1, description="Brands to sync, defaults to the configured brand list"
    )
    currency: Optional[Currency] = Field(
        None, description="Pricing currency, defaults to the configured currency"
    )
    force_full_sync: bool = Field(
        False,
        validation_alias=AliasChoices("force_full_sync", "forceFullSync"),
        description="Skip the staleness sweep",
    )
    dry_run: bool = Field(
        False,
        validation_alias=AliasChoices("dry_run", "dryRun"),
        description="Fetch and classify without writing",
    )

    @field_validator("brands")
    @classmethod
    def strip_brands(cls, v):
        if v is None:
            return v
        brands = [b.strip() for b in v if b and b.strip()]
        if not brands:
            raise ValueError("brands must contain at least one non-empty name")
        return brands


class SyncError(BaseModel):
    """One recorded failure, tagged with the record it belongs to."""

    tour_code: Optional[str] = Field(None, description="Natural identifier of the failing record")
    error_type: SyncErrorType = Field(..., description="Error classification")
    message: str = Field(..., description="Error message")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncMetrics(BaseModel):
    """Per-brand outcome of a sync run."""

    brand: str
    currency: str
    dry_run: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None
    duration_ms: int = 0

    tours_fetched: int = 0
    tours_synced: int = 0
    tours_created: int = 0
    tours_updated: int = 0
    tours_marked_inactive: int = 0
    departures_synced: int = 0
    departures_created: int = 0
    departures_updated: int = 0
    departures_marked_inactive: int = 0
    itinerary_days_synced: int = 0
    hotels_synced: int = 0
    media_synced: int = 0
    inclusions_synced: int = 0

    errors: list[SyncError] = Field(default_factory=list)
    error_count: int = 0
    deadline_exceeded: bool = False

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def record_error(
        self,
        message: str,
        error_type: SyncErrorType = SyncErrorType.UNKNOWN,
        tour_code: Optional[str] = None,
    ) -> None:
        """Count an error, keeping at most MAX_RECORDED_ERRORS entries."""
        self.error_count += 1
        if len(self.errors) < MAX_RECORDED_ERRORS:
            self.errors.append(
                SyncError(tour_code=tour_code, error_type=error_type, message=message)
            )

    def finish(self) -> None:
        self.completed_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)


class SyncResult(BaseModel):
    """Aggregate outcome of a sync run across brands."""

    status: SyncRunStatus
    dry_run: bool = False
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    brand_results: list[SyncMetrics] = Field(default_factory=list)
    total_tours_synced: int = 0
    total_departures_synced: int = 0
    total_errors: int = 0


class SyncStatusResponse(BaseModel):
    """Single-flight state of the sync engine."""

    in_progress: bool = Field(..., description="Whether a sync run is executing in this process")


class BrandsResponse(BaseModel):
    """Brands synced when a request does not name any."""

    brands: list[str]
    default_currency: str


class SyncHistoryEntry(BaseModel):
    """A persisted per-brand sync history row."""

    id: str
    provider: str
    brand: Optional[str] = None
    currency: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    tours_synced: int
    departures_synced: int
    errors_count: int
    error_message: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def uuid_to_str(cls, v):
        return str(v)

    class Config:
        from_attributes = True


class SyncHistoryResponse(BaseModel):
    items: list[SyncHistoryEntry]
