"""Media batch import schemas."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from ..models.tour import MediaType

MAX_MEDIA_BATCH_SIZE = 50


class MediaImportItem(BaseModel):
    """One media URL to attach to a tour."""

    url: str = Field(..., min_length=1, max_length=2048, description="Media URL to probe and store")
    caption: Optional[str] = Field(None, max_length=500, description="Optional caption")
    media_type: MediaType = Field(MediaType.IMAGE, description="Media type")


class MediaImportRequest(BaseModel):
    """Request schema for a media batch import."""

    items: list[MediaImportItem] = Field(
        ..., min_length=1, max_length=MAX_MEDIA_BATCH_SIZE, description="Media to import"
    )


class ImportedMedia(BaseModel):
    """A media item stored by a batch import."""

    media_id: str
    url: str
    media_type: MediaType


class FailedImport(BaseModel):
    """A media item the batch import could not store."""

    url: str
    error: str


class BatchImportResult(BaseModel):
    """Outcome of a media batch import."""

    successful: list[ImportedMedia] = Field(default_factory=list)
    failed: list[FailedImport] = Field(default_factory=list)
    skipped: int = Field(0, ge=0, description="Duplicates within the batch plus URLs already stored")


class ImportItemResult(BaseModel):
    """Outcome of one item handed to a concurrent batch importer."""

    status: Literal["success", "failed"]
    key: str
    value: Any = None
    error: Optional[str] = None
