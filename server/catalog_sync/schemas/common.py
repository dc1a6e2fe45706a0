"""Common Pydantic schemas."""

from typing import Optional
from pydantic import BaseModel, Field


class Problem(BaseModel):
    """RFC 9457 Problem Details response, with the extensions the sync guards add."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code, e.g. SYNC_IN_PROGRESS")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    environment: Optional[str] = Field(None, description="Environment that refused the sync")
    lock_key: Optional[str] = Field(None, description="Sync lock held by another instance")
    resource_type: Optional[str] = Field(None, description="Kind of resource that was not found")
    resource_id: Optional[str] = Field(None, description="Identifier of the resource that was not found")
