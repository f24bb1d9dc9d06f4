"""
OurBookmark Backend: Shared Schemas
====================================

Error envelope, health response and the camelCase base used by every
tracker record.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """
    Base for records that mirror the browser's local-storage shape.

    Accepts both `childId` and `child_id`, serializes as camelCase, and keeps
    unknown keys so fields added by newer clients survive a round trip.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
    )

    def to_storage(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Minutes cannot exceed 24 hours (1440 minutes)",
            "details": {"field": "minutes"},
            "request_id": "a1b2c3d4"
        }
    """

    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    isbndb: str = Field(description="ISBNdb proxy: configured, missing_key")
    uptime_seconds: float = Field(description="Seconds since service started")
