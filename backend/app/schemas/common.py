"""
CustomTees Backend — Shared Pydantic Schemas
==============================================

What:  Base model, envelopes and error/health models used by every router.
Why:   The storefront and admin clients consume camelCase JSON wrapped in
       {"success": ..., "data": ...}; one base class keeps that consistent.
How:   APIModel generates camelCase aliases, accepts snake_case names too,
       and validates straight from ORM objects (from_attributes).
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class APIModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ImageRef(BaseModel):
    """Stored image reference. Keys stay snake_case for existing clients."""

    url: str
    public_id: str


class DataResponse(APIModel, Generic[T]):
    """Success envelope: {"success": true, "message"?: str, "data": T}."""

    success: bool = True
    message: Optional[str] = None
    data: T


class MessageResponse(APIModel):
    success: bool = True
    message: str


class ErrorResponse(BaseModel):
    """
    What:  Error envelope returned by every exception handler.

    Example:
        {
            "success": false,
            "error": "validation_error",
            "message": "Missing package fields: weight, height",
            "details": {"missing": ["weight", "height"]},
            "request_id": "a1b2c3d4"
        }
    """
    success: bool = Field(default=False)
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy, degraded or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    carrier: str = Field(description="closed, half_open or open (UPS circuit state)")
    uptime_seconds: float
