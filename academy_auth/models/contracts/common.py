"""
Common response models.
"""

from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str
    message: str
    details: dict[str, Any] | None = None


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = "healthy"
    version: str = "1.0.0"
    checks: dict[str, bool] = Field(default_factory=dict, description="Reachability per backing store")
