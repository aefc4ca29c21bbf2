"""
Security event contract models.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class SecurityEventPublic(BaseModel):
    """A security event as shown to its user."""

    id: UUID
    action: str
    success: bool
    reason: str | None
    device_name: str | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SecurityEventListResponse(BaseModel):
    events: list[SecurityEventPublic]
    count: int
