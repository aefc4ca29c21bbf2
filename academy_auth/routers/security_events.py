"""
Security Events Router

Lets users review recent sign-ins, device changes and failed attempts on
their own account.
"""

from fastapi import APIRouter, Query

from academy_auth.core.auth import CurrentActiveUser
from academy_auth.core.database import DbSession
from academy_auth.models.contracts.security_events import (
    SecurityEventListResponse,
    SecurityEventPublic,
)
from academy_auth.services.audit_service import get_audit_service

router = APIRouter(prefix="/auth/security-events", tags=["security-events"])


@router.get(
    "",
    response_model=SecurityEventListResponse,
    summary="List the user's security events",
)
async def list_security_events(
    user: CurrentActiveUser,
    db: DbSession,
    limit: int = Query(default=50, ge=1, le=200),
) -> SecurityEventListResponse:
    events = await get_audit_service(db).list_for_user(user.user_id, limit=limit)
    return SecurityEventListResponse(
        events=[SecurityEventPublic.model_validate(e) for e in events],
        count=len(events),
    )
