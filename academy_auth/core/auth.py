"""
Authentication Dependencies

FastAPI dependencies that resolve the caller from a bearer token issued
by this service. The registration ceremony and device management require
an existing session; these dependencies provide it.
"""

import logging
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from academy_auth.config import AppSettings
from academy_auth.core.security import decode_token
from academy_auth.services.audit_service import RequestContext

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class UserPrincipal:
    """
    Authenticated user principal.

    All user info is extracted from JWT claims (no database lookup required).
    """

    user_id: UUID
    email: str
    name: str = ""
    is_active: bool = True


async def get_current_user_optional(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: AppSettings,
) -> UserPrincipal | None:
    """
    Get the current user from a JWT (optional).

    Checks the Authorization: Bearer header first, then the access_token
    cookie used by browser clients. Returns None if no token is provided
    or the token is invalid.
    """
    token = None

    if credentials:
        token = credentials.credentials
    elif "access_token" in request.cookies:
        token = request.cookies["access_token"]

    if not token:
        return None

    payload = decode_token(token, expected_type="access", settings=settings)

    if payload is None:
        return None

    user_id_str = payload.get("sub")
    if not user_id_str:
        return None

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        return None

    if "email" not in payload:
        logger.warning(
            f"Token for user {user_id} missing required email claim.")
        return None

    return UserPrincipal(
        user_id=user_id,
        email=payload["email"],
        name=payload.get("name", ""),
        is_active=True,
    )


async def get_current_user(
    user: Annotated[UserPrincipal | None, Depends(get_current_user_optional)],
) -> UserPrincipal:
    """
    Get the current user from JWT token (required).

    Raises:
        HTTPException: If not authenticated or token is invalid
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_current_active_user(
    user: Annotated[UserPrincipal, Depends(get_current_user)],
) -> UserPrincipal:
    """
    Get the current active user.

    Raises:
        HTTPException: If user is inactive
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")
    return user


# Type aliases for dependency injection
CurrentActiveUser = Annotated[UserPrincipal, Depends(get_current_active_user)]


def get_request_context(request: Request) -> RequestContext:
    """Client IP and user agent recorded with security events."""
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=(request.headers.get("user-agent") or "")[:512] or None,
    )


ClientContext = Annotated[RequestContext, Depends(get_request_context)]
