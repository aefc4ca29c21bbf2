"""
Login completion.

Turns an authenticated user into a LoginResponse: either an access token,
or (when two-factor is enabled) an intermediate token plus an emailed code.
"""

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from academy_auth.config import Settings
from academy_auth.core.security import create_access_token, create_mfa_token
from academy_auth.models.contracts.auth import LoginResponse
from academy_auth.models.orm.user import User
from academy_auth.services.audit_service import RequestContext
from academy_auth.services.two_factor import TwoFactorService


def token_response(user: User, settings: Settings) -> LoginResponse:
    """Issue an access token for a fully authenticated user."""
    access_token = create_access_token(
        data={"sub": str(user.id), "email": user.email, "name": user.display_name},
        settings=settings,
    )
    return LoginResponse(
        access_token=access_token,
        expires_in=settings.access_token_expire_minutes * 60,
    )


async def complete_login(
    user: User,
    db: AsyncSession,
    redis_client: redis.Redis,
    settings: Settings,
    context: RequestContext | None = None,
) -> LoginResponse:
    """
    Finish a passkey login, stepping up to an emailed code if enabled.

    Args:
        user: User whose first factor has been verified
        db: Database session
        redis_client: Redis client for verification codes
        settings: Application settings
        context: Client IP and user agent

    Returns:
        LoginResponse with tokens, or with mfa_required and an mfa_token
    """
    two_factor = TwoFactorService(db, redis_client, settings)
    if not await two_factor.is_enabled(user.id):
        return token_response(user, settings)

    expires_at = await two_factor.send_code(user.id, context=context)
    return LoginResponse(
        mfa_required=True,
        mfa_token=create_mfa_token(str(user.id), settings=settings),
        expires_in=settings.mfa_token_expire_minutes * 60,
        code_expires_at=expires_at.isoformat(),
    )
