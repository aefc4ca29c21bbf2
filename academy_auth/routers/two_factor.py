"""
Two-Factor Router

Manage the emailed-code second step and complete logins that are waiting
on one. A pending login is identified by the short-lived mfa_token returned
from the device verify endpoint.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from academy_auth.config import AppSettings, Settings
from academy_auth.core.auth import ClientContext, CurrentActiveUser
from academy_auth.core.cache import RedisClient
from academy_auth.core.database import DbSession
from academy_auth.core.errors import CeremonyError, TwoFactorNotEnabled
from academy_auth.core.security import decode_mfa_token
from academy_auth.models.contracts.auth import LoginResponse
from academy_auth.models.contracts.two_factor import (
    TwoFactorCodeRequest,
    TwoFactorCodeSentResponse,
    TwoFactorEnableRequest,
    TwoFactorEnableResponse,
    TwoFactorLoginRequest,
    TwoFactorResendRequest,
    TwoFactorStatusResponse,
)
from academy_auth.repositories.user import UserRepository
from academy_auth.services.login import token_response
from academy_auth.services.two_factor import TwoFactorService

router = APIRouter(prefix="/auth/two-factor", tags=["two-factor"])


def _mfa_subject(mfa_token: str, settings: Settings | None = None) -> UUID | None:
    """User ID from a valid mfa_token, else None."""
    payload = decode_mfa_token(mfa_token, settings=settings)
    if payload is None:
        return None
    try:
        return UUID(payload["sub"])
    except (KeyError, ValueError):
        return None


def _invalid_mfa_token() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired MFA token",
    )


@router.get("/status", response_model=TwoFactorStatusResponse, summary="Two-factor status")
async def get_status(
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
) -> TwoFactorStatusResponse:
    service = TwoFactorService(db, redis_client, settings)
    result = await service.status(user.user_id)
    return TwoFactorStatusResponse(
        enabled=result.enabled,
        email=result.email,
        backup_codes_remaining=result.backup_codes_remaining,
    )


@router.post(
    "/enable",
    response_model=TwoFactorEnableResponse,
    summary="Enable two-factor",
    description="Enable emailed verification codes and issue a fresh batch of backup codes.",
)
async def enable_two_factor(
    request: TwoFactorEnableRequest,
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> TwoFactorEnableResponse:
    service = TwoFactorService(db, redis_client, settings)
    codes = await service.enable(user.user_id, request.email or user.email, context=context)
    await db.commit()
    return TwoFactorEnableResponse(backup_codes=codes)


@router.post(
    "/code",
    response_model=TwoFactorCodeSentResponse,
    summary="Send a verification code",
    description="Email a verification code to the signed-in user (e.g. before disabling).",
)
async def send_code(
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> TwoFactorCodeSentResponse:
    service = TwoFactorService(db, redis_client, settings)
    try:
        expires_at = await service.send_code(user.user_id, context=context)
    except TwoFactorNotEnabled as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Two-factor is not enabled",
        ) from e
    await db.commit()
    return TwoFactorCodeSentResponse(expires_at=expires_at)


@router.post("/disable", summary="Disable two-factor")
async def disable_two_factor(
    request: TwoFactorCodeRequest,
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> dict:
    service = TwoFactorService(db, redis_client, settings)
    try:
        await service.disable(user.user_id, request.code, context=context)
    except TwoFactorNotEnabled as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Two-factor is not enabled",
        ) from e
    except CeremonyError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Verification failed",
        ) from e
    await db.commit()
    return {"enabled": False}


# =============================================================================
# Login Step-Up
# =============================================================================


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Complete login with a verification code",
    description="Exchange an mfa_token and the emailed code for an access token.",
)
async def verify_login_code(
    request: TwoFactorLoginRequest,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> LoginResponse:
    user_id = _mfa_subject(request.mfa_token, settings)
    if user_id is None:
        raise _invalid_mfa_token()

    user = await UserRepository(db).get_by_id(user_id)
    if user is None or not user.is_active:
        raise _invalid_mfa_token()

    service = TwoFactorService(db, redis_client, settings)
    try:
        await service.verify_code(user_id, request.code, context=context)
    except CeremonyError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Verification failed",
        ) from e

    await db.commit()
    return token_response(user, settings)


@router.post(
    "/login/resend",
    response_model=TwoFactorCodeSentResponse,
    summary="Resend the login verification code",
)
async def resend_login_code(
    request: TwoFactorResendRequest,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> TwoFactorCodeSentResponse:
    user_id = _mfa_subject(request.mfa_token, settings)
    if user_id is None:
        raise _invalid_mfa_token()

    service = TwoFactorService(db, redis_client, settings)
    try:
        expires_at = await service.send_code(user_id, context=context)
    except TwoFactorNotEnabled as e:
        raise _invalid_mfa_token() from e

    await db.commit()
    return TwoFactorCodeSentResponse(expires_at=expires_at)
