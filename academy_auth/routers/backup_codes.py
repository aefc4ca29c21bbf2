"""
Backup Codes Router

Generate one-time recovery codes and log in with one when no device is
available. Codes are returned in plaintext only by the generate call.
"""

from fastapi import APIRouter, HTTPException, status

from academy_auth.config import AppSettings
from academy_auth.core.auth import ClientContext, CurrentActiveUser
from academy_auth.core.cache import RedisClient
from academy_auth.core.database import DbSession
from academy_auth.core.errors import InvalidOrUsedBackupCode
from academy_auth.models.contracts.auth import LoginResponse
from academy_auth.models.contracts.backup_codes import (
    BackupCodeLoginRequest,
    BackupCodesResponse,
    BackupCodesStatusResponse,
)
from academy_auth.services.ceremony import CeremonyOrchestrator
from academy_auth.services.login import token_response

router = APIRouter(prefix="/auth/backup-codes", tags=["backup-codes"])


@router.post(
    "",
    response_model=BackupCodesResponse,
    summary="Generate backup codes",
    description="Issue a new batch of backup codes. Previous codes stop working. "
    "The codes are shown only in this response.",
)
async def generate_backup_codes(
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> BackupCodesResponse:
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)
    codes = await orchestrator.generate_backup_codes(user.user_id, context=context)
    await db.commit()
    return BackupCodesResponse(codes=codes)


@router.get(
    "/status",
    response_model=BackupCodesStatusResponse,
    summary="Count unused backup codes",
)
async def backup_codes_status(
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
) -> BackupCodesStatusResponse:
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)
    return BackupCodesStatusResponse(
        remaining=await orchestrator.backup_codes_remaining(user.user_id)
    )


@router.post(
    "/redeem",
    response_model=LoginResponse,
    summary="Log in with a backup code",
    description="Spend a backup code to log in. Each code works exactly once.",
)
async def redeem_backup_code(
    request: BackupCodeLoginRequest,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> LoginResponse:
    """Log in with a backup code (public endpoint)."""
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)

    try:
        user = await orchestrator.redeem_backup_code(
            request.code,
            user_id=request.user_id,
            email=request.email,
            context=context,
        )
    except InvalidOrUsedBackupCode as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Verification failed",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    await db.commit()
    return token_response(user, settings)
