"""
WebAuthn Router

Provides endpoints for device-based passwordless authentication:
- Registration: Generate creation options and verify the attestation
- Authentication: Generate request options and verify the assertion
- Management: List and revoke devices

Every ceremony failure is reported to the client as the same generic
message; the specific reason is only recorded in the security log.
"""

from fastapi import APIRouter, HTTPException, status

from academy_auth.config import AppSettings
from academy_auth.core.auth import ClientContext, CurrentActiveUser
from academy_auth.core.cache import RedisClient
from academy_auth.core.database import DbSession
from academy_auth.core.errors import CeremonyError, CredentialNotFound, NoCredentialsRegistered
from academy_auth.models.contracts.auth import LoginResponse
from academy_auth.models.contracts.webauthn import (
    AuthenticationOptionsRequest,
    AuthenticationOptionsResponse,
    AuthenticationVerifyRequest,
    DeviceListResponse,
    DevicePublic,
    DeviceRevokeResponse,
    RegistrationOptionsResponse,
    RegistrationVerifyRequest,
    RegistrationVerifyResponse,
)
from academy_auth.repositories.user import UserRepository
from academy_auth.services.ceremony import CeremonyOrchestrator
from academy_auth.services.login import complete_login

router = APIRouter(prefix="/auth/webauthn", tags=["webauthn"])

VERIFICATION_FAILED = "Verification failed"


# =============================================================================
# Registration Endpoints (Authenticated users adding devices)
# =============================================================================


@router.post(
    "/register/options",
    response_model=RegistrationOptionsResponse,
    summary="Get device registration options",
    description="Generate WebAuthn creation options for binding a new device. "
    "Pass the result to navigator.credentials.create().",
)
async def get_registration_options(
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
) -> RegistrationOptionsResponse:
    """Generate WebAuthn registration options for the current user."""
    account = await UserRepository(db).get_by_id(user.user_id)
    if account is None or not account.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )

    orchestrator = CeremonyOrchestrator(db, redis_client, settings)
    options = await orchestrator.begin_registration(account)
    return RegistrationOptionsResponse(options=options)


@router.post(
    "/register/verify",
    response_model=RegistrationVerifyResponse,
    summary="Verify device registration",
    description="Verify the attestation returned by the browser and store the device.",
)
async def verify_registration(
    request: RegistrationVerifyRequest,
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> RegistrationVerifyResponse:
    """Verify and complete device registration."""
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)

    try:
        credential = await orchestrator.complete_registration(
            user.user_id,
            request.credential,
            device_name=request.device_name,
            context=context,
        )
    except CeremonyError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=VERIFICATION_FAILED,
        ) from e

    await db.commit()

    return RegistrationVerifyResponse(
        verified=True,
        credential_id=credential.credential_id_b64,
        device_name=credential.device_name,
    )


# =============================================================================
# Authentication Endpoints (Passwordless login)
# =============================================================================


@router.post(
    "/authenticate/options",
    response_model=AuthenticationOptionsResponse,
    summary="Get device authentication options",
    description="Generate WebAuthn request options for the user's active devices. "
    "Returns 404 when the user has no usable device; fall back to a backup code.",
)
async def get_authentication_options(
    request: AuthenticationOptionsRequest,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> AuthenticationOptionsResponse:
    """Generate WebAuthn authentication options (public endpoint)."""
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)

    try:
        user_id, options = await orchestrator.begin_authentication(
            user_id=request.user_id,
            email=request.email,
            context=context,
        )
    except NoCredentialsRegistered as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No registered devices",
        ) from e

    return AuthenticationOptionsResponse(user_id=user_id, options=options)


@router.post(
    "/authenticate/verify",
    response_model=LoginResponse,
    summary="Verify device authentication",
    description="Verify the assertion returned by the browser and log the user in. "
    "When two-factor is enabled the response carries an mfa_token instead of tokens.",
)
async def verify_authentication(
    request: AuthenticationVerifyRequest,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> LoginResponse:
    """Verify a device assertion and return login tokens (public endpoint)."""
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)

    try:
        user = await orchestrator.complete_authentication(
            request.user_id,
            request.credential,
            context=context,
        )
    except CeremonyError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=VERIFICATION_FAILED,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    response = await complete_login(user, db, redis_client, settings, context)
    await db.commit()
    return response


# =============================================================================
# Management Endpoints (Authenticated users managing their devices)
# =============================================================================


@router.get(
    "/devices",
    response_model=DeviceListResponse,
    summary="List the user's devices",
    description="All registered devices for the current user, including revoked ones.",
)
async def list_devices(
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
) -> DeviceListResponse:
    """List all devices for the current user."""
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)
    credentials = await orchestrator.list_credentials(user.user_id)

    return DeviceListResponse(
        devices=[
            DevicePublic(
                credential_id=c.credential_id_b64,
                device_name=c.device_name,
                device_type=c.device_type,
                backed_up=c.backed_up,
                transports=list(c.transports or []),
                created_at=c.created_at,
                last_used_at=c.last_used_at,
                revoked=c.revoked,
                revoked_at=c.revoked_at,
            )
            for c in credentials
        ],
        count=len(credentials),
    )


@router.post(
    "/devices/{credential_id}/revoke",
    response_model=DeviceRevokeResponse,
    summary="Revoke a device",
    description="Permanently revoke one of the current user's devices. "
    "Revoked devices stay listed for the security trail.",
)
async def revoke_device(
    credential_id: str,
    user: CurrentActiveUser,
    db: DbSession,
    redis_client: RedisClient,
    settings: AppSettings,
    context: ClientContext,
) -> DeviceRevokeResponse:
    """Revoke a device owned by the current user."""
    orchestrator = CeremonyOrchestrator(db, redis_client, settings)

    try:
        await orchestrator.revoke_credential(user.user_id, credential_id, context=context)
    except CredentialNotFound as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device not found",
        ) from e

    await db.commit()

    return DeviceRevokeResponse(revoked=True, credential_id=credential_id)
