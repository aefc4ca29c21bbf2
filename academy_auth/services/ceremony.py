"""
Ceremony Orchestrator - WebAuthn relying-party logic.

Builds registration/authentication options, validates browser responses
against the consumed challenge and stored credentials, advances signature
counters and records every outcome in the security audit trail.

Each ceremony step is an independent request; all state between the two
round-trips lives in the challenge store and the database. Per attempt the
ceremony moves idle -> challenge_issued -> verifying -> completed | failed.

Failure policy: a failing step rolls back its partial work, writes exactly
one security event carrying the failure reason, commits that event and
raises the typed error. Successful steps flush and leave the commit to the
caller.
"""

import hmac
import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, NoReturn
from uuid import UUID

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession
from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import base64url_to_bytes
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.exceptions import WebAuthnException
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorAttachment,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from academy_auth.config import Settings, get_settings
from academy_auth.core.errors import (
    CeremonyError,
    ChallengeMismatch,
    CounterRegression,
    CredentialNotFound,
    InvalidOrUsedBackupCode,
    NoCredentialsRegistered,
    OriginMismatch,
    VerificationFailed,
    store_errors,
)
from academy_auth.models.enums import CeremonyState, CeremonyType, SecurityAction
from academy_auth.models.orm.base import utcnow
from academy_auth.models.orm.credential import WebAuthnCredential
from academy_auth.models.orm.user import User
from academy_auth.repositories.credential import CredentialRepository
from academy_auth.repositories.user import UserRepository
from academy_auth.services.audit_service import RequestContext, SecurityAuditService
from academy_auth.services.backup_code_vault import BackupCodeVault
from academy_auth.services.challenge_store import Challenge, ChallengeStore

logger = logging.getLogger(__name__)

# ES256 and RS256, in order of preference
SUPPORTED_ALGORITHMS = [
    COSEAlgorithmIdentifier.ECDSA_SHA_256,
    COSEAlgorithmIdentifier.RSASSA_PKCS1_v1_5_SHA_256,
]
DEFAULT_DEVICE_NAME = "Passkey"


def _descriptor(credential: WebAuthnCredential) -> PublicKeyCredentialDescriptor:
    transports = []
    for value in credential.transports or []:
        try:
            transports.append(AuthenticatorTransport(value))
        except ValueError:
            continue
    return PublicKeyCredentialDescriptor(id=credential.credential_id, transports=transports or None)


def _submitted_credential_id(credential: dict[str, Any]) -> str | None:
    """The base64url credential ID claimed by a browser response, if any."""
    value = credential.get("rawId") or credential.get("id")
    return value[:1024] if isinstance(value, str) else None


class CeremonyOrchestrator:
    """WebAuthn registration, authentication, revocation and backup-code login."""

    def __init__(
        self,
        db: AsyncSession,
        redis_client: redis.Redis,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.challenges = ChallengeStore(redis_client, self.settings, clock=clock)
        self.credentials = CredentialRepository(db)
        self.users = UserRepository(db)
        self.vault = BackupCodeVault(db, self.settings)
        self.audit = SecurityAuditService(db)
        self.state = CeremonyState.IDLE

    # ========================================================================
    # Registration (authenticated users adding a device)
    # ========================================================================

    async def begin_registration(self, user: User) -> dict[str, Any]:
        """
        Issue a registration challenge and build creation options.

        Args:
            user: The signed-in user adding an authenticator

        Returns:
            PublicKeyCredentialCreationOptions as JSON-ready dict
        """
        user_id = user.id
        active = await self.credentials.list_active(user_id)
        challenge = await self.challenges.issue(user_id, CeremonyType.REGISTRATION)

        options = generate_registration_options(
            rp_id=self.settings.webauthn_rp_id,
            rp_name=self.settings.webauthn_rp_name,
            user_id=user_id.bytes,
            user_name=user.email,
            user_display_name=user.display_name,
            challenge=challenge.value_bytes,
            timeout=self.settings.webauthn_timeout_ms,
            attestation=AttestationConveyancePreference.NONE,
            authenticator_selection=AuthenticatorSelectionCriteria(
                authenticator_attachment=AuthenticatorAttachment.PLATFORM,
                resident_key=ResidentKeyRequirement.PREFERRED,
                user_verification=UserVerificationRequirement.PREFERRED,
            ),
            exclude_credentials=[_descriptor(c) for c in active],
            supported_pub_key_algs=SUPPORTED_ALGORITHMS,
        )

        payload = json.loads(options_to_json(options))
        payload.setdefault("excludeCredentials", [])

        self._advance(CeremonyType.REGISTRATION, CeremonyState.CHALLENGE_ISSUED, user_id)
        return payload

    async def complete_registration(
        self,
        user_id: UUID,
        credential: dict[str, Any],
        device_name: str | None = None,
        context: RequestContext | None = None,
    ) -> WebAuthnCredential:
        """
        Verify an attestation response and store the new credential.

        Args:
            user_id: The signed-in user completing registration
            credential: RegistrationResponseJSON from navigator.credentials.create()
            device_name: Optional label shown in the device list
            context: Client IP and user agent

        Returns:
            The stored credential

        Raises:
            CeremonyError: Any terminal verification failure (already audited)
        """
        context = context or RequestContext()
        self._advance(CeremonyType.REGISTRATION, CeremonyState.VERIFYING, user_id)

        try:
            challenge = await self.challenges.consume(user_id, CeremonyType.REGISTRATION)
            self._check_client_data(credential, challenge, "webauthn.create")

            try:
                verification = verify_registration_response(
                    credential=credential,
                    expected_challenge=challenge.value_bytes,
                    expected_origin=self.settings.webauthn_origins,
                    expected_rp_id=self.settings.webauthn_rp_id,
                    supported_pub_key_algs=SUPPORTED_ALGORITHMS,
                )
            except WebAuthnException as e:
                raise self._map_verifier_error(e) from e

            record = await self.credentials.create(
                WebAuthnCredential(
                    user_id=user_id,
                    credential_id=verification.credential_id,
                    public_key=verification.credential_public_key,
                    sign_count=verification.sign_count,
                    transports=self._response_transports(credential),
                    device_type=verification.credential_device_type.value,
                    backed_up=verification.credential_backed_up,
                    device_name=device_name or DEFAULT_DEVICE_NAME,
                    user_agent=context.user_agent,
                )
            )
        except CeremonyError as e:
            await self._fail(
                SecurityAction.DEVICE_REGISTER_FAILED,
                e,
                user_id,
                credential_id=_submitted_credential_id(credential),
                device_name=device_name,
                context=context,
            )

        await self.audit.record(
            SecurityAction.DEVICE_REGISTER,
            user_id,
            credential_id=record.credential_id_b64,
            device_name=record.device_name,
            context=context,
        )
        await self._flush()

        self._advance(CeremonyType.REGISTRATION, CeremonyState.COMPLETED, user_id)
        logger.info(f"Device registered for user {user_id}: {record.id}")
        return record

    # ========================================================================
    # Authentication (passwordless login)
    # ========================================================================

    async def begin_authentication(
        self,
        user_id: UUID | None = None,
        email: str | None = None,
        context: RequestContext | None = None,
    ) -> tuple[UUID, dict[str, Any]]:
        """
        Issue an authentication challenge for a user's active devices.

        An unknown user is treated exactly like a user without devices.

        Returns:
            Tuple of (resolved user ID, PublicKeyCredentialRequestOptions dict)

        Raises:
            NoCredentialsRegistered: No active credentials; no challenge is issued
        """
        user = await self._resolve_user(user_id, email)
        if user is None:
            await self._fail(
                SecurityAction.DEVICE_LOGIN_FAILED,
                NoCredentialsRegistered(),
                user_id,
                context=context,
            )

        resolved_id = user.id
        active = await self.credentials.list_active(resolved_id)
        if not active:
            await self._fail(
                SecurityAction.DEVICE_LOGIN_FAILED,
                NoCredentialsRegistered(),
                resolved_id,
                context=context,
            )

        challenge = await self.challenges.issue(resolved_id, CeremonyType.AUTHENTICATION)

        options = generate_authentication_options(
            rp_id=self.settings.webauthn_rp_id,
            challenge=challenge.value_bytes,
            timeout=self.settings.webauthn_timeout_ms,
            allow_credentials=[_descriptor(c) for c in active],
            user_verification=UserVerificationRequirement.PREFERRED,
        )

        payload = json.loads(options_to_json(options))
        payload.setdefault("allowCredentials", [])

        self._advance(CeremonyType.AUTHENTICATION, CeremonyState.CHALLENGE_ISSUED, resolved_id)
        return resolved_id, payload

    async def complete_authentication(
        self,
        user_id: UUID,
        credential: dict[str, Any],
        context: RequestContext | None = None,
    ) -> User:
        """
        Verify an assertion response and advance the credential's counter.

        Args:
            user_id: User returned by begin_authentication
            credential: AuthenticationResponseJSON from navigator.credentials.get()
            context: Client IP and user agent

        Returns:
            The authenticated user

        Raises:
            CeremonyError: Any terminal verification failure (already audited)
        """
        context = context or RequestContext()
        submitted_id = _submitted_credential_id(credential)
        device_name: str | None = None
        self._advance(CeremonyType.AUTHENTICATION, CeremonyState.VERIFYING, user_id)

        try:
            challenge = await self.challenges.consume(user_id, CeremonyType.AUTHENTICATION)

            raw_id = self._credential_id_bytes(submitted_id)
            stored = await self.credentials.find_for_authentication(raw_id)
            if stored.user_id != user_id:
                raise CredentialNotFound()
            device_name = stored.device_name
            public_key = stored.public_key

            self._check_client_data(credential, challenge, "webauthn.get")

            try:
                verification = verify_authentication_response(
                    credential=credential,
                    expected_challenge=challenge.value_bytes,
                    expected_origin=self.settings.webauthn_origins,
                    expected_rp_id=self.settings.webauthn_rp_id,
                    credential_public_key=public_key,
                    # Counter monotonicity is enforced atomically by the
                    # credential store, not by the verifier.
                    credential_current_sign_count=0,
                )
            except WebAuthnException as e:
                raise self._map_verifier_error(e) from e

            await self.credentials.record_successful_authentication(
                raw_id, verification.new_sign_count
            )

            user = await self.users.get_by_id(user_id)
            if user is None or not user.is_active:
                raise VerificationFailed("Account unavailable")
        except CeremonyError as e:
            await self._fail(
                SecurityAction.DEVICE_LOGIN_FAILED,
                e,
                user_id,
                credential_id=submitted_id,
                device_name=device_name,
                context=context,
            )

        await self.audit.record(
            SecurityAction.DEVICE_LOGIN,
            user_id,
            credential_id=submitted_id,
            device_name=device_name,
            context=context,
        )
        await self._flush()

        self._advance(CeremonyType.AUTHENTICATION, CeremonyState.COMPLETED, user_id)
        logger.info(f"Device login successful for user {user_id}")
        return user

    # ========================================================================
    # Device Management
    # ========================================================================

    async def list_credentials(self, user_id: UUID) -> list[WebAuthnCredential]:
        """All of a user's devices, including revoked ones."""
        return await self.credentials.list_for_user(user_id)

    async def revoke_credential(
        self,
        user_id: UUID,
        credential_id: str,
        context: RequestContext | None = None,
    ) -> WebAuthnCredential:
        """
        Revoke one of the user's own devices. Idempotent.

        Args:
            user_id: Owner performing the revocation
            credential_id: base64url credential ID

        Raises:
            CredentialNotFound: Unknown ID or owned by someone else
        """
        raw_id = self._credential_id_bytes(credential_id)
        existing = await self.credentials.get_by_credential_id(raw_id)
        if existing is None or existing.user_id != user_id:
            raise CredentialNotFound()

        revoked = await self.credentials.revoke(raw_id)

        await self.audit.record(
            SecurityAction.DEVICE_REVOKE,
            user_id,
            credential_id=credential_id,
            device_name=revoked.device_name,
            context=context,
        )
        await self._flush()

        logger.info(f"Device {revoked.id} revoked for user {user_id}")
        return revoked

    # ========================================================================
    # Backup Codes (fallback path)
    # ========================================================================

    async def generate_backup_codes(
        self, user_id: UUID, context: RequestContext | None = None
    ) -> list[str]:
        """Issue a fresh batch of backup codes; previous codes stop working."""
        codes = await self.vault.generate(user_id)

        await self.audit.record(SecurityAction.BACKUP_CODES_GENERATED, user_id, context=context)
        await self._flush()
        return codes

    async def backup_codes_remaining(self, user_id: UUID) -> int:
        return await self.vault.remaining(user_id)

    async def redeem_backup_code(
        self,
        code: str,
        user_id: UUID | None = None,
        email: str | None = None,
        context: RequestContext | None = None,
    ) -> User:
        """
        Log in with a backup code when no device is usable.

        Raises:
            InvalidOrUsedBackupCode: Wrong code, used code or unknown user (already audited)
        """
        user = await self._resolve_user(user_id, email)
        if user is None:
            await self._fail(
                SecurityAction.BACKUP_CODE_VERIFY_FAILED,
                InvalidOrUsedBackupCode(),
                user_id,
                context=context,
            )

        resolved_id = user.id
        try:
            await self.vault.redeem(resolved_id, code)
        except InvalidOrUsedBackupCode as e:
            await self._fail(SecurityAction.BACKUP_CODE_VERIFY_FAILED, e, resolved_id, context=context)

        await self.audit.record(SecurityAction.BACKUP_CODE_LOGIN, resolved_id, context=context)
        await self._flush()

        logger.info(f"Backup code login for user {resolved_id}")
        return user

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _resolve_user(self, user_id: UUID | None, email: str | None) -> User | None:
        user = None
        if user_id is not None:
            user = await self.users.get_by_id(user_id)
        elif email:
            user = await self.users.get_by_email(email)

        if user is None or not user.is_active:
            return None
        return user

    def _check_client_data(
        self, credential: dict[str, Any], challenge: Challenge, expected_type: str
    ) -> None:
        """
        Check clientDataJSON type, challenge and origin.

        The verifier repeats these checks; doing them here first gives each
        failure its own reason tag.
        """
        try:
            client_data = json.loads(
                base64url_to_bytes(credential["response"]["clientDataJSON"])
            )
            client_type = client_data["type"]
            received_challenge = base64url_to_bytes(client_data["challenge"])
            origin = client_data["origin"]
        except (KeyError, TypeError, ValueError) as e:
            raise VerificationFailed("Malformed clientDataJSON") from e

        if client_type != expected_type:
            raise VerificationFailed(f"Unexpected clientDataJSON type {client_type!r}")

        if not hmac.compare_digest(received_challenge, challenge.value_bytes):
            raise ChallengeMismatch()

        if origin not in self.settings.webauthn_origins:
            raise OriginMismatch()

    @staticmethod
    def _map_verifier_error(error: WebAuthnException) -> CeremonyError:
        if "RP ID" in str(error):
            return OriginMismatch()
        return VerificationFailed()

    @staticmethod
    def _credential_id_bytes(credential_id: str | None) -> bytes:
        if not credential_id:
            raise CredentialNotFound()
        try:
            return base64url_to_bytes(credential_id)
        except ValueError as e:
            raise CredentialNotFound() from e

    @staticmethod
    def _response_transports(credential: dict[str, Any]) -> list[str]:
        response = credential.get("response")
        transports = response.get("transports") if isinstance(response, dict) else None
        if not isinstance(transports, list):
            return []
        return [t for t in transports if isinstance(t, str)]

    def _advance(self, ceremony: CeremonyType, state: CeremonyState, user_id: UUID | None) -> None:
        logger.debug(f"{ceremony.value} ceremony for user {user_id}: {self.state.value} -> {state.value}")
        self.state = state

    async def _flush(self) -> None:
        with store_errors("database"):
            await self.db.flush()

    async def _fail(
        self,
        action: SecurityAction,
        error: CeremonyError,
        user_id: UUID | None,
        *,
        credential_id: str | None = None,
        device_name: str | None = None,
        context: RequestContext | None = None,
    ) -> NoReturn:
        """Roll back, record exactly one failure event, commit it and raise."""
        self.state = CeremonyState.FAILED
        alert = isinstance(error, CounterRegression)

        with store_errors("database"):
            await self.db.rollback()

        await self.audit.record(
            action,
            user_id,
            success=False,
            reason=error.reason,
            alert=alert,
            credential_id=credential_id,
            device_name=device_name,
            context=context,
        )
        if alert:
            self.audit.raise_alert(action, user_id, error.reason, credential_id=credential_id)

        with store_errors("database"):
            await self.db.commit()

        logger.info(f"{action.value} for user {user_id}: {error.reason}")
        raise error
