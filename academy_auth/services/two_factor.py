"""
Two-Factor Service - emailed verification codes as a second step.

Codes are 6 digits, stored in Redis as keyed hashes with a short TTL, and
accepted at most once. Each issued code allows a fixed number of attempts;
the attempt counter is an atomic INCR so concurrent guesses cannot bypass
the cap.
"""

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import NoReturn
from uuid import UUID

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession

from academy_auth.config import Settings, get_settings
from academy_auth.core.errors import (
    CeremonyError,
    TwoFactorNotEnabled,
    VerificationCodeInvalid,
    VerificationCodeLocked,
    store_errors,
)
from academy_auth.core.security import codes_match, generate_verification_code, hash_code
from academy_auth.models.enums import SecurityAction
from academy_auth.models.orm.base import utcnow
from academy_auth.models.orm.two_factor import TwoFactorSettings
from academy_auth.repositories.two_factor import TwoFactorSettingsRepository
from academy_auth.services.audit_service import RequestContext, SecurityAuditService
from academy_auth.services.backup_code_vault import BackupCodeVault
from academy_auth.services.code_delivery import LoggingCodeSender, VerificationCodeSender

logger = logging.getLogger(__name__)

CODE_KEY_PREFIX = "two_factor_code:"
ATTEMPTS_KEY_PREFIX = "two_factor_attempts:"


@dataclass
class TwoFactorStatus:
    """Snapshot of a user's two-factor configuration."""

    enabled: bool
    email: str | None
    backup_codes_remaining: int


class TwoFactorService:
    """Enable/disable two-factor and issue/verify emailed codes."""

    def __init__(
        self,
        db: AsyncSession,
        redis_client: redis.Redis,
        settings: Settings | None = None,
        sender: VerificationCodeSender | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.redis = redis_client
        self.settings = settings or get_settings()
        self.sender = sender or LoggingCodeSender(reveal_codes=self.settings.is_development)
        self.clock = clock
        self.repo = TwoFactorSettingsRepository(db)
        self.vault = BackupCodeVault(db, self.settings)
        self.audit = SecurityAuditService(db)

    @staticmethod
    def _code_key(user_id: UUID) -> str:
        return f"{CODE_KEY_PREFIX}{user_id}"

    @staticmethod
    def _attempts_key(user_id: UUID) -> str:
        return f"{ATTEMPTS_KEY_PREFIX}{user_id}"

    # ========================================================================
    # Settings
    # ========================================================================

    async def status(self, user_id: UUID) -> TwoFactorStatus:
        row = await self.repo.get_for_user(user_id)
        return TwoFactorStatus(
            enabled=bool(row and row.enabled),
            email=row.email if row else None,
            backup_codes_remaining=await self.vault.remaining(user_id),
        )

    async def is_enabled(self, user_id: UUID) -> bool:
        row = await self.repo.get_for_user(user_id)
        return bool(row and row.enabled)

    async def enable(
        self, user_id: UUID, email: str, context: RequestContext | None = None
    ) -> list[str]:
        """
        Enable two-factor for a user.

        Args:
            user_id: User enabling two-factor
            email: Address verification codes are sent to

        Returns:
            A fresh batch of plaintext backup codes (shown once)
        """
        now = self.clock()
        row = await self.repo.get_for_user(user_id)
        if row is None:
            row = await self.repo.create(
                TwoFactorSettings(user_id=user_id, enabled=True, email=email, enabled_at=now)
            )
        else:
            row.enabled = True
            row.email = email
            row.enabled_at = now
            row.disabled_at = None

        codes = await self.vault.generate(user_id)

        await self.audit.record(SecurityAction.TWO_FACTOR_ENABLED, user_id, context=context)
        with store_errors("database"):
            await self.db.flush()

        logger.info(f"Two-factor enabled for user {user_id}")
        return codes

    async def disable(
        self, user_id: UUID, code: str, context: RequestContext | None = None
    ) -> None:
        """
        Disable two-factor after verifying a current code.

        Raises:
            TwoFactorNotEnabled: Nothing to disable
            VerificationCodeInvalid / VerificationCodeLocked: Code rejected (audited)
        """
        row = await self.repo.get_for_user(user_id)
        if row is None or not row.enabled:
            raise TwoFactorNotEnabled()

        await self.verify_code(user_id, code, context=context)

        row.enabled = False
        row.disabled_at = self.clock()

        await self.audit.record(SecurityAction.TWO_FACTOR_DISABLED, user_id, context=context)
        with store_errors("database"):
            await self.db.flush()

        logger.info(f"Two-factor disabled for user {user_id}")

    # ========================================================================
    # Verification Codes
    # ========================================================================

    async def send_code(self, user_id: UUID, context: RequestContext | None = None) -> datetime:
        """
        Issue and deliver a new verification code, replacing any pending one.

        Returns:
            When the code expires

        Raises:
            TwoFactorNotEnabled: The user has no enabled two-factor settings
        """
        row = await self.repo.get_for_user(user_id)
        if row is None or not row.enabled:
            raise TwoFactorNotEnabled()

        ttl = self.settings.two_factor_code_ttl_seconds
        code = generate_verification_code()
        expires_at = self.clock() + timedelta(seconds=ttl)
        payload = json.dumps(
            {
                "code_hash": hash_code(code, self.settings.secret_key),
                "expires_at": expires_at.isoformat(),
            }
        )

        with store_errors("redis"):
            await self.redis.setex(self._code_key(user_id), ttl, payload)
            await self.redis.delete(self._attempts_key(user_id))

        await self.sender.send(row.email, code, expires_at)

        await self.audit.record(SecurityAction.TWO_FACTOR_CODE_SENT, user_id, context=context)
        with store_errors("database"):
            await self.db.flush()

        return expires_at

    async def verify_code(
        self, user_id: UUID, code: str, context: RequestContext | None = None
    ) -> None:
        """
        Verify and consume a pending code.

        Raises:
            VerificationCodeLocked: Attempt cap exceeded for the pending code
            VerificationCodeInvalid: No pending code, expired, wrong or already used
        """
        code_key = self._code_key(user_id)
        attempts_key = self._attempts_key(user_id)

        with store_errors("redis"):
            attempts = await self.redis.incr(attempts_key)
            if attempts == 1:
                await self.redis.expire(attempts_key, self.settings.two_factor_code_ttl_seconds)

        if attempts > self.settings.two_factor_max_attempts:
            with store_errors("redis"):
                await self.redis.delete(code_key)
            await self._fail(VerificationCodeLocked(), user_id, context)

        with store_errors("redis"):
            raw = await self.redis.get(code_key)

        if raw is None:
            await self._fail(VerificationCodeInvalid(), user_id, context)

        try:
            stored = json.loads(raw)
            code_hash = stored["code_hash"]
            expires_at = datetime.fromisoformat(stored["expires_at"])
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Discarding malformed verification code for user {user_id}")
            await self._fail(VerificationCodeInvalid(), user_id, context)

        matched = codes_match(code.strip(), code_hash, self.settings.secret_key)
        if self.clock() > expires_at or not matched:
            await self._fail(VerificationCodeInvalid(), user_id, context)

        # Single use: only the request that actually deletes the key succeeds
        with store_errors("redis"):
            deleted = await self.redis.delete(code_key)
        if deleted != 1:
            await self._fail(VerificationCodeInvalid(), user_id, context)

        with store_errors("redis"):
            await self.redis.delete(attempts_key)

        await self.audit.record(SecurityAction.TWO_FACTOR_VERIFIED, user_id, context=context)
        with store_errors("database"):
            await self.db.flush()

    async def _fail(
        self, error: CeremonyError, user_id: UUID, context: RequestContext | None
    ) -> NoReturn:
        await self.audit.record(
            SecurityAction.TWO_FACTOR_VERIFY_FAILED,
            user_id,
            success=False,
            reason=error.reason,
            context=context,
        )
        with store_errors("database"):
            await self.db.commit()

        logger.info(f"Two-factor verification failed for user {user_id}: {error.reason}")
        raise error
