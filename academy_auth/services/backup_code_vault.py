"""
Backup Code Vault - one-time recovery codes.

Plaintext codes exist only in the return value of generate(); the database
holds keyed hashes. A wrong code and an already-spent code are reported
identically.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from academy_auth.config import Settings, get_settings
from academy_auth.core.errors import InvalidOrUsedBackupCode
from academy_auth.core.security import generate_backup_code, hash_code, normalize_backup_code
from academy_auth.repositories.backup_code import BackupCodeRepository

logger = logging.getLogger(__name__)


class BackupCodeVault:
    """Generates, hashes and redeems backup codes."""

    def __init__(self, db: AsyncSession, settings: Settings | None = None):
        self.repo = BackupCodeRepository(db)
        self.settings = settings or get_settings()

    async def generate(self, user_id: UUID, count: int | None = None) -> list[str]:
        """
        Issue a new batch of codes, invalidating the previous batch.

        Args:
            user_id: Owner of the codes
            count: Batch size (defaults to settings.backup_code_count)

        Returns:
            Plaintext codes in XXXX-XXXX form. Shown once; not retrievable later.
        """
        count = count or self.settings.backup_code_count

        codes: list[str] = []
        while len(codes) < count:
            code = generate_backup_code()
            if code not in codes:
                codes.append(code)

        secret_key = self.settings.secret_key
        await self.repo.replace_batch(user_id, [hash_code(code, secret_key) for code in codes])

        logger.info(f"Generated {count} backup codes for user {user_id}")
        return codes

    async def redeem(self, user_id: UUID, code: str) -> None:
        """
        Spend a backup code.

        Raises:
            InvalidOrUsedBackupCode: Unknown, malformed or already used
        """
        normalized = normalize_backup_code(code)
        if not await self.repo.mark_used(user_id, hash_code(normalized, self.settings.secret_key)):
            raise InvalidOrUsedBackupCode()

    async def remaining(self, user_id: UUID) -> int:
        """Number of unused codes left for the user."""
        return await self.repo.count_unused(user_id)
