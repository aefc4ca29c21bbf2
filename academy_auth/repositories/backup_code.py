"""
Backup Code Repository

Stores keyed hashes of one-time recovery codes. Redemption is a single
conditional UPDATE so a code cannot be spent twice by concurrent requests.
"""

from uuid import UUID

from sqlalchemy import delete, func, select, update

from academy_auth.core.errors import store_errors
from academy_auth.models.orm.backup_code import BackupCode
from academy_auth.models.orm.base import utcnow
from academy_auth.repositories.base import STORE_NAME, BaseRepository


class BackupCodeRepository(BaseRepository[BackupCode]):
    """Repository for BackupCode operations."""

    model = BackupCode

    async def replace_batch(self, user_id: UUID, code_hashes: list[str]) -> None:
        """
        Replace a user's backup codes with a new batch.

        Deletes every previous code (used or not) in the same transaction.
        """
        with store_errors(STORE_NAME):
            await self.session.execute(delete(BackupCode).where(BackupCode.user_id == user_id))
            self.session.add_all(
                [BackupCode(user_id=user_id, code_hash=code_hash) for code_hash in code_hashes]
            )
            await self.session.flush()

    async def mark_used(self, user_id: UUID, code_hash: str) -> bool:
        """
        Atomically spend an unused code.

        Returns:
            True if exactly this request transitioned the code to used
        """
        stmt = (
            update(BackupCode)
            .where(
                BackupCode.user_id == user_id,
                BackupCode.code_hash == code_hash,
                BackupCode.used.is_(False),
            )
            .values(used=True, used_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        with store_errors(STORE_NAME):
            result = await self.session.execute(stmt)
        return result.rowcount > 0

    async def count_unused(self, user_id: UUID) -> int:
        """Count codes that can still be redeemed."""
        with store_errors(STORE_NAME):
            result = await self.session.execute(
                select(func.count(BackupCode.id)).where(
                    BackupCode.user_id == user_id,
                    BackupCode.used.is_(False),
                )
            )
        return result.scalar() or 0
