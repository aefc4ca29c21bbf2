"""
Two-Factor Settings Repository
"""

from uuid import UUID

from sqlalchemy import select

from academy_auth.core.errors import store_errors
from academy_auth.models.orm.two_factor import TwoFactorSettings
from academy_auth.repositories.base import STORE_NAME, BaseRepository


class TwoFactorSettingsRepository(BaseRepository[TwoFactorSettings]):
    """Repository for TwoFactorSettings rows (keyed by user)."""

    model = TwoFactorSettings

    async def get_for_user(self, user_id: UUID) -> TwoFactorSettings | None:
        with store_errors(STORE_NAME):
            result = await self.session.execute(
                select(TwoFactorSettings).where(TwoFactorSettings.user_id == user_id)
            )
        return result.scalar_one_or_none()
