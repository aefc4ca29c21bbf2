"""
User Repository

Read access to the host application's users.
"""

from sqlalchemy import func, select

from academy_auth.core.errors import store_errors
from academy_auth.models.orm.user import User
from academy_auth.repositories.base import STORE_NAME, BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User model operations."""

    model = User

    async def get_by_email(self, email: str) -> User | None:
        """
        Get user by email address (case-insensitive).

        Args:
            email: User email

        Returns:
            User or None if not found
        """
        with store_errors(STORE_NAME):
            result = await self.session.execute(
                select(User).where(func.lower(User.email) == email.strip().lower())
            )
        return result.scalar_one_or_none()
