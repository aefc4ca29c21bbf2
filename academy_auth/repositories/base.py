"""
Base Repository

Provides common database operations for all repositories.
Uses SQLAlchemy async session for all operations; connectivity failures
surface as StoreUnavailable.
"""

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from academy_auth.core.errors import store_errors
from academy_auth.models.orm.base import Base

ModelT = TypeVar("ModelT", bound=Base)

STORE_NAME = "database"


class BaseRepository(Generic[ModelT]):
    """
    Base repository with common operations.

    Provides a consistent interface for database access across all models.
    """

    model: type[ModelT]

    def __init__(self, session: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def get_by_id(self, id: UUID) -> ModelT | None:
        """
        Get entity by primary key.

        Args:
            id: Entity UUID

        Returns:
            Entity or None if not found
        """
        with store_errors(STORE_NAME):
            result = await self.session.execute(
                select(self.model).where(self.model.id == id)  # type: ignore[attr-defined]
            )
        return result.scalar_one_or_none()

    async def create(self, entity: ModelT) -> ModelT:
        """
        Create a new entity.

        Args:
            entity: Entity to create

        Returns:
            Created entity with generated ID
        """
        with store_errors(STORE_NAME):
            self.session.add(entity)
            await self.session.flush()
            await self.session.refresh(entity)
        return entity
