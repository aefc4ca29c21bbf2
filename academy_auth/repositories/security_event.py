"""
Security Event Repository

Read access to the security audit trail.
"""

from uuid import UUID

from sqlalchemy import select

from academy_auth.core.errors import store_errors
from academy_auth.models.enums import SecurityAction
from academy_auth.models.orm.security_event import SecurityEvent
from academy_auth.repositories.base import STORE_NAME, BaseRepository


class SecurityEventRepository(BaseRepository[SecurityEvent]):
    """Repository for SecurityEvent queries."""

    model = SecurityEvent

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        action: SecurityAction | None = None,
        limit: int = 50,
    ) -> list[SecurityEvent]:
        """
        List a user's most recent security events.

        Args:
            user_id: User ID
            action: Optional filter on a single action
            limit: Maximum number of events

        Returns:
            Events, newest first
        """
        query = select(SecurityEvent).where(SecurityEvent.user_id == user_id)
        if action is not None:
            query = query.where(SecurityEvent.action == action.value)
        query = query.order_by(SecurityEvent.created_at.desc()).limit(limit)

        with store_errors(STORE_NAME):
            result = await self.session.execute(query)
        return list(result.scalars().all())
