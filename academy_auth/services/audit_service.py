"""
Security Audit Service

Records ceremony outcomes, revocations and recovery attempts in the
security_events table. Possible cloned authenticators are additionally
reported on a dedicated alert logger so they can be routed separately.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from academy_auth.models.enums import SecurityAction
from academy_auth.models.orm.security_event import SecurityEvent
from academy_auth.repositories.security_event import SecurityEventRepository

logger = logging.getLogger(__name__)
alert_logger = logging.getLogger("academy_auth.security_alerts")


@dataclass
class RequestContext:
    """Client details attached to security events."""

    ip_address: str | None = None
    user_agent: str | None = None


class SecurityAuditService:
    """Service for recording security events."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        action: SecurityAction,
        user_id: UUID | None = None,
        *,
        success: bool = True,
        reason: str | None = None,
        alert: bool = False,
        credential_id: str | None = None,
        device_name: str | None = None,
        context: RequestContext | None = None,
    ) -> SecurityEvent:
        """
        Record a security event.

        The row joins the caller's transaction; it is written when the
        caller commits.

        Args:
            action: What happened
            user_id: Affected user, if known
            success: Whether the step succeeded
            reason: Failure tag (never sensitive detail)
            alert: Whether the event also raised a security alert
            credential_id: base64url credential ID involved, if any
            device_name: Device label involved, if any
            context: Client IP and user agent
        """
        context = context or RequestContext()
        event = SecurityEvent(
            user_id=user_id,
            action=action.value,
            success=success,
            reason=reason,
            alert=alert,
            credential_id=credential_id,
            device_name=device_name,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )

        self.db.add(event)

        logger.debug(
            f"Security event: {action.value} user={user_id} success={success} reason={reason}",
            extra={
                "action": action.value,
                "user_id": str(user_id) if user_id else None,
                "success": success,
                "reason": reason,
            },
        )
        return event

    def raise_alert(
        self,
        action: SecurityAction,
        user_id: UUID | None,
        reason: str,
        *,
        credential_id: str | None = None,
    ) -> None:
        """Emit a security alert (e.g. a possibly cloned authenticator)."""
        alert_logger.critical(
            f"SECURITY ALERT {reason}: action={action.value} user={user_id} credential={credential_id}",
            extra={
                "action": action.value,
                "user_id": str(user_id) if user_id else None,
                "reason": reason,
                "credential_id": credential_id,
            },
        )

    async def list_for_user(self, user_id: UUID, limit: int = 50) -> list[SecurityEvent]:
        """List a user's recent security events, newest first."""
        return await SecurityEventRepository(self.db).list_for_user(user_id, limit=limit)


def get_audit_service(db: AsyncSession) -> SecurityAuditService:
    """Factory function for SecurityAuditService."""
    return SecurityAuditService(db)
