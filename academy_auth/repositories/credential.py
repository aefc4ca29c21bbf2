"""
Credential Repository

Persistence for registered WebAuthn authenticators. All state changes that
must hold under concurrent requests (counter advance, revocation) are single
conditional UPDATE statements rather than read-modify-write.
"""

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from academy_auth.core.errors import (
    CounterRegression,
    CredentialNotFound,
    CredentialRevoked,
    DuplicateCredential,
    store_errors,
)
from academy_auth.models.orm.base import utcnow
from academy_auth.models.orm.credential import WebAuthnCredential
from academy_auth.repositories.base import STORE_NAME, BaseRepository

logger = logging.getLogger(__name__)


class CredentialRepository(BaseRepository[WebAuthnCredential]):
    """Repository for WebAuthnCredential operations."""

    model = WebAuthnCredential

    async def list_active(self, user_id: UUID) -> list[WebAuthnCredential]:
        """
        List a user's non-revoked credentials, newest first.

        Used to build excludeCredentials (registration) and
        allowCredentials (authentication).
        """
        with store_errors(STORE_NAME):
            result = await self.session.execute(
                select(WebAuthnCredential)
                .where(
                    WebAuthnCredential.user_id == user_id,
                    WebAuthnCredential.revoked.is_(False),
                )
                .order_by(WebAuthnCredential.created_at.desc())
            )
        return list(result.scalars().all())

    async def list_for_user(self, user_id: UUID) -> list[WebAuthnCredential]:
        """List all of a user's credentials, including revoked ones."""
        with store_errors(STORE_NAME):
            result = await self.session.execute(
                select(WebAuthnCredential)
                .where(WebAuthnCredential.user_id == user_id)
                .order_by(WebAuthnCredential.created_at.desc())
            )
        return list(result.scalars().all())

    async def get_by_credential_id(self, credential_id: bytes) -> WebAuthnCredential | None:
        """
        Look up a credential by its authenticator-assigned ID.

        Always reloads from the database so values changed by conditional
        UPDATEs are visible.
        """
        with store_errors(STORE_NAME):
            result = await self.session.execute(
                select(WebAuthnCredential)
                .where(WebAuthnCredential.credential_id == credential_id)
                .execution_options(populate_existing=True)
            )
        return result.scalar_one_or_none()

    async def create(self, entity: WebAuthnCredential) -> WebAuthnCredential:
        """
        Persist a newly registered credential.

        Raises:
            DuplicateCredential: If the credential ID exists for any user
        """
        if await self.get_by_credential_id(entity.credential_id) is not None:
            raise DuplicateCredential()

        try:
            return await super().create(entity)
        except IntegrityError as e:
            # Lost a race against a concurrent registration of the same authenticator
            raise DuplicateCredential() from e

    async def find_for_authentication(self, credential_id: bytes) -> WebAuthnCredential:
        """
        Load a credential that may be used to authenticate.

        Raises:
            CredentialNotFound: If no such credential exists
            CredentialRevoked: If the credential has been revoked
        """
        credential = await self.get_by_credential_id(credential_id)
        if credential is None:
            raise CredentialNotFound()
        if credential.revoked:
            raise CredentialRevoked()
        return credential

    async def record_successful_authentication(
        self, credential_id: bytes, new_sign_count: int
    ) -> WebAuthnCredential:
        """
        Advance the signature counter after a verified assertion.

        Compare-and-set: the row is only updated when the reported counter is
        strictly greater than the stored one, or when both are zero
        (authenticators that do not implement counters).

        Raises:
            CounterRegression: Counter did not advance; nothing is modified
            CredentialNotFound: If no such credential exists
            CredentialRevoked: If the credential was revoked meanwhile
        """
        if new_sign_count == 0:
            counter_ok = WebAuthnCredential.sign_count == 0
        else:
            counter_ok = WebAuthnCredential.sign_count < new_sign_count

        stmt = (
            update(WebAuthnCredential)
            .where(
                WebAuthnCredential.credential_id == credential_id,
                WebAuthnCredential.revoked.is_(False),
                counter_ok,
            )
            .values(sign_count=new_sign_count, last_used_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        with store_errors(STORE_NAME):
            result = await self.session.execute(stmt)

        if result.rowcount == 1:
            credential = await self.get_by_credential_id(credential_id)
            if credential is None:
                raise CredentialNotFound()
            return credential

        # Nothing updated: work out which guard rejected it
        credential = await self.find_for_authentication(credential_id)
        logger.warning(
            f"Sign count regression for credential {credential.id}: "
            f"stored={credential.sign_count} reported={new_sign_count}"
        )
        raise CounterRegression()

    async def revoke(self, credential_id: bytes) -> WebAuthnCredential:
        """
        Revoke a credential. Idempotent; revoked_at keeps its first value.

        Raises:
            CredentialNotFound: If no such credential exists
        """
        stmt = (
            update(WebAuthnCredential)
            .where(
                WebAuthnCredential.credential_id == credential_id,
                WebAuthnCredential.revoked.is_(False),
            )
            .values(revoked=True, revoked_at=utcnow())
            .execution_options(synchronize_session=False)
        )

        with store_errors(STORE_NAME):
            await self.session.execute(stmt)

        credential = await self.get_by_credential_id(credential_id)
        if credential is None:
            raise CredentialNotFound()
        return credential
