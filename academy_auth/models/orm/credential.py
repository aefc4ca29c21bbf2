"""
WebAuthn credential ORM model.

One row per registered authenticator. Rows are never deleted; revocation
flips a flag so the security trail stays intact.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, LargeBinary, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from webauthn.helpers import bytes_to_base64url

from academy_auth.models.orm.base import Base, utcnow

if TYPE_CHECKING:
    from academy_auth.models.orm.user import User


class WebAuthnCredential(Base):
    """Registered WebAuthn authenticator (a "device" in the account UI)."""

    __tablename__ = "webauthn_credentials"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"))

    # WebAuthn credential data (required for verification)
    credential_id: Mapped[bytes] = mapped_column(LargeBinary, unique=True)
    public_key: Mapped[bytes] = mapped_column(LargeBinary)
    sign_count: Mapped[int] = mapped_column(Integer, default=0)

    # Credential metadata
    transports: Mapped[list] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), default=list
    )  # usb, nfc, ble, internal, hybrid
    device_type: Mapped[str | None] = mapped_column(String(50), default=None)
    backed_up: Mapped[bool] = mapped_column(Boolean, default=False)

    # User-facing info
    device_name: Mapped[str] = mapped_column(String(255))
    user_agent: Mapped[str | None] = mapped_column(String(512), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    # Revocation
    revoked: Mapped[bool] = mapped_column(Boolean, default=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="credentials")

    __table_args__ = (
        Index("ix_webauthn_credentials_user_active", "user_id", "revoked"),
    )

    @property
    def credential_id_b64(self) -> str:
        """Credential ID in the base64url form browsers use."""
        return bytes_to_base64url(self.credential_id)
