"""
User ORM model.

Users are owned by the host application; this service only reads them to
resolve emails and to fill the WebAuthn user entity.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from academy_auth.models.orm.base import Base, utcnow

if TYPE_CHECKING:
    from academy_auth.models.orm.credential import WebAuthnCredential


class User(Base):
    """User database table."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    # Relationships
    credentials: Mapped[list["WebAuthnCredential"]] = relationship(back_populates="user")

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]
