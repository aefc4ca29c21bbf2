"""
Backup code ORM model.

Only the keyed hash of each one-time recovery code is stored.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from academy_auth.models.orm.base import Base, utcnow


class BackupCode(Base):
    """One-time recovery code."""

    __tablename__ = "backup_codes"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(ForeignKey("users.id"))
    code_hash: Mapped[str] = mapped_column(String(64))
    used: Mapped[bool] = mapped_column(Boolean, default=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_backup_codes_user_unused", "user_id", "used"),
        Index("ix_backup_codes_user_hash", "user_id", "code_hash"),
    )
