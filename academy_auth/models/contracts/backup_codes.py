"""
Backup code contract models.
"""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator


class BackupCodesResponse(BaseModel):
    """Plaintext backup codes. Returned once, at generation time."""

    codes: list[str] = Field(description="One-time codes in XXXX-XXXX form")


class BackupCodesStatusResponse(BaseModel):
    """How many backup codes remain unused."""

    remaining: int


class BackupCodeLoginRequest(BaseModel):
    """Log in with a backup code."""

    user_id: UUID | None = None
    email: EmailStr | None = None
    code: str = Field(min_length=8, max_length=32)

    @model_validator(mode="after")
    def _require_identifier(self) -> "BackupCodeLoginRequest":
        if self.user_id is None and self.email is None:
            raise ValueError("Either user_id or email is required")
        return self
