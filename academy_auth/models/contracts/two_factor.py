"""
Two-factor contract models.
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

VERIFICATION_CODE_PATTERN = r"^\s*\d{6}\s*$"


class TwoFactorStatusResponse(BaseModel):
    enabled: bool
    email: str | None = None
    backup_codes_remaining: int


class TwoFactorEnableRequest(BaseModel):
    email: EmailStr | None = Field(
        default=None, description="Where codes are sent (defaults to the account email)"
    )


class TwoFactorEnableResponse(BaseModel):
    enabled: bool = True
    backup_codes: list[str] = Field(description="Fresh backup codes, shown once")


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(pattern=VERIFICATION_CODE_PATTERN)


class TwoFactorCodeSentResponse(BaseModel):
    sent: bool = True
    expires_at: datetime


class TwoFactorLoginRequest(BaseModel):
    """Complete a login that is waiting on an emailed code."""

    mfa_token: str
    code: str = Field(pattern=VERIFICATION_CODE_PATTERN)


class TwoFactorResendRequest(BaseModel):
    mfa_token: str
