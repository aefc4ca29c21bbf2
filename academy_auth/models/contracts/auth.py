"""
Authentication contract models.
"""

from pydantic import BaseModel


class LoginResponse(BaseModel):
    """Unified login response: either tokens or a pending two-factor step."""

    # Token fields (when two-factor not required or after verification)
    access_token: str | None = None
    token_type: str = "bearer"
    expires_in: int | None = None
    # Two-factor fields (when an emailed code is required)
    mfa_required: bool = False
    mfa_token: str | None = None
    code_expires_at: str | None = None
