"""
WebAuthn contract models.

API request and response models for device registration, passwordless
login and device management. Option and credential payloads are the
browser's fixed JSON shapes and are passed through as dicts.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, model_validator

# =============================================================================
# Registration
# =============================================================================


class RegistrationOptionsResponse(BaseModel):
    """Response with WebAuthn creation options for the browser."""

    options: dict[str, Any] = Field(
        description="PublicKeyCredentialCreationOptions JSON for navigator.credentials.create()"
    )


class RegistrationVerifyRequest(BaseModel):
    """Request to verify a device registration."""

    credential: dict[str, Any] = Field(
        description="Registration credential JSON from navigator.credentials.create()"
    )
    device_name: str | None = Field(
        default=None,
        description="Optional label for the device (e.g., 'MacBook Pro Touch ID')",
        max_length=255,
    )


class RegistrationVerifyResponse(BaseModel):
    """Response after successful device registration."""

    verified: bool = Field(description="Whether registration was successful")
    credential_id: str = Field(description="base64url ID of the new credential")
    device_name: str = Field(description="Label of the device")


# =============================================================================
# Authentication
# =============================================================================


class AuthenticationOptionsRequest(BaseModel):
    """Request to start a passwordless login; identify the user by ID or email."""

    user_id: UUID | None = Field(default=None, description="User ID")
    email: EmailStr | None = Field(default=None, description="User email address")

    @model_validator(mode="after")
    def _require_identifier(self) -> "AuthenticationOptionsRequest":
        if self.user_id is None and self.email is None:
            raise ValueError("Either user_id or email is required")
        return self


class AuthenticationOptionsResponse(BaseModel):
    """Response with WebAuthn request options for the browser."""

    user_id: UUID = Field(description="User ID to send back with the verify request")
    options: dict[str, Any] = Field(
        description="PublicKeyCredentialRequestOptions JSON for navigator.credentials.get()"
    )


class AuthenticationVerifyRequest(BaseModel):
    """Request to verify a passwordless login."""

    user_id: UUID = Field(description="User ID from the options response")
    credential: dict[str, Any] = Field(
        description="Authentication credential JSON from navigator.credentials.get()"
    )


# =============================================================================
# Device Management
# =============================================================================


class DevicePublic(BaseModel):
    """Public representation of a registered device."""

    credential_id: str = Field(description="base64url credential ID")
    device_name: str = Field(description="User-friendly label")
    device_type: str | None = Field(description="'single_device' or 'multi_device'")
    backed_up: bool = Field(description="Whether the credential is synced to a cloud keychain")
    transports: list[str] = Field(description="Transports reported by the authenticator")
    created_at: datetime = Field(description="When the device was registered")
    last_used_at: datetime | None = Field(description="When the device last authenticated")
    revoked: bool = Field(description="Whether the device has been revoked")
    revoked_at: datetime | None = Field(description="When the device was revoked")


class DeviceListResponse(BaseModel):
    """Response with the user's devices."""

    devices: list[DevicePublic]
    count: int


class DeviceRevokeResponse(BaseModel):
    """Response after revoking a device."""

    revoked: bool
    credential_id: str
