"""
Security Utilities

JWT token handling plus generation and hashing of one-time codes
(backup codes and emailed verification codes).
"""

import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from academy_auth.config import Settings, get_settings

MFA_TOKEN_PURPOSE = "mfa_verify"


def create_access_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
    settings: Settings | None = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary of claims to encode in the token
        expires_delta: Optional custom expiration time
        settings: Signing configuration (defaults to the process settings)

    Returns:
        Encoded JWT token string
    """
    settings = settings or get_settings()

    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(
            UTC) + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update(
        {
            "exp": expire,
            "type": "access",
            "iss": settings.jwt_issuer,
            "aud": settings.jwt_audience,
        }
    )

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(
    token: str,
    expected_type: str | None = None,
    settings: Settings | None = None,
) -> dict[str, Any] | None:
    """
    Decode and validate a JWT token.

    Args:
        token: JWT token string to decode
        expected_type: If provided, validates that token type matches
        settings: Verification configuration (defaults to the process settings)

    Returns:
        Decoded token payload or None if invalid/expired/wrong type
    """
    settings = settings or get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    if expected_type is not None and payload.get("type") != expected_type:
        return None

    return payload


def create_mfa_token(user_id: str, settings: Settings | None = None) -> str:
    """
    Create a short-lived token for the two-factor verification step.

    Returned after a successful passkey login when two-factor is enabled;
    it must be presented together with the emailed code.

    Args:
        user_id: User ID
        settings: Signing configuration (defaults to the process settings)

    Returns:
        Encoded JWT token string
    """
    settings = settings or get_settings()

    expire = datetime.now(UTC) + timedelta(minutes=settings.mfa_token_expire_minutes)

    to_encode = {
        "sub": user_id,
        "type": MFA_TOKEN_PURPOSE,
        "exp": expire,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }

    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_mfa_token(token: str, settings: Settings | None = None) -> dict[str, Any] | None:
    """Decode a two-factor step token, or None if invalid or expired."""
    return decode_token(token, expected_type=MFA_TOKEN_PURPOSE, settings=settings)


# =============================================================================
# One-Time Codes
# =============================================================================


def hash_code(code: str, secret_key: str) -> str:
    """
    Hash a one-time code for storage.

    Uses HMAC-SHA256 keyed with the application secret: the code space is
    small (6 digits, 8 hex chars), so an unkeyed digest could be reversed
    by enumeration after a storage leak.

    Args:
        code: Normalized plaintext code
        secret_key: HMAC key, the configured application secret

    Returns:
        Hex digest
    """
    return hmac.new(secret_key.encode(), code.encode(), hashlib.sha256).hexdigest()


def codes_match(code: str, code_hash: str, secret_key: str) -> bool:
    """Constant-time comparison of a plaintext code against a stored hash."""
    return hmac.compare_digest(hash_code(code, secret_key), code_hash)


def generate_backup_code() -> str:
    """
    Generate a human-readable backup code.

    Returns:
        Eight uppercase hex characters grouped as XXXX-XXXX
    """
    raw = secrets.token_hex(4).upper()
    return f"{raw[:4]}-{raw[4:]}"


def normalize_backup_code(code: str) -> str:
    """
    Canonicalize user input for a backup code.

    Accepts lowercase, surrounding whitespace and a missing or misplaced
    hyphen.

    Returns:
        XXXX-XXXX form, or the cleaned input if it has the wrong length
    """
    cleaned = "".join(code.split()).replace("-", "").upper()
    if len(cleaned) != 8:
        return cleaned
    return f"{cleaned[:4]}-{cleaned[4:]}"


def generate_verification_code() -> str:
    """Generate a 6-digit numeric verification code."""
    return f"{secrets.randbelow(10**6):06d}"
