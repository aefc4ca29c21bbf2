"""
Enums for Academy Auth models.
"""

from enum import Enum


class CeremonyType(str, Enum):
    """WebAuthn ceremony a challenge was issued for."""

    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class CeremonyState(str, Enum):
    """Progress of a single ceremony attempt."""

    IDLE = "idle"
    CHALLENGE_ISSUED = "challenge_issued"
    VERIFYING = "verifying"
    COMPLETED = "completed"
    FAILED = "failed"


class SecurityAction(str, Enum):
    """Actions recorded in the security event log."""

    # Devices (WebAuthn credentials)
    DEVICE_REGISTER = "device_register"
    DEVICE_REGISTER_FAILED = "device_register_failed"
    DEVICE_LOGIN = "device_login"
    DEVICE_LOGIN_FAILED = "device_login_failed"
    DEVICE_REVOKE = "device_revoke"

    # Backup codes
    BACKUP_CODES_GENERATED = "backup_codes_generated"
    BACKUP_CODE_LOGIN = "backup_code_login"
    BACKUP_CODE_VERIFY_FAILED = "backup_code_verify_failed"

    # Two-factor (emailed verification codes)
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    TWO_FACTOR_CODE_SENT = "two_factor_code_sent"
    TWO_FACTOR_VERIFIED = "two_factor_verified"
    TWO_FACTOR_VERIFY_FAILED = "two_factor_verify_failed"
