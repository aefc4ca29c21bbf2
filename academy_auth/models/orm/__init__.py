"""SQLAlchemy ORM Models for Academy Auth.

Pure database models using SQLAlchemy 2.0 declarative style.
"""

from academy_auth.models.orm.backup_code import BackupCode
from academy_auth.models.orm.base import Base
from academy_auth.models.orm.credential import WebAuthnCredential
from academy_auth.models.orm.security_event import SecurityEvent
from academy_auth.models.orm.two_factor import TwoFactorSettings
from academy_auth.models.orm.user import User

__all__ = [
    "Base",
    "User",
    "WebAuthnCredential",
    "BackupCode",
    "TwoFactorSettings",
    "SecurityEvent",
]
