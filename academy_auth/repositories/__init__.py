"""
Repositories

Data access layer over the SQLAlchemy async session.
"""

from academy_auth.repositories.backup_code import BackupCodeRepository
from academy_auth.repositories.base import BaseRepository
from academy_auth.repositories.credential import CredentialRepository
from academy_auth.repositories.security_event import SecurityEventRepository
from academy_auth.repositories.two_factor import TwoFactorSettingsRepository
from academy_auth.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "BackupCodeRepository",
    "CredentialRepository",
    "SecurityEventRepository",
    "TwoFactorSettingsRepository",
    "UserRepository",
]
