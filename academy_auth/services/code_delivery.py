"""Delivery channel for emailed two-factor verification codes."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime

logger = logging.getLogger(__name__)


def mask_email(email: str) -> str:
    """Mask the local part of an address for logs: jo***@example.com."""
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"


class VerificationCodeSender(ABC):
    """Abstract sender for verification codes."""

    @abstractmethod
    async def send(self, email: str, code: str, expires_at: datetime) -> None:
        """
        Deliver a verification code.

        Args:
            email: Destination address
            code: Plaintext 6-digit code
            expires_at: When the code stops being accepted
        """
        ...


class LoggingCodeSender(VerificationCodeSender):
    """
    Sender that writes codes to the application log.

    Stands in for the mail service outside production. The plaintext code is
    only logged when reveal_codes is set (development).
    """

    def __init__(self, reveal_codes: bool = False):
        self.reveal_codes = reveal_codes

    async def send(self, email: str, code: str, expires_at: datetime) -> None:
        if self.reveal_codes:
            logger.info(f"Verification code for {mask_email(email)}: {code} (expires {expires_at.isoformat()})")
        else:
            logger.info(f"Verification code issued to {mask_email(email)} (expires {expires_at.isoformat()})")
