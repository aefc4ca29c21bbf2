"""
Authentication Error Taxonomy

Ceremony-logic failures are terminal for the current attempt: the
challenge they were verified against has already been consumed. Callers
see one generic message; the ``reason`` tag is recorded server-side only.

StoreUnavailable is the single transient condition and is safe to retry
by re-initiating the step.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = logging.getLogger(__name__)


class AuthCoreError(Exception):
    """Base class for all errors raised by the authentication core."""


class CeremonyError(AuthCoreError):
    """A terminal, non-retryable failure of a ceremony or recovery step."""

    reason = "verification_failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.reason)


class ChallengeNotFound(CeremonyError):
    reason = "challenge_not_found"


class ChallengeExpired(CeremonyError):
    reason = "challenge_expired"


class ChallengeMismatch(CeremonyError):
    reason = "challenge_mismatch"


class OriginMismatch(CeremonyError):
    reason = "origin_mismatch"


class CredentialNotFound(CeremonyError):
    reason = "credential_not_found"


class CredentialRevoked(CeremonyError):
    reason = "credential_revoked"


class DuplicateCredential(CeremonyError):
    reason = "duplicate_credential"


class CounterRegression(CeremonyError):
    """Signature counter did not advance; possible cloned authenticator."""

    reason = "counter_regression"


class NoCredentialsRegistered(CeremonyError):
    reason = "no_credentials_registered"


class InvalidOrUsedBackupCode(CeremonyError):
    reason = "invalid_or_used_backup_code"


class VerificationFailed(CeremonyError):
    """The attestation or assertion was rejected by the WebAuthn verifier."""

    reason = "verification_failed"


class VerificationCodeInvalid(CeremonyError):
    reason = "verification_code_invalid"


class VerificationCodeLocked(CeremonyError):
    reason = "verification_code_locked"


class TwoFactorNotEnabled(AuthCoreError):
    """A two-factor operation was requested for a user without it enabled."""


class StoreUnavailable(AuthCoreError):
    """A backing store timed out or refused the connection."""

    def __init__(self, store: str):
        super().__init__(f"{store} unavailable")
        self.store = store


@contextmanager
def store_errors(store: str) -> Iterator[None]:
    """
    Translate client-level connectivity failures into StoreUnavailable.

    Args:
        store: Name of the backing store ("redis" or "database")
    """
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        logger.warning(f"{store} unavailable: {e}")
        raise StoreUnavailable(store) from e
    except (OperationalError, InterfaceError, PoolTimeoutError) as e:
        logger.warning(f"{store} unavailable: {e}")
        raise StoreUnavailable(store) from e
