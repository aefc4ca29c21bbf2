"""
Challenge Store - single-use, time-boxed WebAuthn challenges.

One Redis key per (user, ceremony type). Issuing overwrites the key, so a
new challenge supersedes any earlier unconsumed one. Consumption is a single
GETDEL: of any number of concurrent consumers at most one receives the
challenge, and nothing remains afterwards whether it was valid or expired.
"""

import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID, uuid4

import redis.asyncio as redis
from pydantic import BaseModel, ValidationError
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url

from academy_auth.config import Settings, get_settings
from academy_auth.core.errors import ChallengeExpired, ChallengeNotFound, store_errors
from academy_auth.models.enums import CeremonyType
from academy_auth.models.orm.base import utcnow

logger = logging.getLogger(__name__)

CHALLENGE_KEY_PREFIX = "webauthn_challenge:"
CHALLENGE_BYTES = 32
# Keys outlive expires_at by this grace so a late consume is reported as
# ChallengeExpired. After Redis reaps the key the same consume reports
# ChallengeNotFound; the ceremony fails identically and nothing is left behind.
EXPIRY_GRACE_SECONDS = 3600


class Challenge(BaseModel):
    """A persisted challenge, validated whenever it is read back."""

    id: str
    user_id: str
    value: str  # base64url, no padding
    ceremony_type: CeremonyType
    created_at: datetime
    expires_at: datetime

    @property
    def value_bytes(self) -> bytes:
        return base64url_to_bytes(self.value)

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ChallengeStore:
    """Issues and consumes WebAuthn challenges in Redis."""

    def __init__(
        self,
        redis_client: redis.Redis,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.redis = redis_client
        self.settings = settings or get_settings()
        self.clock = clock

    @staticmethod
    def _key(user_id: UUID | str, ceremony_type: CeremonyType) -> str:
        return f"{CHALLENGE_KEY_PREFIX}{ceremony_type.value}:{user_id}"

    async def issue(self, user_id: UUID | str, ceremony_type: CeremonyType) -> Challenge:
        """
        Generate and persist a fresh challenge.

        Args:
            user_id: User the ceremony is for
            ceremony_type: Registration or authentication

        Returns:
            The stored Challenge
        """
        ttl = self.settings.webauthn_challenge_ttl_seconds
        now = self.clock()
        challenge = Challenge(
            id=uuid4().hex,
            user_id=str(user_id),
            value=bytes_to_base64url(secrets.token_bytes(CHALLENGE_BYTES)),
            ceremony_type=ceremony_type,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )

        with store_errors("redis"):
            await self.redis.setex(
                self._key(user_id, ceremony_type),
                ttl + EXPIRY_GRACE_SECONDS,
                challenge.model_dump_json(),
            )

        logger.debug(f"Issued {ceremony_type.value} challenge {challenge.id} for user {user_id}")
        return challenge

    async def consume(self, user_id: UUID | str, ceremony_type: CeremonyType) -> Challenge:
        """
        Atomically fetch and delete the current challenge.

        Raises:
            ChallengeNotFound: Nothing issued, already consumed, or unreadable
            ChallengeExpired: The challenge outlived its TTL (it is removed)
        """
        with store_errors("redis"):
            raw = await self.redis.getdel(self._key(user_id, ceremony_type))

        if raw is None:
            raise ChallengeNotFound()

        try:
            challenge = Challenge.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding malformed {ceremony_type.value} challenge for user {user_id}: {e}")
            raise ChallengeNotFound() from e

        if challenge.user_id != str(user_id) or challenge.ceremony_type != ceremony_type:
            raise ChallengeNotFound()

        if challenge.is_expired(self.clock()):
            raise ChallengeExpired()

        return challenge
