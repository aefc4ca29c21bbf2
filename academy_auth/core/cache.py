"""
Redis Cache Module

Provides a shared Redis client for short-lived authentication state:
WebAuthn challenges, two-factor verification codes and attempt counters.
"""

from typing import Annotated

import redis.asyncio as redis
from fastapi import Depends

from academy_auth.config import AppSettings

# Module-level cache for the Redis client
_redis_client: redis.Redis | None = None


async def get_redis(settings: AppSettings) -> redis.Redis:
    """
    Get the shared Redis client instance.

    Creates a new connection on first call, reuses for subsequent calls.
    Every command is bounded by the configured socket timeouts so a stalled
    server surfaces as an error instead of blocking the request.

    Returns:
        Async Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_timeout_seconds,
            socket_connect_timeout=settings.redis_timeout_seconds,
        )

    return _redis_client


async def close_redis() -> None:
    """
    Close the Redis connection.

    Should be called on application shutdown.
    """
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


# Type alias for dependency injection
RedisClient = Annotated[redis.Redis, Depends(get_redis)]
