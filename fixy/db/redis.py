"""Shared Redis client: fan-out channels, reply status hashes, alert claims, email outbox."""

import redis.asyncio as redis

from fixy.core.config import get_settings

_redis: redis.Redis | None = None


def create_redis(url: str) -> redis.Redis:
    """Build a decoded-response client; Pub/Sub payloads are JSON text."""
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        health_check_interval=30,
    )


async def init_redis(url: str | None = None) -> None:
    """Initialize the shared Redis client and verify connectivity."""
    global _redis

    if _redis is not None:
        return

    _redis = create_redis(url or get_settings().redis_url)
    await _redis.ping()


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> redis.Redis:
    """Return the shared Redis client.

    Raises RuntimeError if init_redis() has not been called.
    """
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
