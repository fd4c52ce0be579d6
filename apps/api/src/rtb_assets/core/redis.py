"""
Redis Client

Shared async Redis connection used by the token blacklist and rate limiter.
Redis is optional outside production: callers check `get_redis_client()`
and fall back to process-local storage when it returns None.
"""

import logging

from redis.asyncio import Redis, from_url

from rtb_assets.core.config import settings

logger = logging.getLogger(__name__)

redis_client: Redis | None = None


async def init_redis() -> Redis:
    """Connect to Redis and verify the connection with PING."""
    global redis_client
    client = from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await client.ping()
    redis_client = client
    return redis_client


def get_redis_client() -> Redis | None:
    """Return the connected client, or None when Redis was never initialized."""
    return redis_client


async def get_redis() -> Redis | None:
    """FastAPI dependency form of `get_redis_client`."""
    return redis_client


async def close_redis() -> None:
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
