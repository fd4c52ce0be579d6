"""
Rate Limiting

Sliding-window rate limiting backed by Redis sorted sets, with an in-memory
fallback when Redis is not connected.

Applied to endpoints that send email (OTP issuing) and to admin workflow
actions on applications.
"""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request, status

from rtb_assets.core.redis import get_redis_client

logger = logging.getLogger(__name__)

# {key: [request timestamps]}
_memory_windows: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """429 raised when a caller exceeds its window."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _allow_redis(client, key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)
    results = await pipe.execute()

    return results[1] < limit


def _allow_memory(key: str, limit: int, window_seconds: int) -> bool:
    now = time.time()
    window = [ts for ts in _memory_windows.get(key, []) if ts > now - window_seconds]

    if len(window) >= limit:
        _memory_windows[key] = window
        return False

    window.append(now)
    _memory_windows[key] = window
    return True


async def check_rate_limit(key: str, limit: int, window_seconds: int) -> bool:
    """
    Record one request against `key` and report whether it is allowed.

    Args:
        key: Rate limit bucket, e.g. "auth:login:1.2.3.4"
        limit: Maximum requests inside the window
        window_seconds: Window length

    Returns:
        True if the request is within the limit
    """
    client = get_redis_client()
    if client is not None:
        try:
            return await _allow_redis(client, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _allow_memory(key, limit, window_seconds)


def rate_limited(
    action: str,
    limit: int = 10,
    window_seconds: int = 60,
) -> Callable[[Request], Awaitable[None]]:
    """
    Build a FastAPI dependency that limits requests per client IP.

    Usage:
        @router.post("/login", dependencies=[Depends(rate_limited("login", 5, 60))])
    """

    async def dependency(request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        key = f"rate_limit:{action}:{client_ip}"

        if not await check_rate_limit(key, limit, window_seconds):
            logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
            raise RateLimitExceeded(limit, window_seconds)

    return dependency


def reset_memory_windows() -> None:
    _memory_windows.clear()


__all__ = [
    "RateLimitExceeded",
    "check_rate_limit",
    "rate_limited",
    "reset_memory_windows",
]
