"""
Token Blacklist

Revoked access tokens, checked on every authenticated request.

Entries are volatile: Redis keys expire with the token's own lifetime and
the in-memory fallback is lost on restart and is not shared between
processes.
"""

import hashlib
import logging
import time

from rtb_assets.core.redis import get_redis_client

logger = logging.getLogger(__name__)

KEY_PREFIX = "token_blacklist:"

# Fallback when Redis is unavailable: {token_hash: expires_at_epoch}
_memory_blacklist: dict[str, float] = {}


def _token_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


async def blacklist_token(token: str, expires_at: float | None = None) -> None:
    """
    Revoke a token until it would have expired anyway.

    Args:
        token: The raw bearer token
        expires_at: The token's `exp` claim (epoch seconds), if known
    """
    key = _token_key(token)
    ttl = int(expires_at - time.time()) if expires_at else 60 * 60 * 24
    ttl = max(ttl, 1)

    client = get_redis_client()
    if client is not None:
        try:
            await client.set(f"{KEY_PREFIX}{key}", "1", ex=ttl)
            return
        except Exception as e:
            logger.warning(f"Redis blacklist write failed, using memory: {e}")

    _memory_blacklist[key] = time.time() + ttl


async def is_token_blacklisted(token: str) -> bool:
    key = _token_key(token)

    client = get_redis_client()
    if client is not None:
        try:
            return bool(await client.exists(f"{KEY_PREFIX}{key}"))
        except Exception as e:
            logger.warning(f"Redis blacklist read failed, using memory: {e}")

    expires = _memory_blacklist.get(key)
    if expires is None:
        return False
    if expires < time.time():
        _memory_blacklist.pop(key, None)
        return False
    return True


def clear_memory_blacklist() -> None:
    _memory_blacklist.clear()
