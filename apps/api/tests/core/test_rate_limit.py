"""
Unit tests for rate limiting.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rtb_assets.core.rate_limit import RateLimitExceeded, check_rate_limit


class TestMemoryRateLimit:
    """Tests for the in-memory fallback."""

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        with patch("rtb_assets.core.rate_limit.get_redis_client", return_value=None):
            results = [await check_rate_limit("otp:1.2.3.4", 3, 60) for _ in range(4)]

        assert results == [True, True, True, False]

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        with patch("rtb_assets.core.rate_limit.get_redis_client", return_value=None):
            assert await check_rate_limit("otp:a", 1, 60) is True
            assert await check_rate_limit("otp:a", 1, 60) is False
            assert await check_rate_limit("otp:b", 1, 60) is True


class TestRedisRateLimit:
    """Tests for the Redis sliding window."""

    @pytest.mark.asyncio
    async def test_uses_window_count(self):
        """The zcard result decides whether the request is allowed."""
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[0, 5, 1, True])
        client = MagicMock()
        client.pipeline.return_value = pipe

        with patch("rtb_assets.core.rate_limit.get_redis_client", return_value=client):
            assert await check_rate_limit("login:ip", 5, 60) is False
            pipe.execute.return_value = [0, 4, 1, True]
            assert await check_rate_limit("login:ip", 5, 60) is True

    @pytest.mark.asyncio
    async def test_falls_back_to_memory_on_redis_error(self):
        pipe = MagicMock()
        pipe.execute = AsyncMock(side_effect=ConnectionError("redis gone"))
        client = MagicMock()
        client.pipeline.return_value = pipe

        with patch("rtb_assets.core.rate_limit.get_redis_client", return_value=client):
            assert await check_rate_limit("login:ip", 1, 60) is True
            assert await check_rate_limit("login:ip", 1, 60) is False


class TestRateLimitExceeded:
    def test_is_429_with_retry_after(self):
        exc = RateLimitExceeded(5, 60)
        assert exc.status_code == 429
        assert exc.headers["Retry-After"] == "60"
        assert exc.detail["error"] == "RATE_LIMIT_EXCEEDED"
