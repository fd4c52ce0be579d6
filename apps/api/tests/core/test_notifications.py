"""
Unit tests for background notification delivery.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from rtb_assets.core.notifications import (
    deliver_with_retry,
    dispatch_notification,
    drain_pending,
    get_notification_stats,
)


class TestDeliverWithRetry:
    """Tests for deliver_with_retry."""

    @pytest.mark.asyncio
    async def test_first_attempt_success(self):
        """A sender that succeeds immediately is called once."""
        sender = AsyncMock(return_value=True)

        assert await deliver_with_retry("welcome", sender, max_retries=3, base_delay=0) is True
        sender.assert_awaited_once()

        stats = get_notification_stats()
        assert stats["sent"] == 1
        assert stats["retried"] == 0
        assert stats["failed"] == 0

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """False and exceptions both count as failed attempts."""
        sender = AsyncMock(side_effect=[False, RuntimeError("provider down"), True])

        assert await deliver_with_retry("welcome", sender, max_retries=3, base_delay=0) is True
        assert sender.await_count == 3

        stats = get_notification_stats()
        assert stats["sent"] == 1
        assert stats["retried"] == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        """Exhausted retries are counted as one failure."""
        sender = AsyncMock(return_value=False)

        assert await deliver_with_retry("welcome", sender, max_retries=2, base_delay=0) is False
        assert sender.await_count == 3

        stats = get_notification_stats()
        assert stats["failed"] == 1
        assert stats["sent"] == 0


class TestDispatchNotification:
    """Tests for dispatch_notification."""

    @pytest.mark.asyncio
    async def test_dispatch_runs_in_background(self):
        """The send happens after the caller returns and drain waits for it."""
        started = asyncio.Event()

        async def sender():
            started.set()
            return True

        task = dispatch_notification("status_changed", sender)
        assert task is not None
        assert not started.is_set()

        await drain_pending(timeout=1)

        assert started.is_set()
        stats = get_notification_stats()
        assert stats["dispatched"] == 1
        assert stats["sent"] == 1
        assert stats["pending"] == 0

    def test_dispatch_without_loop_is_dropped(self):
        """Outside an event loop the notification is counted as failed."""
        sender = AsyncMock(return_value=True)

        assert dispatch_notification("status_changed", sender) is None

        stats = get_notification_stats()
        assert stats["dispatched"] == 1
        assert stats["failed"] == 1
        sender.assert_not_called()

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self):
        """Draining an empty queue returns immediately."""
        await drain_pending(timeout=0.1)
        assert get_notification_stats()["pending"] == 0
