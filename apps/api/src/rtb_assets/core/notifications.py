"""
Notification Dispatcher

Fire-and-forget delivery of notification emails.

Workflow operations call `dispatch_notification` after their database work
has committed. The send runs as a background asyncio task, so a slow or
failing mail provider never blocks or fails the request. Failed sends are
retried with exponential backoff and every outcome is counted so operators
can observe delivery through the debug endpoint.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import Any

from rtb_assets.core.config import settings

logger = logging.getLogger(__name__)

NotificationSender = Callable[[], Awaitable[bool]]


@dataclass
class NotificationStats:
    dispatched: int = 0
    sent: int = 0
    failed: int = 0
    retried: int = 0


_stats = NotificationStats()

# Strong references so pending tasks are not garbage collected
_pending: set[asyncio.Task] = set()


async def deliver_with_retry(
    name: str,
    sender: NotificationSender,
    max_retries: int | None = None,
    base_delay: float | None = None,
) -> bool:
    """
    Run `sender` until it reports success or retries are exhausted.

    A sender "fails" when it returns False or raises. The delay before
    attempt n (n >= 1) is base_delay * 2 ** (n - 1).

    Returns:
        True if a send succeeded
    """
    retries = settings.notification_max_retries if max_retries is None else max_retries
    delay = settings.notification_retry_base_seconds if base_delay is None else base_delay

    for attempt in range(retries + 1):
        if attempt > 0:
            _stats.retried += 1
            await asyncio.sleep(delay * 2 ** (attempt - 1))

        try:
            if await sender():
                _stats.sent += 1
                logger.info(f"Notification '{name}' delivered (attempt {attempt + 1})")
                return True
            logger.warning(f"Notification '{name}' attempt {attempt + 1} reported failure")
        except Exception as e:
            logger.warning(f"Notification '{name}' attempt {attempt + 1} raised: {e}")

    _stats.failed += 1
    logger.error(f"Notification '{name}' failed after {retries + 1} attempts")
    return False


def dispatch_notification(name: str, sender: NotificationSender) -> asyncio.Task | None:
    """
    Schedule a notification in the background.

    Usage:
        dispatch_notification(
            "application_created",
            lambda: email.send_new_application_notification(...),
        )

    Returns:
        The scheduled task, or None when no event loop is running
    """
    _stats.dispatched += 1

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _stats.failed += 1
        logger.error(f"Notification '{name}' dropped: no running event loop")
        return None

    task = loop.create_task(deliver_with_retry(name, sender))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def drain_pending(timeout: float | None = None) -> None:
    """Wait for in-flight notifications. Used on shutdown and in tests."""
    if not _pending:
        return
    done, pending = await asyncio.wait(set(_pending), timeout=timeout)
    if pending:
        logger.warning(f"{len(pending)} notification(s) still pending after drain")


def get_notification_stats() -> dict[str, Any]:
    stats = asdict(_stats)
    stats["pending"] = len(_pending)
    return stats


def reset_notification_stats() -> None:
    global _stats
    _stats = NotificationStats()
