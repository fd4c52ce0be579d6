"""
Background Job Scheduler

APScheduler (AsyncIO) wrapper used by the automation module.

Jobs are registered into a module-level registry first so they can be run
on demand through the debug endpoints even when the scheduler is disabled.
When the scheduler is running, registration also adds the job with its
trigger (interval or cron).

Usage:
    register_job("automation_offline-device-detection", run_rule, CronTrigger(hour="*/6"))
    await start_scheduler()
    ...
    await stop_scheduler()
"""

import logging
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Coroutine[Any, Any, Any]]

_scheduler: AsyncIOScheduler | None = None

# job_id -> (func, trigger)
_job_registry: dict[str, tuple[JobFunc, BaseTrigger]] = {}


class SchedulerConfig:
    """Scheduler defaults."""

    TIMEZONE = "UTC"

    JOB_DEFAULTS = {
        # Missed runs collapse into one
        "coalesce": True,
        "max_instances": 1,
        "misfire_grace_time": 60 * 5,
    }


def _job_listener(event: JobExecutionEvent) -> None:
    if event.exception:
        logger.error(
            f"Job {event.job_id} failed: {event.exception}",
            exc_info=event.exception,
        )
    else:
        logger.info(f"Job {event.job_id} completed at {datetime.now(UTC).isoformat()}")


def get_scheduler() -> AsyncIOScheduler | None:
    return _scheduler


async def start_scheduler() -> AsyncIOScheduler:
    """
    Create and start the scheduler, adding every job already in the registry.

    Returns:
        The running scheduler
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler already running, returning existing instance")
        return _scheduler

    _scheduler = AsyncIOScheduler(
        timezone=SchedulerConfig.TIMEZONE,
        job_defaults=SchedulerConfig.JOB_DEFAULTS,
    )
    _scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    for job_id, (func, trigger) in _job_registry.items():
        _scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)

    _scheduler.start()
    logger.info(f"Scheduler started with {len(_job_registry)} jobs")
    return _scheduler


async def stop_scheduler() -> None:
    """Shut down the scheduler, waiting for running jobs."""
    global _scheduler

    if _scheduler is None or not _scheduler.running:
        logger.debug("Scheduler not running, nothing to stop")
        return

    _scheduler.shutdown(wait=True)
    _scheduler = None
    logger.info("Scheduler stopped")


def register_job(job_id: str, func: JobFunc, trigger: BaseTrigger) -> None:
    """
    Register (or replace) a job.

    Args:
        job_id: Unique job identifier
        func: Async callable with no arguments
        trigger: APScheduler trigger (IntervalTrigger, CronTrigger, ...)
    """
    _job_registry[job_id] = (func, trigger)

    if _scheduler is None:
        logger.debug(f"Scheduler not started, job {job_id} queued in registry")
        return

    _scheduler.add_job(func, trigger=trigger, id=job_id, replace_existing=True)
    logger.info(f"Registered job: {job_id}")


def unregister_job(job_id: str) -> bool:
    """Remove a job from the registry and the scheduler."""
    removed = _job_registry.pop(job_id, None) is not None

    if _scheduler is not None and _scheduler.get_job(job_id):
        _scheduler.remove_job(job_id)

    if removed:
        logger.info(f"Unregistered job: {job_id}")
    return removed


async def trigger_job_manually(job_id: str) -> dict[str, Any]:
    """
    Run a registered job immediately, outside its schedule.

    Returns:
        Dict with job_id, status ("success" or "error"), executed_at, and
        either the job's return value under "result" or the error message

    Raises:
        ValueError: If job_id is not registered
    """
    if job_id not in _job_registry:
        raise ValueError(
            f"Job {job_id} not found in registry. Available jobs: {list(_job_registry.keys())}"
        )

    func, _trigger = _job_registry[job_id]
    executed_at = datetime.now(UTC)
    logger.info(f"Manually triggering job: {job_id}")

    try:
        result = await func()
    except Exception as e:
        logger.error(f"Manual execution of job {job_id} failed: {e}", exc_info=True)
        return {
            "job_id": job_id,
            "status": "error",
            "executed_at": executed_at.isoformat(),
            "error": str(e),
        }

    return {
        "job_id": job_id,
        "status": "success",
        "executed_at": executed_at.isoformat(),
        "result": result,
    }


def list_registered_jobs() -> list[dict[str, Any]]:
    """Describe registered jobs with their next run time and pause state."""
    jobs = []

    for job_id, (_func, trigger) in _job_registry.items():
        info: dict[str, Any] = {"job_id": job_id, "trigger": str(trigger)}

        scheduled = _scheduler.get_job(job_id) if _scheduler is not None else None
        if scheduled is not None:
            info["next_run_time"] = (
                scheduled.next_run_time.isoformat() if scheduled.next_run_time else None
            )
            info["is_paused"] = scheduled.next_run_time is None
        else:
            info["next_run_time"] = None
            info["is_paused"] = True

        jobs.append(info)

    return jobs


def get_next_run_time(job_id: str) -> datetime | None:
    if _scheduler is None:
        return None
    job = _scheduler.get_job(job_id)
    return job.next_run_time if job else None


def pause_job(job_id: str) -> bool:
    if _scheduler is None or not _scheduler.get_job(job_id):
        logger.warning(f"Cannot pause job {job_id}: not scheduled")
        return False

    _scheduler.pause_job(job_id)
    logger.info(f"Paused job: {job_id}")
    return True


def resume_job(job_id: str) -> bool:
    if _scheduler is None or not _scheduler.get_job(job_id):
        logger.warning(f"Cannot resume job {job_id}: not scheduled")
        return False

    _scheduler.resume_job(job_id)
    logger.info(f"Resumed job: {job_id}")
    return True
