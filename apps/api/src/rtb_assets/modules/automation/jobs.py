"""
Automation Background Jobs

Each enabled scheduled rule becomes one APScheduler job with a
CronTrigger built from the rule's crontab expression. Jobs open their
own database session and can also be triggered through /debug/jobs.
"""

import logging
from typing import Any

from rtb_assets.core.database import async_session_maker
from rtb_assets.core.scheduler import register_job, unregister_job
from rtb_assets.modules.automation import service
from rtb_assets.modules.automation.rules import build_trigger, job_id_for, registry
from rtb_assets.modules.automation.schemas import AutomationRule

logger = logging.getLogger(__name__)


def _job_for(rule_id: str):
    async def run() -> dict[str, Any]:
        rule = registry.get(rule_id)
        if rule is None or not rule.enabled:
            logger.info(f"Automation rule {rule_id} is gone or disabled, skipping scheduled run")
            return {"rule_id": rule_id, "status": "skipped"}

        async with async_session_maker() as db:
            result = await service.execute_rule(db, rule)
        return result.model_dump()

    run.__name__ = f"run_{rule_id.replace('-', '_')}"
    return run


def sync_rule_job(rule: AutomationRule) -> bool:
    """
    Make the scheduler match the rule: registered when it is enabled and
    scheduled, absent otherwise.

    Returns:
        True if a job is registered for the rule afterwards
    """
    job_id = job_id_for(rule.id)
    trigger = build_trigger(rule) if rule.enabled else None

    if trigger is None:
        unregister_job(job_id)
        return False

    register_job(job_id, _job_for(rule.id), trigger)
    return True


def remove_rule_job(rule_id: str) -> None:
    unregister_job(job_id_for(rule_id))


def register_automation_jobs() -> None:
    """
    Register every enabled scheduled rule.

    Call during application startup, before the scheduler is started.
    """
    logger.info("Registering automation background jobs...")

    registered = 0
    for rule in registry.all():
        if sync_rule_job(rule):
            logger.info(f"Registered job: {job_id_for(rule.id)} (cron: {rule.cron})")
            registered += 1

    logger.info(f"Automation background jobs registered: {registered}")
