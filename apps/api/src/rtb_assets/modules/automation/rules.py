"""
Automation Rule Registry

Rules live in process memory and are rebuilt from the defaults on start.
Run outcomes are kept alongside so reports and statistics reflect what
actually ran in this process.
"""

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime

from apscheduler.triggers.cron import CronTrigger

from rtb_assets.modules.automation.schemas import (
    ActionType,
    AutomationAction,
    AutomationRule,
    AutomationRuleCreate,
    AutomationRuleUpdate,
)

logger = logging.getLogger(__name__)

RULE_MAINTENANCE_REMINDER = "maintenance-reminder"
RULE_WARRANTY_EXPIRY_ALERT = "warranty-expiry-alert"
RULE_OFFLINE_DEVICE_DETECTION = "offline-device-detection"
RULE_DEVICE_AGING_UPDATE = "device-aging-update"

# Keep the last N runs for reports
RUN_HISTORY_LIMIT = 500


def default_rules() -> list[AutomationRule]:
    return [
        AutomationRule(
            id=RULE_MAINTENANCE_REMINDER,
            name="Maintenance Reminder",
            description="Send maintenance reminders for devices due for service",
            trigger={"cron": "0 9 * * mon"},
            actions=[
                AutomationAction(
                    type=ActionType.EMAIL,
                    parameters={
                        "template": "maintenance-reminder",
                        "recipients": ["admin", "school"],
                    },
                )
            ],
        ),
        AutomationRule(
            id=RULE_WARRANTY_EXPIRY_ALERT,
            name="Warranty Expiry Alert",
            description="Alert when device warranties are about to expire",
            trigger={"cron": "0 10 1 * *"},
            actions=[
                AutomationAction(
                    type=ActionType.EMAIL,
                    parameters={"template": "warranty-expiry", "recipients": ["admin"]},
                )
            ],
        ),
        AutomationRule(
            id=RULE_OFFLINE_DEVICE_DETECTION,
            name="Offline Device Detection",
            description="Detect devices that have been offline for extended periods",
            trigger={"cron": "0 */6 * * *"},
            actions=[
                AutomationAction(
                    type=ActionType.STATUS_CHANGE,
                    parameters={"new_status": "inactive", "condition": "offline_7_days"},
                ),
                AutomationAction(
                    type=ActionType.NOTIFICATION,
                    parameters={"message": "Device has been offline for 7+ days"},
                ),
            ],
        ),
        AutomationRule(
            id=RULE_DEVICE_AGING_UPDATE,
            name="Device Aging Update",
            description="Update device conditions based on age and usage",
            trigger={"cron": "0 2 1 * *"},
            actions=[
                AutomationAction(
                    type=ActionType.STATUS_CHANGE,
                    parameters={"type": "age_based_condition_update"},
                )
            ],
        ),
    ]


def build_trigger(rule: AutomationRule) -> CronTrigger | None:
    """CronTrigger for a scheduled rule, or None when the rule has no cron."""
    if not rule.cron:
        return None
    return CronTrigger.from_crontab(rule.cron, timezone="UTC")


def job_id_for(rule_id: str) -> str:
    return f"automation_{rule_id}"


def new_rule_id() -> str:
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(5))
    return f"rule-{int(time.time() * 1000)}-{suffix}"


@dataclass
class RuleRun:
    rule_id: str
    started_at: datetime
    duration_seconds: float
    success: bool
    devices_processed: int = 0
    notifications_sent: int = 0
    maintenance_scheduled: int = 0


class RuleRegistry:
    """In-memory rule store with a bounded run history."""

    def __init__(self) -> None:
        self._rules: dict[str, AutomationRule] = {}
        self._runs: list[RuleRun] = []
        self.reset()

    def reset(self) -> None:
        self._rules = {rule.id: rule for rule in default_rules()}
        self._runs = []

    def all(self) -> list[AutomationRule]:
        return list(self._rules.values())

    def enabled(self) -> list[AutomationRule]:
        return [rule for rule in self._rules.values() if rule.enabled]

    def get(self, rule_id: str) -> AutomationRule | None:
        return self._rules.get(rule_id)

    def create(self, data: AutomationRuleCreate) -> AutomationRule:
        rule = AutomationRule(id=new_rule_id(), **data.model_dump())
        build_trigger(rule)
        self._rules[rule.id] = rule
        logger.info(f"Automation rule {rule.id} created ({rule.name})")
        return rule

    def update(self, rule_id: str, data: AutomationRuleUpdate) -> AutomationRule | None:
        rule = self._rules.get(rule_id)
        if rule is None:
            return None

        updated = rule.model_copy(update=data.model_dump(exclude_unset=True, exclude_none=True))
        # Re-validate the merged rule, including its cron expression
        updated = AutomationRule.model_validate(updated.model_dump())
        build_trigger(updated)
        self._rules[rule_id] = updated
        logger.info(f"Automation rule {rule_id} updated")
        return updated

    def delete(self, rule_id: str) -> bool:
        removed = self._rules.pop(rule_id, None) is not None
        if removed:
            logger.info(f"Automation rule {rule_id} deleted")
        return removed

    def toggle(self, rule_id: str) -> AutomationRule | None:
        rule = self._rules.get(rule_id)
        if rule is None:
            return None
        rule.enabled = not rule.enabled
        logger.info(f"Automation rule {rule_id} {'enabled' if rule.enabled else 'disabled'}")
        return rule

    # ============================================
    # Run history
    # ============================================

    def record_run(self, run: RuleRun) -> None:
        rule = self._rules.get(run.rule_id)
        if rule is not None and run.success:
            rule.last_run = run.started_at
        self._runs.append(run)
        if len(self._runs) > RUN_HISTORY_LIMIT:
            del self._runs[: len(self._runs) - RUN_HISTORY_LIMIT]

    def runs(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[RuleRun]:
        return [
            run
            for run in self._runs
            if (since is None or run.started_at >= since)
            and (until is None or run.started_at <= until)
        ]

    def last_execution_time(self) -> datetime | None:
        if not self._runs:
            return None
        return max(run.started_at for run in self._runs)


registry = RuleRegistry()

