"""
Unit tests for keeping scheduler jobs in step with the rule registry.
"""

from unittest.mock import patch

import pytest

from rtb_assets.modules.automation import jobs
from rtb_assets.modules.automation.rules import RULE_WARRANTY_EXPIRY_ALERT, registry
from rtb_assets.modules.automation.schemas import AutomationRuleCreate, TriggerType

JOBS = "rtb_assets.modules.automation.jobs"


@pytest.fixture
def scheduler_calls():
    with (
        patch(f"{JOBS}.register_job") as register,
        patch(f"{JOBS}.unregister_job") as unregister,
    ):
        yield register, unregister


class TestSyncRuleJob:
    def test_enabled_rule_is_registered(self, scheduler_calls):
        register, unregister = scheduler_calls

        assert jobs.sync_rule_job(registry.get(RULE_WARRANTY_EXPIRY_ALERT)) is True

        job_id, _func, trigger = register.call_args.args
        assert job_id == "automation_warranty-expiry-alert"
        assert trigger is not None
        unregister.assert_not_called()

    def test_disabled_rule_is_removed(self, scheduler_calls):
        register, unregister = scheduler_calls
        rule = registry.toggle(RULE_WARRANTY_EXPIRY_ALERT)

        assert jobs.sync_rule_job(rule) is False

        unregister.assert_called_once_with("automation_warranty-expiry-alert")
        register.assert_not_called()

    def test_event_rule_has_no_job(self, scheduler_calls):
        register, unregister = scheduler_calls
        rule = registry.create(AutomationRuleCreate(name="Manual", trigger_type=TriggerType.EVENT))

        assert jobs.sync_rule_job(rule) is False
        register.assert_not_called()

    def test_register_all_defaults(self, scheduler_calls):
        register, _ = scheduler_calls

        jobs.register_automation_jobs()

        assert register.call_count == 4


class TestScheduledRun:
    @pytest.mark.asyncio
    async def test_disabled_rule_is_skipped(self):
        run = jobs._job_for(RULE_WARRANTY_EXPIRY_ALERT)
        registry.toggle(RULE_WARRANTY_EXPIRY_ALERT)

        assert await run() == {"rule_id": RULE_WARRANTY_EXPIRY_ALERT, "status": "skipped"}

    @pytest.mark.asyncio
    async def test_deleted_rule_is_skipped(self):
        run = jobs._job_for("gone")

        result = await run()

        assert result["status"] == "skipped"
