"""
Unit tests for the automation rule registry.
"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from rtb_assets.modules.automation.rules import (
    RULE_DEVICE_AGING_UPDATE,
    RULE_MAINTENANCE_REMINDER,
    RULE_OFFLINE_DEVICE_DETECTION,
    RULE_WARRANTY_EXPIRY_ALERT,
    RUN_HISTORY_LIMIT,
    RuleRun,
    build_trigger,
    job_id_for,
    new_rule_id,
    registry,
)
from rtb_assets.modules.automation.schemas import (
    AutomationRuleCreate,
    AutomationRuleUpdate,
    TriggerType,
)


class TestDefaultRules:
    """Tests for the built-in rules."""

    def test_four_enabled_rules(self):
        ids = {rule.id for rule in registry.enabled()}
        assert ids == {
            RULE_MAINTENANCE_REMINDER,
            RULE_WARRANTY_EXPIRY_ALERT,
            RULE_OFFLINE_DEVICE_DETECTION,
            RULE_DEVICE_AGING_UPDATE,
        }

    def test_every_default_rule_has_a_valid_cron(self):
        for rule in registry.all():
            assert build_trigger(rule) is not None

    def test_job_ids(self):
        assert job_id_for("device-aging-update") == "automation_device-aging-update"


class TestRuleCrud:
    """Tests for create, update, toggle and delete."""

    def test_create_assigns_generated_id(self):
        rule = registry.create(AutomationRuleCreate(name="Nightly", trigger={"cron": "0 1 * * *"}))
        assert rule.id.startswith("rule-")
        assert registry.get(rule.id) is rule

    def test_create_with_bad_cron(self):
        with pytest.raises(ValueError):
            registry.create(AutomationRuleCreate(name="Broken", trigger={"cron": "every day"}))

    def test_event_rule_has_no_trigger(self):
        rule = registry.create(
            AutomationRuleCreate(name="On event", trigger_type=TriggerType.EVENT)
        )
        assert rule.cron is None
        assert build_trigger(rule) is None

    def test_update_merges_fields(self):
        rule = registry.update(
            RULE_WARRANTY_EXPIRY_ALERT, AutomationRuleUpdate(trigger={"cron": "0 8 * * *"})
        )
        assert rule.cron == "0 8 * * *"
        assert rule.name == "Warranty Expiry Alert"

    def test_update_unknown_rule(self):
        assert registry.update("missing", AutomationRuleUpdate(name="x")) is None

    def test_toggle_flips_enabled(self):
        assert registry.toggle(RULE_DEVICE_AGING_UPDATE).enabled is False
        assert RULE_DEVICE_AGING_UPDATE not in {r.id for r in registry.enabled()}
        assert registry.toggle(RULE_DEVICE_AGING_UPDATE).enabled is True

    def test_delete(self):
        assert registry.delete(RULE_MAINTENANCE_REMINDER) is True
        assert registry.delete(RULE_MAINTENANCE_REMINDER) is False

    def test_rule_assignment_is_validated(self):
        rule = registry.get(RULE_MAINTENANCE_REMINDER)
        with pytest.raises(ValidationError):
            rule.enabled = "not a bool"

    def test_new_rule_ids_are_unique(self):
        assert len({new_rule_id() for _ in range(20)}) == 20


class TestRunHistory:
    """Tests for run recording."""

    def test_successful_run_sets_last_run(self):
        started = datetime.now(UTC)
        registry.record_run(RuleRun(RULE_MAINTENANCE_REMINDER, started, 0.1, success=True))
        assert registry.get(RULE_MAINTENANCE_REMINDER).last_run == started
        assert registry.last_execution_time() == started

    def test_failed_run_keeps_last_run(self):
        registry.record_run(RuleRun(RULE_MAINTENANCE_REMINDER, datetime.now(UTC), 0.1, False))
        assert registry.get(RULE_MAINTENANCE_REMINDER).last_run is None

    def test_history_is_bounded(self):
        now = datetime.now(UTC)
        for i in range(RUN_HISTORY_LIMIT + 10):
            registry.record_run(RuleRun("x", now + timedelta(seconds=i), 0.0, True))

        runs = registry.runs()
        assert len(runs) == RUN_HISTORY_LIMIT
        assert runs[0].started_at == now + timedelta(seconds=10)

    def test_runs_window(self):
        now = datetime.now(UTC)
        for offset in (-2, 0, 2):
            registry.record_run(RuleRun("x", now + timedelta(days=offset), 0.0, True))

        assert len(registry.runs(since=now - timedelta(days=1))) == 2
        assert len(registry.runs(until=now)) == 2
        assert len(registry.runs(since=now, until=now)) == 1
