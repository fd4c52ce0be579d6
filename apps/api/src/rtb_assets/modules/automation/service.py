"""
Automation Service

Business logic for scheduled automation:
- maintenance reminders (and rescheduling of the next service date)
- warranty expiry alerts
- offline device detection
- age/usage based condition degradation

Every routine commits its own changes and then dispatches its alert
emails in the background. A failing rule never stops the others when
they run together.
"""

import calendar
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from types import SimpleNamespace
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core import email
from rtb_assets.core.config import settings
from rtb_assets.core.notifications import dispatch_notification
from rtb_assets.core.scheduler import get_next_run_time
from rtb_assets.modules.analytics.calculations import device_brief
from rtb_assets.modules.analytics.schemas import DeviceBrief
from rtb_assets.modules.automation import repository
from rtb_assets.modules.automation.rules import (
    RULE_DEVICE_AGING_UPDATE,
    RULE_MAINTENANCE_REMINDER,
    RULE_OFFLINE_DEVICE_DETECTION,
    RULE_WARRANTY_EXPIRY_ALERT,
    RuleRun,
    job_id_for,
    registry,
)
from rtb_assets.modules.automation.schemas import (
    AgingUpdateResult,
    AutomationReport,
    AutomationRule,
    AutomationRuleCreate,
    AutomationRuleUpdate,
    AutomationStatistics,
    MaintenancePriority,
    MaintenanceScheduleCreate,
    MaintenanceScheduleItem,
    MaintenanceScheduleUpdate,
    MaintenanceType,
    RuleExecutionResult,
)
from rtb_assets.modules.devices.models import Device, DeviceCondition, DeviceStatus

logger = logging.getLogger(__name__)

MAINTENANCE_LOOKAHEAD_DAYS = 7
MAINTENANCE_INTERVAL_MONTHS = 6
WARRANTY_LOOKAHEAD_DAYS = 30
OFFLINE_AFTER_DAYS = 7
IDLE_DEGRADE_AFTER_DAYS = 30

# (minimum age, current condition, degraded condition); one step per run
AGING_LADDER = (
    (5, DeviceCondition.EXCELLENT, DeviceCondition.GOOD),
    (7, DeviceCondition.GOOD, DeviceCondition.FAIR),
    (10, DeviceCondition.FAIR, DeviceCondition.POOR),
)


# ============================================
# Custom Exceptions
# ============================================


class AutomationServiceError(Exception):
    """Base exception for automation service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class AutomationRuleNotFoundError(AutomationServiceError):
    def __init__(self, rule_id: str):
        super().__init__(f"Automation rule {rule_id} not found.", "RULE_NOT_FOUND", 404)


class AutomationDeviceNotFoundError(AutomationServiceError):
    def __init__(self, device_id: int):
        super().__init__(f"Device {device_id} not found.", "DEVICE_NOT_FOUND", 404)


class AutomationValidationError(AutomationServiceError):
    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR", 422)


class AutomationExecutionError(AutomationServiceError):
    def __init__(self, rule_id: str):
        super().__init__(
            f"Automation rule {rule_id} failed. See server logs for details.",
            "AUTOMATION_FAILED",
            500,
        )


# ============================================
# Pure helpers
# ============================================


def _today() -> date:
    return datetime.now(UTC).date()


def add_months(day: date, months: int) -> date:
    """Calendar month arithmetic, clamping to the last day of short months."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def next_maintenance_after_reminder(today: date) -> date:
    reminder_week = today + timedelta(days=MAINTENANCE_LOOKAHEAD_DAYS)
    return add_months(reminder_week, MAINTENANCE_INTERVAL_MONTHS)


def degraded_condition(
    condition: DeviceCondition,
    age: int | None,
    days_since_seen: int | None,
) -> DeviceCondition:
    """
    Condition after one aging pass.

    Devices without a purchase date are left alone. Otherwise at most one
    age step applies, and a device idle for more than 30 days cannot stay
    EXCELLENT.
    """
    if age is None:
        return condition

    new_condition = condition
    for min_age, current, lower in AGING_LADDER:
        if age >= min_age and condition == current:
            new_condition = lower
            break

    if (
        days_since_seen is not None
        and days_since_seen > IDLE_DEGRADE_AFTER_DAYS
        and condition == DeviceCondition.EXCELLENT
    ):
        new_condition = DeviceCondition.GOOD

    return new_condition


def maintenance_priority(device: Device) -> MaintenancePriority:
    if device.condition == DeviceCondition.BROKEN:
        return MaintenancePriority.CRITICAL
    if device.condition == DeviceCondition.POOR or device.maintenance_overdue:
        return MaintenancePriority.HIGH
    if device.needs_maintenance:
        return MaintenancePriority.MEDIUM
    return MaintenancePriority.LOW


def estimate_maintenance_cost(device: Device) -> int:
    """10% of the purchase cost, plus 2% of that per year of age."""
    base = Decimal(device.purchase_cost or 0) * Decimal("0.1")
    age_factor = Decimal(device.age_in_years or 0) * Decimal("0.02")
    return int((base * (1 + age_factor)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def efficiency(successes: int, executed: int) -> float:
    if executed == 0:
        return 0.0
    return round(successes / executed * 100, 2)


def _snapshot(device: Device) -> SimpleNamespace:
    """Plain copy of what the alert emails render, taken before any change."""
    school = device.school
    return SimpleNamespace(
        id=device.id,
        name_tag=device.name_tag,
        serial_number=device.serial_number,
        school=SimpleNamespace(name=school.name) if school is not None else None,
        next_maintenance_date=device.next_maintenance_date,
        warranty_expiry=device.warranty_expiry,
        last_seen_at=device.last_seen_at,
    )


def _notify(
    name: str,
    sender: Callable[[list[Any], Iterable[str]], Awaitable[bool]],
    devices: list[SimpleNamespace],
    recipients: list[str],
) -> int:
    """Dispatch one alert email; returns the number of recipients addressed."""
    if not devices or not recipients:
        return 0
    dispatch_notification(name, partial(sender, devices, list(recipients)))
    return len(recipients)


def _briefs(devices: list[Device]) -> list[DeviceBrief]:
    return [DeviceBrief(**device_brief(d)) for d in devices]


# ============================================
# Routines
# ============================================


async def run_maintenance_reminder(db: AsyncSession) -> RuleExecutionResult:
    """
    Remind about devices due within a week, then push their next service
    date out by six months from the reminder week.
    """
    today = _today()
    devices = await repository.devices_due_for_maintenance(
        db, today + timedelta(days=MAINTENANCE_LOOKAHEAD_DAYS)
    )
    result = RuleExecutionResult(rule_id=RULE_MAINTENANCE_REMINDER)
    if not devices:
        return result

    snapshots = [_snapshot(d) for d in devices]
    by_school_contact: dict[str, list[SimpleNamespace]] = defaultdict(list)
    for device, snapshot in zip(devices, snapshots, strict=True):
        if device.school is not None and device.school.user is not None:
            by_school_contact[device.school.user.email].append(snapshot)

    next_date = next_maintenance_after_reminder(today)
    for device in devices:
        device.next_maintenance_date = next_date
    await db.commit()
    logger.info(f"Maintenance reminder: {len(devices)} device(s) rescheduled to {next_date}")

    sent = _notify(
        "maintenance_reminder",
        email.send_maintenance_reminder,
        snapshots,
        settings.admin_notification_list,
    )
    for contact, school_devices in by_school_contact.items():
        sent += _notify(
            "maintenance_reminder_school",
            email.send_maintenance_reminder,
            school_devices,
            [contact],
        )

    result.devices_processed = len(devices)
    result.notifications_sent = sent
    result.maintenance_scheduled = len(devices)
    return result


async def run_warranty_expiry_alert(db: AsyncSession) -> RuleExecutionResult:
    today = _today()
    devices = await repository.devices_with_warranty_between(
        db, today, today + timedelta(days=WARRANTY_LOOKAHEAD_DAYS)
    )
    sent = _notify(
        "warranty_expiry_alert",
        email.send_warranty_expiry_alert,
        [_snapshot(d) for d in devices],
        settings.admin_notification_list,
    )
    if devices:
        logger.info(f"Warranty alert: {len(devices)} device(s) expiring within 30 days")
    return RuleExecutionResult(
        rule_id=RULE_WARRANTY_EXPIRY_ALERT,
        devices_processed=len(devices),
        notifications_sent=sent,
    )


async def run_offline_device_detection(db: AsyncSession) -> RuleExecutionResult:
    """Mark ACTIVE devices unseen for more than 7 days as INACTIVE."""
    cutoff = datetime.now(UTC) - timedelta(days=OFFLINE_AFTER_DAYS)
    devices = await repository.devices_last_seen_before(db, cutoff, status=DeviceStatus.ACTIVE)
    result = RuleExecutionResult(rule_id=RULE_OFFLINE_DEVICE_DETECTION)
    if not devices:
        return result

    snapshots = [_snapshot(d) for d in devices]
    for device in devices:
        device.status = DeviceStatus.INACTIVE
    await db.commit()
    logger.info(f"Offline detection: {len(devices)} device(s) set inactive")

    result.devices_processed = len(devices)
    result.notifications_sent = _notify(
        "offline_device_alert",
        email.send_offline_device_alert,
        snapshots,
        settings.admin_notification_list,
    )
    return result


async def update_device_aging(db: AsyncSession) -> AgingUpdateResult:
    """Refresh the stored age and apply one step of condition degradation."""
    devices = await repository.devices_with_purchase_date(db)
    refreshed = degraded = processed = 0

    for device in devices:
        changed = False
        age = device.age_in_years
        if age is not None and age != device.age:
            device.age = age
            refreshed += 1
            changed = True

        new_condition = degraded_condition(device.condition, age, device.days_since_last_seen)
        if new_condition != device.condition:
            logger.info(
                f"Device {device.id} condition {device.condition.value} -> {new_condition.value}"
            )
            device.condition = new_condition
            degraded += 1
            changed = True

        if changed:
            processed += 1

    if processed:
        await db.commit()
    logger.info(f"Aging update: {refreshed} age(s) refreshed, {degraded} condition(s) degraded")
    return AgingUpdateResult(
        devices_processed=processed,
        ages_refreshed=refreshed,
        conditions_degraded=degraded,
    )


async def run_device_aging_update(db: AsyncSession) -> RuleExecutionResult:
    aging = await update_device_aging(db)
    return RuleExecutionResult(
        rule_id=RULE_DEVICE_AGING_UPDATE,
        devices_processed=aging.devices_processed,
    )


ROUTINES: dict[str, Callable[[AsyncSession], Awaitable[RuleExecutionResult]]] = {
    RULE_MAINTENANCE_REMINDER: run_maintenance_reminder,
    RULE_WARRANTY_EXPIRY_ALERT: run_warranty_expiry_alert,
    RULE_OFFLINE_DEVICE_DETECTION: run_offline_device_detection,
    RULE_DEVICE_AGING_UPDATE: run_device_aging_update,
}


# ============================================
# Execution
# ============================================


async def execute_rule(db: AsyncSession, rule: AutomationRule) -> RuleExecutionResult:
    """Run one rule and record the outcome. Exceptions propagate after rollback."""
    routine = ROUTINES.get(rule.id)
    started_at = datetime.now(UTC)
    clock = time.perf_counter()

    if routine is None:
        logger.warning(f"No routine bound to automation rule {rule.id}, nothing to do")
        result = RuleExecutionResult(rule_id=rule.id)
    else:
        try:
            result = await routine(db)
        except Exception:
            await db.rollback()
            registry.record_run(
                RuleRun(rule.id, started_at, time.perf_counter() - clock, success=False)
            )
            raise

    registry.record_run(
        RuleRun(
            rule.id,
            started_at,
            time.perf_counter() - clock,
            success=True,
            devices_processed=result.devices_processed,
            notifications_sent=result.notifications_sent,
            maintenance_scheduled=result.maintenance_scheduled,
        )
    )
    logger.info(
        f"Automation rule {rule.id} done: {result.devices_processed} device(s), "
        f"{result.notifications_sent} notification(s)"
    )
    return result


async def execute_automation_rules(db: AsyncSession) -> AutomationReport:
    """Run every enabled rule. One rule failing does not stop the rest."""
    report = AutomationReport()

    for rule in registry.enabled():
        report.total_rules_executed += 1
        try:
            result = await execute_rule(db, rule)
        except Exception as e:
            logger.error(f"Automation rule {rule.id} failed: {e}", exc_info=True)
            report.failed_executions += 1
            report.failed_rules.append(rule.id)
            continue

        report.successful_executions += 1
        report.devices_processed += result.devices_processed
        report.notifications_sent += result.notifications_sent
        report.maintenance_scheduled += result.maintenance_scheduled

    report.automation_efficiency = efficiency(
        report.successful_executions, report.total_rules_executed
    )
    logger.info(
        f"Automation run: {report.successful_executions}/{report.total_rules_executed} "
        f"rules succeeded"
    )
    return report


async def execute_automation_rule(db: AsyncSession, rule_id: str) -> RuleExecutionResult:
    rule = get_rule(rule_id)
    try:
        return await execute_rule(db, rule)
    except Exception as e:
        logger.error(f"Automation rule {rule_id} failed: {e}", exc_info=True)
        raise AutomationExecutionError(rule_id) from e


def send_report(report: AutomationReport) -> int:
    recipients = settings.admin_notification_list
    if not recipients:
        return 0
    dispatch_notification(
        "automation_report",
        partial(email.send_automation_report, report.model_dump(), list(recipients)),
    )
    return len(recipients)


# ============================================
# Rules
# ============================================


def _with_next_run(rule: AutomationRule) -> AutomationRule:
    rule.next_run = get_next_run_time(job_id_for(rule.id)) if rule.enabled else None
    return rule


def get_rules() -> list[AutomationRule]:
    return [_with_next_run(rule) for rule in registry.all()]


def get_rule(rule_id: str) -> AutomationRule:
    rule = registry.get(rule_id)
    if rule is None:
        raise AutomationRuleNotFoundError(rule_id)
    return rule


def create_rule(data: AutomationRuleCreate) -> AutomationRule:
    try:
        return registry.create(data)
    except ValueError as e:
        raise AutomationValidationError(f"Invalid rule trigger: {e}") from e


def update_rule(rule_id: str, data: AutomationRuleUpdate) -> AutomationRule:
    try:
        rule = registry.update(rule_id, data)
    except ValueError as e:
        raise AutomationValidationError(f"Invalid rule trigger: {e}") from e
    if rule is None:
        raise AutomationRuleNotFoundError(rule_id)
    return rule


def delete_rule(rule_id: str) -> None:
    if not registry.delete(rule_id):
        raise AutomationRuleNotFoundError(rule_id)


def toggle_rule(rule_id: str) -> AutomationRule:
    rule = registry.toggle(rule_id)
    if rule is None:
        raise AutomationRuleNotFoundError(rule_id)
    return rule


# ============================================
# Reports
# ============================================


def get_automation_report(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> AutomationReport:
    """Aggregate the recorded rule runs in the window."""
    if start_date and end_date and start_date > end_date:
        raise AutomationValidationError("start_date must not be after end_date.")

    runs = registry.runs(since=start_date, until=end_date)
    successes = [run for run in runs if run.success]
    return AutomationReport(
        total_rules_executed=len(runs),
        successful_executions=len(successes),
        failed_executions=len(runs) - len(successes),
        devices_processed=sum(run.devices_processed for run in successes),
        notifications_sent=sum(run.notifications_sent for run in successes),
        maintenance_scheduled=sum(run.maintenance_scheduled for run in successes),
        automation_efficiency=efficiency(len(successes), len(runs)),
        failed_rules=sorted({run.rule_id for run in runs if not run.success}),
    )


def get_automation_statistics() -> AutomationStatistics:
    rules = registry.all()
    enabled = sum(1 for rule in rules if rule.enabled)
    runs = registry.runs()
    successes = sum(1 for run in runs if run.success)
    average = sum(run.duration_seconds for run in runs) / len(runs) if runs else 0.0

    return AutomationStatistics(
        total_rules=len(rules),
        enabled_rules=enabled,
        disabled_rules=len(rules) - enabled,
        last_execution_time=registry.last_execution_time(),
        average_execution_time=round(average, 3),
        success_rate=efficiency(successes, len(runs)),
    )


# ============================================
# Maintenance schedule
# ============================================


def _schedule_item(device: Device, **overrides) -> MaintenanceScheduleItem:
    fields = {
        "device_id": device.id,
        "name_tag": device.name_tag,
        "school_id": device.school_id,
        "scheduled_date": device.next_maintenance_date,
        "type": MaintenanceType.PREVENTIVE,
        "description": f"Scheduled maintenance for {device.name_tag}",
        "priority": maintenance_priority(device),
        "estimated_cost": estimate_maintenance_cost(device),
        "assigned_technician": "TBD",
    }
    fields.update({key: value for key, value in overrides.items() if value is not None})
    return MaintenanceScheduleItem(**fields)


async def get_maintenance_schedule(
    db: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    school_id: int | None = None,
    priority: MaintenancePriority | None = None,
) -> list[MaintenanceScheduleItem]:
    devices = await repository.scheduled_devices(db, start_date, end_date, school_id)
    items = [_schedule_item(device) for device in devices]
    if priority:
        items = [item for item in items if item.priority == priority]
    return items


async def _get_device(db: AsyncSession, device_id: int) -> Device:
    device = await repository.get_device(db, device_id)
    if device is None:
        raise AutomationDeviceNotFoundError(device_id)
    return device


async def schedule_maintenance(
    db: AsyncSession,
    data: MaintenanceScheduleCreate,
) -> MaintenanceScheduleItem:
    device = await _get_device(db, data.device_id)
    device.next_maintenance_date = data.scheduled_date
    await db.commit()
    logger.info(f"Maintenance for device {device.id} scheduled on {data.scheduled_date}")

    return _schedule_item(
        device,
        type=data.type,
        description=data.description.strip() or None,
        priority=data.priority,
        estimated_cost=float(data.estimated_cost) if data.estimated_cost is not None else None,
        assigned_technician=data.assigned_technician,
    )


async def update_maintenance_schedule(
    db: AsyncSession,
    device_id: int,
    data: MaintenanceScheduleUpdate,
) -> MaintenanceScheduleItem:
    device = await _get_device(db, device_id)
    if data.scheduled_date is None and device.next_maintenance_date is None:
        raise AutomationValidationError("Device has no scheduled maintenance to update.")

    if data.scheduled_date is not None:
        device.next_maintenance_date = data.scheduled_date
        await db.commit()
        logger.info(f"Maintenance for device {device.id} moved to {data.scheduled_date}")

    return _schedule_item(
        device,
        description=f"Updated maintenance for {device.name_tag}",
        assigned_technician=data.assigned_technician,
    )


# ============================================
# Checks
# ============================================


async def check_maintenance_needed(db: AsyncSession) -> list[DeviceBrief]:
    """Devices whose service date is today or already past."""
    return _briefs(await repository.devices_due_for_maintenance(db, _today()))


async def check_warranty_expiries(db: AsyncSession, days_ahead: int = 30) -> list[DeviceBrief]:
    today = _today()
    devices = await repository.devices_with_warranty_between(
        db, today, today + timedelta(days=days_ahead)
    )
    return _briefs(devices)


async def detect_offline_devices(db: AsyncSession, hours_offline: int = 24) -> list[DeviceBrief]:
    cutoff = datetime.now(UTC) - timedelta(hours=hours_offline)
    return _briefs(await repository.devices_last_seen_before(db, cutoff))
