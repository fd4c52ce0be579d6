"""
Automation Router

Endpoints:
- GET /automation/rules - List rules
- POST /automation/rules - Create rule
- PUT /automation/rules/{id} - Update rule
- DELETE /automation/rules/{id} - Delete rule
- PATCH /automation/rules/{id}/toggle - Enable/disable rule
- POST /automation/rules/{id}/execute - Run one rule now
- GET /automation/maintenance/schedule - Upcoming maintenance
- POST /automation/maintenance/schedule - Schedule maintenance for a device
- PUT /automation/maintenance/schedule/{device_id} - Move scheduled maintenance
- GET /automation/maintenance/needed - Devices due today or overdue
- GET /automation/warranty/expiring - Warranties expiring soon
- GET /automation/devices/offline - Devices not seen recently
- POST /automation/devices/aging/update - Refresh ages and conditions
- GET /automation/reports - Aggregated rule runs
- GET /automation/statistics - Rule counts and run statistics
- POST /automation/run-all - Run every enabled rule
"""

import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import ROLE_RTB_STAFF, ROLE_TECHNICIAN, CurrentUser, require_roles
from rtb_assets.core.database import get_db
from rtb_assets.modules.analytics.schemas import DeviceBrief
from rtb_assets.modules.automation import jobs, service
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
    RuleExecutionResult,
)
from rtb_assets.modules.automation.service import AutomationServiceError

logger = logging.getLogger(__name__)

router = APIRouter()

require_operator = require_roles(ROLE_RTB_STAFF)
require_maintainer = require_roles(ROLE_RTB_STAFF, ROLE_TECHNICIAN)


def _handle_service_error(e: AutomationServiceError) -> None:
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


# ============================================
# Rules
# ============================================


@router.get("/rules", response_model=list[AutomationRule])
async def list_rules(user: CurrentUser = Depends(require_operator)) -> list[AutomationRule]:
    return service.get_rules()


@router.post("/rules", response_model=AutomationRule, status_code=status.HTTP_201_CREATED)
async def create_rule(
    data: AutomationRuleCreate,
    user: CurrentUser = Depends(require_operator),
) -> AutomationRule:
    try:
        rule = service.create_rule(data)
        jobs.sync_rule_job(rule)
        logger.info(f"User {user.id} created automation rule {rule.id}")
        return rule
    except AutomationServiceError as e:
        _handle_service_error(e)


@router.put("/rules/{rule_id}", response_model=AutomationRule)
async def update_rule(
    rule_id: str,
    data: AutomationRuleUpdate,
    user: CurrentUser = Depends(require_operator),
) -> AutomationRule:
    try:
        rule = service.update_rule(rule_id, data)
        jobs.sync_rule_job(rule)
        return rule
    except AutomationServiceError as e:
        _handle_service_error(e)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rule(rule_id: str, user: CurrentUser = Depends(require_operator)) -> None:
    try:
        service.delete_rule(rule_id)
        jobs.remove_rule_job(rule_id)
        logger.info(f"User {user.id} deleted automation rule {rule_id}")
    except AutomationServiceError as e:
        _handle_service_error(e)


@router.patch("/rules/{rule_id}/toggle", response_model=AutomationRule)
async def toggle_rule(
    rule_id: str,
    user: CurrentUser = Depends(require_operator),
) -> AutomationRule:
    try:
        rule = service.toggle_rule(rule_id)
        jobs.sync_rule_job(rule)
        return rule
    except AutomationServiceError as e:
        _handle_service_error(e)


@router.post("/rules/{rule_id}/execute", response_model=RuleExecutionResult)
async def execute_rule(
    rule_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_operator),
) -> RuleExecutionResult:
    try:
        logger.info(f"User {user.id} executing automation rule {rule_id}")
        return await service.execute_automation_rule(db, rule_id)
    except AutomationServiceError as e:
        _handle_service_error(e)


# ============================================
# Maintenance schedule
# ============================================


@router.get("/maintenance/schedule", response_model=list[MaintenanceScheduleItem])
async def get_maintenance_schedule(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    school_id: int | None = Query(None, gt=0),
    priority: MaintenancePriority | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_maintainer),
) -> list[MaintenanceScheduleItem]:
    try:
        return await service.get_maintenance_schedule(
            db, start_date=start_date, end_date=end_date, school_id=school_id, priority=priority
        )
    except Exception:
        logger.exception("Failed to build maintenance schedule")
        raise _internal_error()


@router.post(
    "/maintenance/schedule",
    response_model=MaintenanceScheduleItem,
    status_code=status.HTTP_201_CREATED,
)
async def schedule_maintenance(
    data: MaintenanceScheduleCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_maintainer),
) -> MaintenanceScheduleItem:
    try:
        return await service.schedule_maintenance(db, data)
    except AutomationServiceError as e:
        _handle_service_error(e)
    except Exception:
        logger.exception(f"Failed to schedule maintenance for device {data.device_id}")
        raise _internal_error()


@router.put("/maintenance/schedule/{device_id}", response_model=MaintenanceScheduleItem)
async def update_maintenance_schedule(
    device_id: int,
    data: MaintenanceScheduleUpdate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_maintainer),
) -> MaintenanceScheduleItem:
    try:
        return await service.update_maintenance_schedule(db, device_id, data)
    except AutomationServiceError as e:
        _handle_service_error(e)
    except Exception:
        logger.exception(f"Failed to update maintenance for device {device_id}")
        raise _internal_error()


@router.get("/maintenance/needed", response_model=list[DeviceBrief])
async def maintenance_needed(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_maintainer),
) -> list[DeviceBrief]:
    return await service.check_maintenance_needed(db)


# ============================================
# Checks
# ============================================


@router.get("/warranty/expiring", response_model=list[DeviceBrief])
async def warranty_expiring(
    days_ahead: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_operator),
) -> list[DeviceBrief]:
    return await service.check_warranty_expiries(db, days_ahead=days_ahead)


@router.get("/devices/offline", response_model=list[DeviceBrief])
async def offline_devices(
    hours_offline: int = Query(24, ge=1),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_maintainer),
) -> list[DeviceBrief]:
    return await service.detect_offline_devices(db, hours_offline=hours_offline)


@router.post("/devices/aging/update", response_model=AgingUpdateResult)
async def update_device_aging(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_operator),
) -> AgingUpdateResult:
    try:
        return await service.update_device_aging(db)
    except Exception:
        await db.rollback()
        logger.exception("Device aging update failed")
        raise _internal_error()


# ============================================
# Reporting
# ============================================


@router.get("/reports", response_model=AutomationReport)
async def automation_report(
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    user: CurrentUser = Depends(require_operator),
) -> AutomationReport:
    try:
        return service.get_automation_report(start_date, end_date)
    except AutomationServiceError as e:
        _handle_service_error(e)


@router.get("/statistics", response_model=AutomationStatistics)
async def automation_statistics(
    user: CurrentUser = Depends(require_operator),
) -> AutomationStatistics:
    return service.get_automation_statistics()


@router.post("/run-all", response_model=AutomationReport)
async def run_all(
    send_report: bool = Query(False, description="Email the report to the admin list"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_operator),
) -> AutomationReport:
    logger.info(f"User {user.id} running all automation rules")
    report = await service.execute_automation_rules(db)
    if send_report:
        service.send_report(report)
    return report
