"""
Analytics Service

Read-only reports over the inventory and the application workflow.
Queries live in the repository; scoring lives in `calculations`.
"""

import logging
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import Literal

from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.modules.analytics import calculations as calc
from rtb_assets.modules.analytics import repository
from rtb_assets.modules.analytics.schemas import (
    CostAnalysis,
    DashboardAlerts,
    DashboardOverview,
    DashboardStatistics,
    DeviceAnalytics,
    DeviceBrief,
    DeviceIssueHistoryItem,
    DevicePerformance,
    MaintenanceAnalytics,
    SchoolPerformance,
    UtilizationAnalytics,
)
from rtb_assets.modules.devices.models import Device, DeviceCategory, DeviceStatus
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.users.models import User

logger = logging.getLogger(__name__)


# ============================================
# Custom Exceptions
# ============================================


class AnalyticsServiceError(Exception):
    """Base exception for analytics service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class AnalyticsDeviceNotFoundError(AnalyticsServiceError):
    def __init__(self, device_id: int):
        super().__init__(f"Device {device_id} not found.", "DEVICE_NOT_FOUND", 404)


class AnalyticsSchoolNotFoundError(AnalyticsServiceError):
    def __init__(self, school_id: int):
        super().__init__(f"School {school_id} not found.", "SCHOOL_NOT_FOUND", 404)


class InvalidDateRangeError(AnalyticsServiceError):
    def __init__(self):
        super().__init__("start_date must not be after end_date.", "INVALID_DATE_RANGE", 422)


def _briefs(devices: list[Device]) -> list[DeviceBrief]:
    return [DeviceBrief(**calc.device_brief(d)) for d in devices]


# ============================================
# Dashboard
# ============================================


async def get_dashboard_statistics(db: AsyncSession) -> DashboardStatistics:
    now = datetime.now(UTC)
    today = now.date()

    overview = DashboardOverview(
        total_devices=await repository.count_rows(db, Device),
        total_schools=await repository.count_rows(db, School),
        total_users=await repository.count_rows(db, User),
        active_devices=await repository.count_rows(
            db, Device, Device.status == DeviceStatus.ACTIVE
        ),
        online_devices=await repository.count_rows(
            db,
            Device,
            Device.last_seen_at >= now - timedelta(minutes=calc.ONLINE_WINDOW_MINUTES),
        ),
        devices_needing_maintenance=await repository.count_rows(
            db,
            Device,
            Device.next_maintenance_date <= today + timedelta(days=7),
        ),
    )

    alerts = DashboardAlerts(
        maintenance_overdue=_briefs(
            await repository.alert_devices(
                db,
                Device.next_maintenance_date < today,
                order_by=Device.next_maintenance_date,
            )
        ),
        warranty_expiring=_briefs(
            await repository.alert_devices(
                db,
                Device.warranty_expiry >= today,
                Device.warranty_expiry <= today + timedelta(days=calc.WARRANTY_ALERT_DAYS),
                order_by=Device.warranty_expiry,
            )
        ),
        offline_devices=_briefs(
            await repository.alert_devices(
                db,
                Device.last_seen_at < now - timedelta(days=calc.OFFLINE_ALERT_DAYS),
                order_by=Device.last_seen_at,
            )
        ),
    )

    return DashboardStatistics(
        overview=overview,
        devices_by_category=await repository.group_counts(db, Device.category),
        devices_by_status=await repository.group_counts(db, Device.status),
        devices_by_condition=await repository.group_counts(db, Device.condition),
        schools_by_province=await repository.group_counts(db, School.province),
        users_by_role=await repository.group_counts(db, User.role),
        applications=await repository.application_status_counts(db),
        alerts=alerts,
    )


# ============================================
# Device, utilization, maintenance, cost
# ============================================


async def get_device_analytics(db: AsyncSession) -> DeviceAnalytics:
    devices = await repository.load_devices(db)
    maintenance = await repository.maintenance_request_totals(db)

    return DeviceAnalytics(
        total_devices=len(devices),
        total_value=calc.money(sum(Decimal(d.purchase_cost or 0) for d in devices)),
        depreciated_value=calc.money(sum(d.depreciated_value for d in devices)),
        average_age=calc.average_age(devices),
        utilization_rate=calc.utilization_rate(devices),
        maintenance_costs=calc.money(maintenance["cost"]),
        category_distribution=calc.category_distribution(devices),
        age_distribution=calc.age_distribution(devices),
        status_distribution=calc.count_by(devices, "status"),
        condition_distribution=calc.count_by(devices, "condition"),
        top_brands=calc.top_brands(devices),
        province_distribution=calc.province_distribution(devices),
    )


async def get_utilization_analytics(
    db: AsyncSession,
    school_id: int | None = None,
    province: str | None = None,
    district: str | None = None,
) -> UtilizationAnalytics:
    devices = await repository.load_devices(
        db, school_id=school_id, province=province, district=district
    )
    now = datetime.now(UTC)
    overall = calc.utilization_rate(devices, now)
    idle = calc.underutilized_devices(devices, now)

    return UtilizationAnalytics(
        total_devices=len(devices),
        overall_utilization=overall,
        utilization_by_category=calc.utilization_by_category(devices, now),
        utilization_by_school=calc.utilization_by_school(devices, now),
        underutilized_devices=_briefs(idle),
        recommendations=calc.utilization_recommendations(overall, len(idle)),
    )


async def get_maintenance_analytics(
    db: AsyncSession,
    school_id: int | None = None,
    category: DeviceCategory | None = None,
) -> MaintenanceAnalytics:
    devices = await repository.load_devices(db, school_id=school_id, category=category)
    upcoming = [d for d in devices if d.needs_maintenance and not d.maintenance_overdue]
    overdue = [d for d in devices if d.maintenance_overdue]

    requests = await repository.maintenance_request_totals(db, school_id=school_id)
    completed = requests["completed"]
    average_cost = requests["cost"] / completed if completed else Decimal(0)

    return MaintenanceAnalytics(
        total_devices=len(devices),
        upcoming_maintenance=_briefs(upcoming),
        overdue_maintenance=_briefs(overdue),
        maintenance_efficiency=calc.maintenance_efficiency(devices),
        maintenance_requests=requests["total"],
        open_maintenance_requests=requests["open"],
        reported_issues_by_category=await repository.issue_counts_by_category(
            db, school_id=school_id, category=category
        ),
        total_maintenance_cost=calc.money(requests["cost"]),
        average_cost_per_request=calc.money(average_cost),
    )


def period_key(day: date, group_by: Literal["month", "year"]) -> str:
    return day.strftime("%Y") if group_by == "year" else day.strftime("%Y-%m")


async def get_cost_analysis(
    db: AsyncSession,
    start_date: date | None = None,
    end_date: date | None = None,
    group_by: Literal["month", "year"] = "month",
) -> CostAnalysis:
    """
    Purchase spend for devices bought in the window, plus the cost of
    maintenance requests completed in it.
    """
    if start_date and end_date and start_date > end_date:
        raise InvalidDateRangeError()

    devices = await repository.load_devices(
        db, purchased_from=start_date, purchased_to=end_date
    )
    maintenance = await repository.maintenance_request_totals(
        db,
        completed_from=(
            datetime.combine(start_date, datetime.min.time(), tzinfo=UTC) if start_date else None
        ),
        completed_to=(
            datetime.combine(end_date, datetime.max.time(), tzinfo=UTC) if end_date else None
        ),
    )

    purchase_total = sum((Decimal(d.purchase_cost or 0) for d in devices), Decimal(0))
    by_category: dict[str, Decimal] = {}
    by_period: dict[str, Decimal] = {}
    for device in devices:
        cost = Decimal(device.purchase_cost or 0)
        category = device.category.value
        by_category[category] = by_category.get(category, Decimal(0)) + cost
        if device.purchase_date:
            key = period_key(device.purchase_date, group_by)
            by_period[key] = by_period.get(key, Decimal(0)) + cost

    return CostAnalysis(
        group_by=group_by,
        total_purchase_cost=calc.money(purchase_total),
        total_maintenance_cost=calc.money(maintenance["cost"]),
        total_cost=calc.money(purchase_total + maintenance["cost"]),
        average_cost_per_device=calc.money(purchase_total / len(devices) if devices else 0),
        cost_by_category={k: calc.money(v) for k, v in by_category.items()},
        cost_by_period={k: calc.money(v) for k, v in sorted(by_period.items())},
    )


# ============================================
# Performance
# ============================================


async def get_device_performance(db: AsyncSession, device_id: int) -> DevicePerformance:
    device = await repository.get_device(db, device_id)
    if device is None:
        raise AnalyticsDeviceNotFoundError(device_id)

    issues = await repository.issues_for_device(db, device_id)
    utilization = calc.utilization_score(device)
    reliability = calc.reliability_score(device, repair_count=len(issues))

    return DevicePerformance(
        device=DeviceBrief(**calc.device_brief(device)),
        age_in_years=device.age_in_years,
        utilization_score=utilization,
        reliability_score=reliability,
        cost_efficiency=calc.cost_efficiency(device),
        repair_count=len(issues),
        maintenance_history=[
            DeviceIssueHistoryItem(
                application_id=issue.application_id,
                problem_description=issue.problem_description,
                action_taken=issue.action_taken,
                resolved_at=issue.resolved_at,
                reported_at=issue.created_at,
            )
            for issue in issues
        ],
        recommendations=calc.device_recommendations(device, utilization, reliability),
    )


async def get_school_performance(db: AsyncSession, school_id: int) -> SchoolPerformance:
    school = await repository.get_school(db, school_id)
    if school is None:
        raise AnalyticsSchoolNotFoundError(school_id)

    devices = await repository.load_devices(db, school_id=school_id)
    utilization = calc.utilization_rate(devices)
    readiness = calc.technology_readiness(len(devices))

    return SchoolPerformance(
        school_id=school.id,
        school_name=school.name,
        total_devices=len(devices),
        device_utilization=utilization,
        total_value=calc.money(sum(Decimal(d.purchase_cost or 0) for d in devices)),
        maintenance_efficiency=calc.maintenance_efficiency(devices),
        technology_readiness=readiness,
        applications=await repository.application_status_counts(db, school_id),
        recommendations=calc.school_recommendations(len(devices), utilization, readiness),
    )
