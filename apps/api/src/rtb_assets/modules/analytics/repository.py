"""
Analytics Repository

Aggregate queries across devices, schools, users and applications.
Nothing here writes.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rtb_assets.modules.applications.models import (
    Application,
    ApplicationDeviceIssue,
    ApplicationStatus,
    ApplicationType,
)
from rtb_assets.modules.devices.models import Device, DeviceCategory
from rtb_assets.modules.schools.models import School

ALERT_LIMIT = 10

CLOSED_STATUSES = (
    ApplicationStatus.COMPLETED,
    ApplicationStatus.REJECTED,
    ApplicationStatus.CANCELLED,
)


def _label(value: Any) -> str:
    if value is None:
        return "Unknown"
    return getattr(value, "value", value)


async def count_rows(db: AsyncSession, model, *clauses) -> int:
    query = select(func.count(model.id))
    for clause in clauses:
        query = query.where(clause)
    result = await db.execute(query)
    return int(result.scalar() or 0)


async def group_counts(db: AsyncSession, column) -> dict[str, int]:
    """{value: count} for one column. NULL is reported as "Unknown"."""
    result = await db.execute(select(column, func.count()).group_by(column))
    counts: dict[str, int] = {}
    for value, count in result.all():
        key = _label(value)
        counts[key] = counts.get(key, 0) + int(count)
    return counts


async def load_devices(
    db: AsyncSession,
    *,
    school_id: int | None = None,
    province: str | None = None,
    district: str | None = None,
    category: DeviceCategory | None = None,
    purchased_from: date | None = None,
    purchased_to: date | None = None,
) -> list[Device]:
    query = select(Device).options(selectinload(Device.school))

    if province or district:
        query = query.join(School, Device.school_id == School.id)
        if province:
            query = query.where(School.province == province)
        if district:
            query = query.where(School.district == district)
    if school_id:
        query = query.where(Device.school_id == school_id)
    if category:
        query = query.where(Device.category == category)
    if purchased_from:
        query = query.where(Device.purchase_date >= purchased_from)
    if purchased_to:
        query = query.where(Device.purchase_date <= purchased_to)

    result = await db.execute(query.order_by(Device.id))
    return list(result.scalars().all())


async def alert_devices(db: AsyncSession, *clauses, order_by=None) -> list[Device]:
    query = select(Device).options(selectinload(Device.school))
    for clause in clauses:
        query = query.where(clause)
    if order_by is not None:
        query = query.order_by(order_by)
    result = await db.execute(query.limit(ALERT_LIMIT))
    return list(result.scalars().all())


async def application_status_counts(
    db: AsyncSession,
    school_id: int | None = None,
) -> dict[str, int]:
    query = select(Application.status, func.count()).group_by(Application.status)
    if school_id:
        query = query.where(Application.school_id == school_id)
    result = await db.execute(query)
    counts = {status.value: 0 for status in ApplicationStatus}
    for status, count in result.all():
        counts[_label(status)] = int(count)
    counts["total"] = sum(counts.values())
    return counts


async def maintenance_request_totals(
    db: AsyncSession,
    *,
    school_id: int | None = None,
    completed_from: datetime | None = None,
    completed_to: datetime | None = None,
) -> dict[str, Any]:
    """
    Counters for maintenance requests.

    Cost is the sum of `actual_cost` on completed requests; the completion
    window, when given, only narrows the cost figure.
    """
    base = select(Application).where(Application.type == ApplicationType.MAINTENANCE_REQUEST)
    if school_id:
        base = base.where(Application.school_id == school_id)
    subquery = base.subquery()

    total = await db.execute(select(func.count()).select_from(subquery))
    open_ = await db.execute(
        select(func.count())
        .select_from(subquery)
        .where(subquery.c.status.not_in(CLOSED_STATUSES))
    )

    cost_query = select(func.coalesce(func.sum(subquery.c.actual_cost), 0)).where(
        subquery.c.status == ApplicationStatus.COMPLETED
    )
    if completed_from:
        cost_query = cost_query.where(subquery.c.completed_at >= completed_from)
    if completed_to:
        cost_query = cost_query.where(subquery.c.completed_at <= completed_to)
    cost = await db.execute(cost_query)
    completed = await db.execute(
        select(func.count())
        .select_from(subquery)
        .where(subquery.c.status == ApplicationStatus.COMPLETED)
    )

    return {
        "total": int(total.scalar() or 0),
        "open": int(open_.scalar() or 0),
        "completed": int(completed.scalar() or 0),
        "cost": Decimal(cost.scalar() or 0),
    }


async def issue_counts_by_category(
    db: AsyncSession,
    *,
    school_id: int | None = None,
    category: DeviceCategory | None = None,
) -> dict[str, int]:
    query = (
        select(Device.category, func.count(ApplicationDeviceIssue.id))
        .join(Device, ApplicationDeviceIssue.device_id == Device.id)
        .group_by(Device.category)
    )
    if school_id:
        query = query.where(Device.school_id == school_id)
    if category:
        query = query.where(Device.category == category)
    result = await db.execute(query)
    return {_label(value): int(count) for value, count in result.all()}


async def issues_for_device(db: AsyncSession, device_id: int) -> list[ApplicationDeviceIssue]:
    result = await db.execute(
        select(ApplicationDeviceIssue)
        .where(ApplicationDeviceIssue.device_id == device_id)
        .order_by(ApplicationDeviceIssue.created_at.desc())
    )
    return list(result.scalars().all())


async def get_device(db: AsyncSession, device_id: int) -> Device | None:
    result = await db.execute(
        select(Device).options(selectinload(Device.school)).where(Device.id == device_id)
    )
    return result.scalar_one_or_none()


async def get_school(db: AsyncSession, school_id: int) -> School | None:
    result = await db.execute(select(School).where(School.id == school_id))
    return result.scalar_one_or_none()

