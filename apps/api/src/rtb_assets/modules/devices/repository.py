"""
Device Repository

Database operations for the device inventory.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import func, inspect, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rtb_assets.modules.devices.models import (
    Device,
    DeviceCategory,
    DeviceStatus,
    whole_years_between,
)
from rtb_assets.modules.devices.name_tag import NAME_TAG_MAX_ATTEMPTS, is_name_tag_conflict
from rtb_assets.modules.shared.pagination import PaginationMeta, apply_sort, paginate

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "created_at",
    "updated_at",
    "name_tag",
    "serial_number",
    "model",
    "brand",
    "purchase_cost",
    "purchase_date",
    "last_seen_at",
    "category",
    "status",
}


async def get_by_id(db: AsyncSession, device_id: int) -> Device | None:
    result = await db.execute(
        select(Device)
        .options(selectinload(Device.school))
        .where(Device.id == device_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_serial(db: AsyncSession, serial_number: str) -> Device | None:
    result = await db.execute(select(Device).where(Device.serial_number == serial_number))
    return result.scalar_one_or_none()


async def get_by_ids(db: AsyncSession, device_ids: list[int]) -> list[Device]:
    """Resolve many devices with a single IN query."""
    if not device_ids:
        return []
    result = await db.execute(
        select(Device).options(selectinload(Device.school)).where(Device.id.in_(device_ids))
    )
    return list(result.scalars().all())


async def save_with_name_tag(
    db: AsyncSession,
    device: Device,
    compute_tag: Callable[[], Awaitable[str]],
    changes: dict[str, Any] | None = None,
) -> Device:
    """
    Flush `device` with a freshly computed name tag inside a SAVEPOINT.

    When the (school_id, name_tag) constraint rejects the write, the
    savepoint is rolled back, the tag is recomputed and the write retried,
    up to NAME_TAG_MAX_ATTEMPTS times. Any other IntegrityError propagates.

    Args:
        compute_tag: Returns the tag to try on each attempt
        changes: Field updates re-applied on every attempt (for updates of
            persistent devices, which are expired by the savepoint rollback)
    """
    changes = changes or {}

    for attempt in range(1, NAME_TAG_MAX_ATTEMPTS + 1):
        for key, value in changes.items():
            setattr(device, key, value)
        device.name_tag = await compute_tag()

        try:
            async with db.begin_nested():
                db.add(device)
                await db.flush()
        except IntegrityError as e:
            if not is_name_tag_conflict(e) or attempt == NAME_TAG_MAX_ATTEMPTS:
                raise
            logger.warning(
                f"Name tag {device.name_tag} taken, retrying ({attempt}/{NAME_TAG_MAX_ATTEMPTS})"
            )
            if inspect(device).persistent:
                await db.refresh(device)
            continue

        return device

    # Unreachable: the last attempt either returns or raises
    raise RuntimeError("name tag allocation loop exited unexpectedly")


async def list_devices(
    db: AsyncSession,
    *,
    school_id: int | None = None,
    category: DeviceCategory | None = None,
    status: DeviceStatus | None = None,
    assigned: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Device], PaginationMeta]:
    query = select(Device).options(selectinload(Device.school))

    if school_id:
        query = query.where(Device.school_id == school_id)
    if category:
        query = query.where(Device.category == category)
    if status:
        query = query.where(Device.status == status)
    if assigned is True:
        query = query.where(Device.school_id.is_not(None))
    elif assigned is False:
        query = query.where(Device.school_id.is_(None))
    if search:
        query = query.where(_search_clause(search))

    query = apply_sort(query, Device, sort_by, sort_order, SORTABLE_COLUMNS)
    return await paginate(db, query, page, limit)


def _search_clause(term: str):
    pattern = f"%{term}%"
    return or_(
        Device.name_tag.ilike(pattern),
        Device.serial_number.ilike(pattern),
        Device.model.ilike(pattern),
        Device.brand.ilike(pattern),
    )


async def search(db: AsyncSession, term: str, school_id: int | None = None) -> list[Device]:
    """Case-insensitive substring search, ordered by name tag."""
    query = select(Device).options(selectinload(Device.school)).where(_search_clause(term))
    if school_id:
        query = query.where(Device.school_id == school_id)
    result = await db.execute(query.order_by(Device.name_tag.asc()))
    return list(result.scalars().all())


async def get_by_school(db: AsyncSession, school_id: int) -> list[Device]:
    result = await db.execute(
        select(Device)
        .options(selectinload(Device.school))
        .where(Device.school_id == school_id)
        .order_by(Device.name_tag.asc())
    )
    return list(result.scalars().all())


async def touch_last_seen(db: AsyncSession, device_id: int) -> bool:
    result = await db.execute(
        update(Device).where(Device.id == device_id).values(last_seen_at=datetime.now(UTC))
    )
    await db.commit()
    return result.rowcount > 0


async def delete(db: AsyncSession, device_id: int) -> bool:
    device = await db.get(Device, device_id)
    if device is None:
        return False
    await db.delete(device)
    await db.commit()
    return True


async def get_statistics(db: AsyncSession, school_id: int | None = None) -> dict:
    """
    Counts by category and assignment, plus the average age of devices with
    a purchase date.
    """
    base = select(Device)
    if school_id:
        base = base.where(Device.school_id == school_id)
    sub = base.subquery()

    totals = (
        await db.execute(
            select(
                func.count().label("total"),
                func.count(sub.c.school_id).label("assigned"),
            ).select_from(sub)
        )
    ).one()

    category_rows = await db.execute(
        select(sub.c.category, func.count()).select_from(sub).group_by(sub.c.category)
    )
    by_category = {
        (cat.value if isinstance(cat, DeviceCategory) else str(cat)): count
        for cat, count in category_rows.all()
    }

    purchase_dates = (
        await db.execute(select(sub.c.purchase_date).where(sub.c.purchase_date.is_not(None)))
    ).scalars().all()

    return {
        "total": totals.total,
        "assigned": totals.assigned,
        "unassigned": totals.total - totals.assigned,
        "by_category": by_category,
        "purchase_dates": list(purchase_dates),
    }


def average_age(purchase_dates: list[date], today: date | None = None) -> float | None:
    if not purchase_dates:
        return None
    today = today or datetime.now(UTC).date()
    ages = [whole_years_between(d, today) for d in purchase_dates]
    return round(sum(ages) / len(ages), 2)
