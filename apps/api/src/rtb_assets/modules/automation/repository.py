"""
Automation Repository

Device selections used by the automation routines.
"""

from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rtb_assets.modules.devices.models import Device, DeviceStatus
from rtb_assets.modules.schools.models import School


def _devices():
    return select(Device).options(selectinload(Device.school).selectinload(School.user))


async def _all(db: AsyncSession, query) -> list[Device]:
    result = await db.execute(query)
    return list(result.scalars().all())


async def devices_due_for_maintenance(db: AsyncSession, due_by: date) -> list[Device]:
    return await _all(
        db,
        _devices()
        .where(Device.next_maintenance_date.is_not(None))
        .where(Device.next_maintenance_date <= due_by)
        .order_by(Device.next_maintenance_date, Device.id),
    )


async def devices_with_warranty_between(db: AsyncSession, start: date, end: date) -> list[Device]:
    return await _all(
        db,
        _devices()
        .where(Device.warranty_expiry.between(start, end))
        .order_by(Device.warranty_expiry, Device.id),
    )


async def devices_last_seen_before(
    db: AsyncSession,
    before: datetime,
    status: DeviceStatus | None = None,
) -> list[Device]:
    query = _devices().where(Device.last_seen_at.is_not(None)).where(Device.last_seen_at < before)
    if status is not None:
        query = query.where(Device.status == status)
    return await _all(db, query.order_by(Device.last_seen_at, Device.id))


async def devices_with_purchase_date(db: AsyncSession) -> list[Device]:
    return await _all(db, _devices().where(Device.purchase_date.is_not(None)).order_by(Device.id))


async def scheduled_devices(
    db: AsyncSession,
    start: date | None = None,
    end: date | None = None,
    school_id: int | None = None,
) -> list[Device]:
    query = _devices().where(Device.next_maintenance_date.is_not(None))
    if start:
        query = query.where(Device.next_maintenance_date >= start)
    if end:
        query = query.where(Device.next_maintenance_date <= end)
    if school_id:
        query = query.where(Device.school_id == school_id)
    return await _all(db, query.order_by(Device.next_maintenance_date, Device.id))


async def get_device(db: AsyncSession, device_id: int) -> Device | None:
    result = await db.execute(
        _devices().where(Device.id == device_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()
