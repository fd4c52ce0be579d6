"""
Device Service Layer

Inventory operations: registration with generated name tags, assignment
to schools, bulk operations, search and statistics.

Name tags are regenerated whenever a device's school or category changes.
Every write that sets a tag goes through repository.save_with_name_tag,
which retries on a (school_id, name_tag) conflict.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.modules.devices import repository
from rtb_assets.modules.devices.models import Device, DeviceCategory
from rtb_assets.modules.devices.name_tag import (
    default_name_tag,
    generate_school_name_tag,
    is_name_tag_conflict,
)
from rtb_assets.modules.devices.schemas import (
    BulkAssignFailure,
    BulkCreateFailure,
    DeviceCreate,
    DeviceStatistics,
    DeviceUpdate,
)
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.schools.repository import SchoolRepository
from rtb_assets.modules.shared.pagination import PaginationMeta

logger = logging.getLogger(__name__)

ISSUE_DEVICE_CONSTRAINT = "fk_application_device_issues_device_id"


class DeviceServiceError(Exception):
    """Base exception for device service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class DeviceNotFoundError(DeviceServiceError):
    def __init__(self, device_id: int | None = None):
        message = f"Device {device_id} not found" if device_id is not None else "Device not found"
        super().__init__(message=message, error_code="DEVICE_NOT_FOUND", status_code=404)


class DeviceSchoolNotFoundError(DeviceServiceError):
    def __init__(self, school_id: int):
        super().__init__(
            message=f"School {school_id} not found",
            error_code="SCHOOL_NOT_FOUND",
            status_code=404,
        )


class DuplicateSerialNumberError(DeviceServiceError):
    def __init__(self, serial_number: str):
        super().__init__(
            message=f"A device with serial number {serial_number} already exists",
            error_code="DUPLICATE_SERIAL_NUMBER",
            status_code=409,
        )


class DeviceInUseError(DeviceServiceError):
    """Raised when maintenance history still references the device."""

    def __init__(self, device_id: int):
        super().__init__(
            message=f"Device {device_id} is referenced by maintenance applications",
            error_code="DEVICE_IN_USE",
            status_code=409,
        )


class NameTagAllocationError(DeviceServiceError):
    """Raised when every name tag attempt conflicted with a concurrent write."""

    def __init__(self):
        super().__init__(
            message="Could not allocate a unique name tag, please retry",
            error_code="NAME_TAG_CONFLICT",
            status_code=409,
        )


# ============================================
# Helpers
# ============================================


async def _get_school(db: AsyncSession, school_id: int) -> School:
    school = await SchoolRepository.get_by_id(db, school_id)
    if not school:
        raise DeviceSchoolNotFoundError(school_id)
    return school


def _tag_factory(
    db: AsyncSession,
    school: School | None,
    category: DeviceCategory,
    exclude_device_id: int | None = None,
):
    # Plain values: the savepoint rollback may expire ORM instances
    school_id = school.id if school is not None else None
    district = school.district if school is not None else None

    async def compute() -> str:
        if school_id is None:
            return default_name_tag(category)
        return await generate_school_name_tag(
            db, school_id, district, category, exclude_device_id=exclude_device_id
        )

    return compute


async def _save_tagged(
    db: AsyncSession,
    device: Device,
    school: School | None,
    category: DeviceCategory,
    changes: dict | None = None,
) -> Device:
    """Write a device with a fresh tag, commit, and reload it with its school."""
    serial_number = device.serial_number
    try:
        await repository.save_with_name_tag(
            db,
            device,
            _tag_factory(db, school, category, exclude_device_id=device.id),
            changes=changes,
        )
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if is_name_tag_conflict(e):
            logger.error(f"Name tag allocation exhausted for device {serial_number}")
            raise NameTagAllocationError() from e
        raise DuplicateSerialNumberError(serial_number) from e

    reloaded = await repository.get_by_id(db, device.id)
    return reloaded or device


# ============================================
# Registry operations
# ============================================


async def create_device(db: AsyncSession, data: DeviceCreate) -> Device:
    """
    Register a device and generate its name tag.

    Raises:
        DuplicateSerialNumberError: If the serial number exists
        DeviceSchoolNotFoundError: If school_id does not exist
        NameTagAllocationError: If tag retries were exhausted
    """
    if await repository.get_by_serial(db, data.serial_number):
        logger.warning(f"Duplicate serial number: {data.serial_number}")
        raise DuplicateSerialNumberError(data.serial_number)

    school = await _get_school(db, data.school_id) if data.school_id else None

    fields = data.model_dump(exclude={"specifications"})
    fields["specifications"] = (
        data.specifications.model_dump(exclude_none=True) if data.specifications else None
    )
    device = Device(name_tag="", **fields)

    saved = await _save_tagged(db, device, school, data.category)
    logger.info(f"Registered device {saved.id} as {saved.name_tag}")
    return saved


async def get_device(db: AsyncSession, device_id: int) -> Device:
    device = await repository.get_by_id(db, device_id)
    if not device:
        raise DeviceNotFoundError(device_id)
    return device


async def list_devices(db: AsyncSession, **filters) -> tuple[list[Device], PaginationMeta]:
    return await repository.list_devices(db, **filters)


async def search_devices(
    db: AsyncSession, term: str, school_id: int | None = None
) -> list[Device]:
    return await repository.search(db, term, school_id)


async def get_devices_by_school(db: AsyncSession, school_id: int) -> list[Device]:
    await _get_school(db, school_id)
    return await repository.get_by_school(db, school_id)


async def update_device(db: AsyncSession, device_id: int, data: DeviceUpdate) -> Device:
    """
    Apply a partial update. A change of school or category regenerates the
    name tag.
    """
    device = await get_device(db, device_id)
    fields = data.model_dump(exclude_unset=True)

    if "specifications" in fields:
        fields["specifications"] = (
            data.specifications.model_dump(exclude_none=True) if data.specifications else None
        )

    new_serial = fields.get("serial_number")
    if new_serial and new_serial != device.serial_number:
        if await repository.get_by_serial(db, new_serial):
            raise DuplicateSerialNumberError(new_serial)

    school_changed = "school_id" in fields and fields["school_id"] != device.school_id
    category_changed = "category" in fields and fields["category"] != device.category

    if not (school_changed or category_changed):
        serial_number = new_serial or device.serial_number
        for key, value in fields.items():
            setattr(device, key, value)
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise DuplicateSerialNumberError(serial_number) from e
        logger.info(f"Updated device {device_id}: {sorted(fields)}")
        return await get_device(db, device_id)

    target_school_id = fields.get("school_id", device.school_id)
    school = await _get_school(db, target_school_id) if target_school_id else None
    category = fields.get("category", device.category)

    previous_tag = device.name_tag
    saved = await _save_tagged(db, device, school, category, changes=fields)
    logger.info(f"Updated device {device_id}: re-tagged {previous_tag} -> {saved.name_tag}")
    return saved


async def delete_device(db: AsyncSession, device_id: int) -> bool:
    """
    Raises:
        DeviceInUseError: If an application device issue still points at the device
    """
    try:
        deleted = await repository.delete(db, device_id)
    except IntegrityError as e:
        await db.rollback()
        if ISSUE_DEVICE_CONSTRAINT in str(e.orig):
            logger.warning(f"Refused to delete device {device_id}: maintenance history exists")
            raise DeviceInUseError(device_id) from e
        raise
    if deleted:
        logger.info(f"Deleted device {device_id}")
    return deleted


# ============================================
# Assignment
# ============================================


async def assign_device(db: AsyncSession, device_id: int, school_id: int) -> Device:
    device = await get_device(db, device_id)
    school = await _get_school(db, school_id)

    saved = await _save_tagged(
        db, device, school, device.category, changes={"school_id": school.id}
    )
    logger.info(f"Assigned device {device_id} to school {school_id} as {saved.name_tag}")
    return saved


async def unassign_device(db: AsyncSession, device_id: int) -> Device:
    device = await get_device(db, device_id)

    saved = await _save_tagged(db, device, None, device.category, changes={"school_id": None})
    logger.info(f"Unassigned device {device_id}")
    return saved


async def bulk_assign_devices(
    db: AsyncSession, device_ids: list[int], school_id: int
) -> tuple[list[Device], list[BulkAssignFailure]]:
    """
    Assign many devices to one school. Each device succeeds or fails on
    its own.

    Raises:
        DeviceSchoolNotFoundError: If the school does not exist
    """
    await _get_school(db, school_id)

    assigned: list[Device] = []
    failed: list[BulkAssignFailure] = []

    for device_id in dict.fromkeys(device_ids):
        try:
            assigned.append(await assign_device(db, device_id, school_id))
        except DeviceServiceError as e:
            failed.append(BulkAssignFailure(device_id=device_id, error=e.message))

    logger.info(
        f"Bulk assign to school {school_id}: {len(assigned)} assigned, {len(failed)} failed"
    )
    return assigned, failed


async def bulk_create_devices(
    db: AsyncSession, items: list[DeviceCreate]
) -> tuple[list[Device], list[BulkCreateFailure]]:
    created: list[Device] = []
    failed: list[BulkCreateFailure] = []

    for index, item in enumerate(items):
        try:
            created.append(await create_device(db, item))
        except DeviceServiceError as e:
            failed.append(
                BulkCreateFailure(index=index, serial_number=item.serial_number, error=e.message)
            )

    logger.info(f"Bulk create: {len(created)} created, {len(failed)} failed")
    return created, failed


# ============================================
# Telemetry and statistics
# ============================================


async def update_last_seen(db: AsyncSession, device_id: int) -> datetime:
    if not await repository.touch_last_seen(db, device_id):
        raise DeviceNotFoundError(device_id)
    return datetime.now(UTC)


async def get_device_statistics(db: AsyncSession, school_id: int | None = None) -> DeviceStatistics:
    stats = await repository.get_statistics(db, school_id)
    return DeviceStatistics(
        total=stats["total"],
        by_category=stats["by_category"],
        assigned=stats["assigned"],
        unassigned=stats["unassigned"],
        average_age=repository.average_age(stats["purchase_dates"]),
    )
