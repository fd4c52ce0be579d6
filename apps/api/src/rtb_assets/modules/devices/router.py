"""
Devices Router

Endpoints:
- POST /devices - Register device
- POST /devices/bulk - Register many devices
- POST /devices/bulk-assign - Assign many devices to a school
- GET /devices - List devices (paginated, filterable)
- GET /devices/search - Substring search
- GET /devices/statistics - Inventory statistics
- GET /devices/school/{school_id} - Devices of one school
- GET /devices/{id} - Get device
- PUT /devices/{id} - Update device
- DELETE /devices/{id} - Delete device
- POST /devices/{id}/assign - Assign to school
- POST /devices/{id}/unassign - Remove from school
- POST /devices/{id}/last-seen - Record a heartbeat
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import (
    ROLE_RTB_STAFF,
    ROLE_SCHOOL,
    ROLE_TECHNICIAN,
    CurrentUser,
    require_roles,
)
from rtb_assets.core.database import get_db
from rtb_assets.modules.devices import service
from rtb_assets.modules.devices.models import DeviceCategory, DeviceStatus
from rtb_assets.modules.devices.schemas import (
    AssignDeviceRequest,
    BulkAssignRequest,
    BulkAssignResult,
    BulkCreateRequest,
    BulkCreateResult,
    DeviceCreate,
    DeviceResponse,
    DeviceStatistics,
    DeviceUpdate,
)
from rtb_assets.modules.devices.service import DeviceServiceError
from rtb_assets.modules.schools.service import (
    SchoolServiceError,
    ensure_school_access,
    get_school_for_user,
)
from rtb_assets.modules.shared.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page

logger = logging.getLogger(__name__)

router = APIRouter()

require_manager = require_roles(ROLE_RTB_STAFF)
require_reader = require_roles(ROLE_RTB_STAFF, ROLE_TECHNICIAN, ROLE_SCHOOL)


class LastSeenResponse(BaseModel):
    device_id: int
    last_seen_at: datetime


def _handle_service_error(e: DeviceServiceError | SchoolServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
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


async def _school_scope(db: AsyncSession, user: CurrentUser, school_id: int | None) -> int | None:
    """School accounts always see only their own school's devices."""
    if user.role != ROLE_SCHOOL:
        return school_id
    school = await get_school_for_user(db, user.id)
    if school is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "SCHOOL_NOT_LINKED",
                "message": "This account is not linked to a school.",
            },
        )
    return school.id


# ============================================
# Create
# ============================================


@router.post("", response_model=DeviceResponse, status_code=status.HTTP_201_CREATED)
async def create_device(
    data: DeviceCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_manager),
) -> DeviceResponse:
    try:
        device = await service.create_device(db, data)
        logger.info(f"User {user.id} registered device {device.id}")
        return DeviceResponse.model_validate(device)
    except DeviceServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating device: {e}")
        raise _internal_error() from e


@router.post("/bulk", response_model=BulkCreateResult, status_code=status.HTTP_201_CREATED)
async def bulk_create_devices(
    data: BulkCreateRequest,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_manager),
) -> BulkCreateResult:
    try:
        created, failed = await service.bulk_create_devices(db, data.devices)
        return BulkCreateResult(
            created=[DeviceResponse.model_validate(d) for d in created],
            failed=failed,
        )
    except Exception as e:
        logger.exception(f"Error in bulk device creation: {e}")
        raise _internal_error() from e


@router.post("/bulk-assign", response_model=BulkAssignResult)
async def bulk_assign_devices(
    data: BulkAssignRequest,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_manager),
) -> BulkAssignResult:
    try:
        assigned, failed = await service.bulk_assign_devices(db, data.device_ids, data.school_id)
        return BulkAssignResult(
            assigned=[DeviceResponse.model_validate(d) for d in assigned],
            failed=failed,
        )
    except DeviceServiceError as e:
        _handle_service_error(e)


# ============================================
# Read
# ============================================


@router.get("", response_model=Page[DeviceResponse])
async def list_devices(
    school_id: int | None = Query(None, gt=0),
    category: DeviceCategory | None = Query(None),
    device_status: DeviceStatus | None = Query(None, alias="status"),
    assigned: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_reader),
) -> Page[DeviceResponse]:
    school_id = await _school_scope(db, user, school_id)
    devices, meta = await service.list_devices(
        db,
        school_id=school_id,
        category=category,
        status=device_status,
        assigned=assigned,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Page[DeviceResponse](
        data=[DeviceResponse.model_validate(d) for d in devices],
        pagination=meta,
    )


@router.get("/search", response_model=list[DeviceResponse])
async def search_devices(
    q: str = Query(..., min_length=1, max_length=100),
    school_id: int | None = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_reader),
) -> list[DeviceResponse]:
    school_id = await _school_scope(db, user, school_id)
    devices = await service.search_devices(db, q, school_id)
    return [DeviceResponse.model_validate(d) for d in devices]


@router.get("/statistics", response_model=DeviceStatistics)
async def device_statistics(
    school_id: int | None = Query(None, gt=0),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_reader),
) -> DeviceStatistics:
    school_id = await _school_scope(db, user, school_id)
    return await service.get_device_statistics(db, school_id)


@router.get("/school/{school_id}", response_model=list[DeviceResponse])
async def devices_by_school(
    school_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_reader),
) -> list[DeviceResponse]:
    try:
        await ensure_school_access(db, user, school_id)
        devices = await service.get_devices_by_school(db, school_id)
        return [DeviceResponse.model_validate(d) for d in devices]
    except (DeviceServiceError, SchoolServiceError) as e:
        _handle_service_error(e)


@router.get("/{device_id}", response_model=DeviceResponse)
async def get_device(
    device_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_reader),
) -> DeviceResponse:
    try:
        device = await service.get_device(db, device_id)
        if device.school_id is not None:
            await ensure_school_access(db, user, device.school_id)
        elif user.role == ROLE_SCHOOL:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": "SCHOOL_ACCESS_DENIED",
                    "message": "School accounts can only access their own school",
                },
            )
        return DeviceResponse.model_validate(device)
    except (DeviceServiceError, SchoolServiceError) as e:
        _handle_service_error(e)


# ============================================
# Update / delete / assignment
# ============================================


@router.put("/{device_id}", response_model=DeviceResponse)
async def update_device(
    device_id: int,
    data: DeviceUpdate,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_manager),
) -> DeviceResponse:
    try:
        return DeviceResponse.model_validate(await service.update_device(db, device_id, data))
    except DeviceServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating device {device_id}: {e}")
        raise _internal_error() from e


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_device(
    device_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_manager),
) -> None:
    try:
        deleted = await service.delete_device(db, device_id)
    except DeviceServiceError as e:
        _handle_service_error(e)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "DEVICE_NOT_FOUND", "message": f"Device {device_id} not found"},
        )
    logger.info(f"User {user.id} deleted device {device_id}")


@router.post("/{device_id}/assign", response_model=DeviceResponse)
async def assign_device(
    device_id: int,
    data: AssignDeviceRequest,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_manager),
) -> DeviceResponse:
    try:
        return DeviceResponse.model_validate(
            await service.assign_device(db, device_id, data.school_id)
        )
    except DeviceServiceError as e:
        _handle_service_error(e)


@router.post("/{device_id}/unassign", response_model=DeviceResponse)
async def unassign_device(
    device_id: int,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_manager),
) -> DeviceResponse:
    try:
        return DeviceResponse.model_validate(await service.unassign_device(db, device_id))
    except DeviceServiceError as e:
        _handle_service_error(e)


@router.post("/{device_id}/last-seen", response_model=LastSeenResponse)
async def update_last_seen(
    device_id: int,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_roles(ROLE_RTB_STAFF, ROLE_TECHNICIAN)),
) -> LastSeenResponse:
    try:
        seen_at = await service.update_last_seen(db, device_id)
        return LastSeenResponse(device_id=device_id, last_seen_at=seen_at)
    except DeviceServiceError as e:
        _handle_service_error(e)
