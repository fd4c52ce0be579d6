"""
Search Router

Endpoints:
- GET /search/devices - Filtered device search (staff, technician, school)
- GET /search/schools - Filtered school search (staff, school)
- GET /search/users - Filtered user search (staff)
- GET /search/global - Devices, schools and users for one query (staff, school)
- GET /search/quick - Compact hits for a header search box (staff, school)
- GET /search/autocomplete - Suggestions for a search box (staff, school)
- GET /search/filters - Option lists for filter controls (staff, school)

Admins pass every role check.
"""

import logging
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import (
    ROLE_RTB_STAFF,
    ROLE_SCHOOL,
    ROLE_TECHNICIAN,
    CurrentUser,
    require_roles,
)
from rtb_assets.core.database import get_db
from rtb_assets.modules.devices.models import DeviceCategory, DeviceCondition, DeviceStatus
from rtb_assets.modules.devices.schemas import DeviceResponse
from rtb_assets.modules.schools.schemas import SchoolResponse
from rtb_assets.modules.schools.service import get_school_for_user
from rtb_assets.modules.search import service
from rtb_assets.modules.search.schemas import (
    DeviceSearchFilters,
    GlobalSearchResult,
    QuickSearchResult,
    SchoolSearchFilters,
    SearchFilterOptions,
    SuggestionType,
    UserSearchFilters,
)
from rtb_assets.modules.search.service import SearchServiceError
from rtb_assets.modules.shared.pagination import MAX_PAGE_SIZE, Page
from rtb_assets.modules.users.models import UserRole
from rtb_assets.modules.users.schemas import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()

require_device_searcher = require_roles(ROLE_RTB_STAFF, ROLE_TECHNICIAN, ROLE_SCHOOL)
require_searcher = require_roles(ROLE_RTB_STAFF, ROLE_SCHOOL)
require_staff = require_roles(ROLE_RTB_STAFF)


def _handle_service_error(e: SearchServiceError) -> None:
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
    """School accounts only ever search their own school's devices."""
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
# Entity searches
# ============================================


@router.get("/devices", response_model=Page[DeviceResponse])
async def search_devices(
    query: str | None = Query(None, max_length=100),
    category: list[DeviceCategory] | None = Query(None),
    device_status: list[DeviceStatus] | None = Query(None, alias="status"),
    condition: list[DeviceCondition] | None = Query(None),
    school_id: int | None = Query(None, gt=0),
    province: str | None = Query(None),
    district: str | None = Query(None),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    price_min: Decimal | None = Query(None, ge=0),
    price_max: Decimal | None = Query(None, ge=0),
    is_online: bool | None = Query(None),
    needs_maintenance: bool | None = Query(None),
    has_warranty: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc|ASC|DESC)$"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_device_searcher),
) -> Page[DeviceResponse]:
    filters = DeviceSearchFilters(
        query=query,
        categories=category,
        statuses=device_status,
        conditions=condition,
        school_id=await _school_scope(db, user, school_id),
        province=province,
        district=district,
        purchased_from=date_from,
        purchased_to=date_to,
        price_min=price_min,
        price_max=price_max,
        is_online=is_online,
        needs_maintenance=needs_maintenance,
        has_warranty=has_warranty,
    )
    try:
        devices, meta = await service.search_devices(
            db, filters, page, limit, sort_by, sort_order
        )
    except Exception as e:
        logger.exception(f"Error searching devices: {e}")
        raise _internal_error() from e
    return Page[DeviceResponse](
        data=[DeviceResponse.model_validate(d) for d in devices],
        pagination=meta,
    )


@router.get("/schools", response_model=Page[SchoolResponse])
async def search_schools(
    query: str | None = Query(None, max_length=100),
    province: str | None = Query(None),
    district: str | None = Query(None),
    has_devices: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("name"),
    sort_order: str = Query("asc", pattern="^(asc|desc|ASC|DESC)$"),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_searcher),
) -> Page[SchoolResponse]:
    filters = SchoolSearchFilters(
        query=query, province=province, district=district, has_devices=has_devices
    )
    try:
        schools, meta = await service.search_schools(
            db, filters, page, limit, sort_by, sort_order
        )
    except Exception as e:
        logger.exception(f"Error searching schools: {e}")
        raise _internal_error() from e
    return Page[SchoolResponse](
        data=[SchoolResponse.model_validate(s) for s in schools],
        pagination=meta,
    )


@router.get("/users", response_model=Page[UserResponse])
async def search_users(
    query: str | None = Query(None, max_length=100),
    role: list[UserRole] | None = Query(None),
    is_active: bool | None = Query(None),
    has_school: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("last_name"),
    sort_order: str = Query("asc", pattern="^(asc|desc|ASC|DESC)$"),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_staff),
) -> Page[UserResponse]:
    filters = UserSearchFilters(
        query=query, roles=role, is_active=is_active, has_school=has_school
    )
    try:
        users, meta = await service.search_users(db, filters, page, limit, sort_by, sort_order)
    except Exception as e:
        logger.exception(f"Error searching users: {e}")
        raise _internal_error() from e
    return Page[UserResponse](
        data=[UserResponse.model_validate(u) for u in users],
        pagination=meta,
    )


# ============================================
# Combined searches
# ============================================


@router.get("/global", response_model=GlobalSearchResult)
async def global_search(
    query: str | None = Query(None, max_length=100),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_searcher),
) -> GlobalSearchResult:
    try:
        return await service.global_search(db, query, limit)
    except SearchServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error in global search: {e}")
        raise _internal_error() from e


@router.get("/quick", response_model=QuickSearchResult)
async def quick_search(
    query: str | None = Query(None, max_length=100),
    limit: int = Query(5, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_searcher),
) -> QuickSearchResult:
    try:
        return await service.quick_search(db, query, limit)
    except SearchServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error in quick search: {e}")
        raise _internal_error() from e


@router.get("/autocomplete", response_model=list[str])
async def autocomplete(
    query: str | None = Query(None, max_length=100),
    kind: SuggestionType = Query("device", alias="type"),
    limit: int = Query(10, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_searcher),
) -> list[str]:
    try:
        return await service.get_autocomplete_suggestions(db, query, kind, limit)
    except SearchServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error getting autocomplete suggestions: {e}")
        raise _internal_error() from e


@router.get("/filters", response_model=SearchFilterOptions)
async def search_filters(
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_searcher),
) -> SearchFilterOptions:
    try:
        return await service.get_search_filters(db)
    except Exception as e:
        logger.exception(f"Error getting search filters: {e}")
        raise _internal_error() from e
