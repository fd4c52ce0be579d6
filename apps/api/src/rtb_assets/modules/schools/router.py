"""
Schools Router

Endpoints:
- POST /schools - Register school (admin)
- GET /schools - List schools (paginated)
- GET /schools/search - Substring search
- GET /schools/{id} - Get school
- PUT /schools/{id} - Update school (admin)
- DELETE /schools/{id} - Delete school (admin)
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import (
    ROLE_RTB_STAFF,
    ROLE_TECHNICIAN,
    CurrentUser,
    require_admin,
    require_roles,
)
from rtb_assets.core.database import get_db
from rtb_assets.modules.schools import service
from rtb_assets.modules.schools.schemas import SchoolCreate, SchoolResponse, SchoolUpdate
from rtb_assets.modules.schools.service import SchoolServiceError
from rtb_assets.modules.shared.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page

logger = logging.getLogger(__name__)

router = APIRouter()

require_reader = require_roles(ROLE_RTB_STAFF, ROLE_TECHNICIAN)


def _handle_service_error(e: SchoolServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


@router.post("", response_model=SchoolResponse, status_code=status.HTTP_201_CREATED)
async def create_school(
    data: SchoolCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> SchoolResponse:
    try:
        school = await service.create_school(db, data)
        logger.info(f"Admin {admin.id} registered school {school.id}")
        return SchoolResponse.model_validate(school)
    except SchoolServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating school: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "INTERNAL_ERROR", "message": "An unexpected error occurred."},
        ) from e


@router.get("", response_model=Page[SchoolResponse])
async def list_schools(
    province: str | None = Query(None),
    district: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_reader),
) -> Page[SchoolResponse]:
    schools, meta = await service.list_schools(
        db,
        province=province,
        district=district,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Page[SchoolResponse](
        data=[SchoolResponse.model_validate(s) for s in schools],
        pagination=meta,
    )


@router.get("/search", response_model=Page[SchoolResponse])
async def search_schools(
    q: str = Query(..., min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_reader),
) -> Page[SchoolResponse]:
    schools, meta = await service.list_schools(db, search=q, page=page, limit=limit)
    return Page[SchoolResponse](
        data=[SchoolResponse.model_validate(s) for s in schools],
        pagination=meta,
    )


@router.get("/{school_id}", response_model=SchoolResponse)
async def get_school(
    school_id: int,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_reader),
) -> SchoolResponse:
    try:
        return SchoolResponse.model_validate(await service.get_school(db, school_id))
    except SchoolServiceError as e:
        _handle_service_error(e)


@router.put("/{school_id}", response_model=SchoolResponse)
async def update_school(
    school_id: int,
    data: SchoolUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> SchoolResponse:
    try:
        return SchoolResponse.model_validate(await service.update_school(db, school_id, data))
    except SchoolServiceError as e:
        _handle_service_error(e)


@router.delete("/{school_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_school(
    school_id: int,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> None:
    try:
        await service.delete_school(db, school_id)
        logger.info(f"Admin {admin.id} deleted school {school_id}")
    except SchoolServiceError as e:
        _handle_service_error(e)
