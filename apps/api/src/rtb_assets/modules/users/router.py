"""
Users Router

Administrator endpoints for account management.

Endpoints:
- POST /users - Create user
- GET /users - List users (paginated)
- GET /users/search - Substring search
- GET /users/{id} - Get user
- PUT /users/{id} - Update user
- PATCH /users/{id}/active - Activate or deactivate
- DELETE /users/{id} - Delete user
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import CurrentUser, require_admin
from rtb_assets.core.database import get_db
from rtb_assets.modules.shared.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, Page
from rtb_assets.modules.users import service
from rtb_assets.modules.users.models import UserRole
from rtb_assets.modules.users.schemas import (
    SetActiveRequest,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from rtb_assets.modules.users.service import UserServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


def _handle_service_error(e: UserServiceError) -> None:
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


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    data: UserCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> UserResponse:
    try:
        user = await service.create_user(db, data)
        logger.info(f"Admin {admin.id} created user {user.id}")
        return UserResponse.model_validate(user)
    except UserServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating user: {e}")
        raise _internal_error() from e


@router.get("", response_model=Page[UserResponse])
async def list_users(
    role: UserRole | None = Query(None),
    is_active: bool | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> Page[UserResponse]:
    users, meta = await service.list_users(
        db,
        role=role,
        is_active=is_active,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return Page[UserResponse](
        data=[UserResponse.model_validate(u) for u in users],
        pagination=meta,
    )


@router.get("/search", response_model=Page[UserResponse])
async def search_users(
    q: str = Query(..., min_length=1, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> Page[UserResponse]:
    users, meta = await service.list_users(db, search=q, page=page, limit=limit)
    return Page[UserResponse](
        data=[UserResponse.model_validate(u) for u in users],
        pagination=meta,
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> UserResponse:
    try:
        return UserResponse.model_validate(await service.get_user(db, user_id))
    except UserServiceError as e:
        _handle_service_error(e)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> UserResponse:
    try:
        return UserResponse.model_validate(await service.update_user(db, user_id, data))
    except UserServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating user {user_id}: {e}")
        raise _internal_error() from e


@router.patch("/{user_id}/active", response_model=UserResponse)
async def set_user_active(
    user_id: int,
    data: SetActiveRequest,
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> UserResponse:
    try:
        return UserResponse.model_validate(await service.set_active(db, user_id, data.is_active))
    except UserServiceError as e:
        _handle_service_error(e)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> None:
    try:
        await service.delete_user(db, user_id)
        logger.info(f"Admin {admin.id} deleted user {user_id}")
    except UserServiceError as e:
        _handle_service_error(e)
