"""
User Service Layer

Account management for administrators: create, list, update, deactivate
and delete users.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.config import settings
from rtb_assets.core.security import hash_password
from rtb_assets.modules.shared.pagination import PaginationMeta
from rtb_assets.modules.users.models import User, UserRole
from rtb_assets.modules.users.repository import UserRepository
from rtb_assets.modules.users.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)


class UserServiceError(Exception):
    """Base exception for user service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class UserNotFoundError(UserServiceError):
    def __init__(self, user_id: int | None = None):
        message = f"User {user_id} not found" if user_id is not None else "User not found"
        super().__init__(message=message, error_code="USER_NOT_FOUND", status_code=404)


class DuplicateEmailError(UserServiceError):
    def __init__(self, email: str):
        super().__init__(
            message=f"A user with email {email} already exists",
            error_code="DUPLICATE_EMAIL",
            status_code=409,
        )


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """
    Create a user account.

    Raises:
        DuplicateEmailError: If the email is already registered
    """
    if await UserRepository.email_exists(db, data.email):
        logger.warning(f"Duplicate user email: {data.email}")
        raise DuplicateEmailError(data.email)

    password = data.password or settings.default_password

    user = await UserRepository.create(
        db,
        email=data.email,
        password_hash=hash_password(password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        phone=data.phone,
        gender=data.gender,
    )
    await db.commit()
    return user


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        raise UserNotFoundError(user_id)
    return user


async def list_users(
    db: AsyncSession,
    *,
    role: UserRole | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[User], PaginationMeta]:
    return await UserRepository.list_users(
        db,
        role=role,
        is_active=is_active,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate) -> User:
    """
    Apply a partial update.

    Raises:
        UserNotFoundError: If the user does not exist
        DuplicateEmailError: If the new email belongs to another user
    """
    user = await get_user(db, user_id)
    fields = data.model_dump(exclude_unset=True)

    new_email = fields.get("email")
    if new_email and new_email != user.email:
        if await UserRepository.email_exists(db, new_email):
            raise DuplicateEmailError(new_email)

    updated = await UserRepository.update(db, user, **fields)
    logger.info(f"Updated user {user_id}: {sorted(fields)}")
    return updated


async def set_active(db: AsyncSession, user_id: int, is_active: bool) -> User:
    user = await get_user(db, user_id)
    updated = await UserRepository.update(db, user, is_active=is_active)
    logger.info(f"User {user_id} {'activated' if is_active else 'deactivated'}")
    return updated


async def delete_user(db: AsyncSession, user_id: int) -> None:
    user = await get_user(db, user_id)
    await UserRepository.delete(db, user)
