"""
School Service Layer

Registry operations for schools. A school must be linked to an existing
account with role `school`, and an account manages at most one school.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import ROLE_SCHOOL, CurrentUser
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.schools.repository import SchoolRepository
from rtb_assets.modules.schools.schemas import SchoolCreate, SchoolUpdate
from rtb_assets.modules.shared.pagination import PaginationMeta
from rtb_assets.modules.users.models import UserRole
from rtb_assets.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class SchoolServiceError(Exception):
    """Base exception for school service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class SchoolNotFoundError(SchoolServiceError):
    def __init__(self, school_id: int | None = None):
        message = f"School {school_id} not found" if school_id is not None else "School not found"
        super().__init__(message=message, error_code="SCHOOL_NOT_FOUND", status_code=404)


class SchoolUserNotFoundError(SchoolServiceError):
    def __init__(self, user_id: int):
        super().__init__(
            message=f"User {user_id} not found",
            error_code="USER_NOT_FOUND",
            status_code=404,
        )


class InvalidSchoolUserError(SchoolServiceError):
    """Raised when the linked account does not have role `school`."""

    def __init__(self, user_id: int, role: str):
        super().__init__(
            message=(
                f"User {user_id} has role '{role}'; "
                "a school must be linked to a 'school' account"
            ),
            error_code="INVALID_SCHOOL_USER",
            status_code=422,
        )


class SchoolAccessDeniedError(SchoolServiceError):
    def __init__(self):
        super().__init__(
            message="School accounts can only access their own school",
            error_code="SCHOOL_ACCESS_DENIED",
            status_code=403,
        )


class SchoolUserAlreadyLinkedError(SchoolServiceError):
    def __init__(self, user_id: int):
        super().__init__(
            message=f"User {user_id} already manages another school",
            error_code="SCHOOL_USER_ALREADY_LINKED",
            status_code=409,
        )


async def _validate_school_user(
    db: AsyncSession, user_id: int, school_id: int | None = None
) -> None:
    user = await UserRepository.get_by_id(db, user_id)
    if not user:
        raise SchoolUserNotFoundError(user_id)

    if user.role != UserRole.SCHOOL:
        logger.warning(f"Rejected school link to user {user_id} with role {user.role.value}")
        raise InvalidSchoolUserError(user_id, user.role.value)

    existing = await SchoolRepository.get_by_user_id(db, user_id)
    if existing is not None and existing.id != school_id:
        raise SchoolUserAlreadyLinkedError(user_id)


async def create_school(db: AsyncSession, data: SchoolCreate) -> School:
    """
    Register a school.

    Raises:
        SchoolUserNotFoundError: If user_id does not exist
        InvalidSchoolUserError: If the user is not a school account
        SchoolUserAlreadyLinkedError: If the user already manages a school
    """
    await _validate_school_user(db, data.user_id)

    school = await SchoolRepository.create(db, **data.model_dump())
    await db.commit()
    return school


async def get_school(db: AsyncSession, school_id: int) -> School:
    school = await SchoolRepository.get_by_id(db, school_id)
    if not school:
        raise SchoolNotFoundError(school_id)
    return school


async def get_school_for_user(db: AsyncSession, user_id: int) -> School | None:
    return await SchoolRepository.get_by_user_id(db, user_id)


async def ensure_school_access(db: AsyncSession, user: CurrentUser, school_id: int) -> None:
    """
    Restrict school accounts to the school linked to them. Other roles pass.

    Raises:
        SchoolAccessDeniedError: If a school account targets another school
    """
    if user.role != ROLE_SCHOOL:
        return

    school = await SchoolRepository.get_by_user_id(db, user.id)
    if school is None or school.id != school_id:
        logger.warning(f"School user {user.id} denied access to school {school_id}")
        raise SchoolAccessDeniedError()


async def list_schools(
    db: AsyncSession,
    *,
    province: str | None = None,
    district: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[School], PaginationMeta]:
    return await SchoolRepository.list_schools(
        db,
        province=province,
        district=district,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


async def update_school(db: AsyncSession, school_id: int, data: SchoolUpdate) -> School:
    school = await get_school(db, school_id)
    fields = data.model_dump(exclude_unset=True)

    if "user_id" in fields and fields["user_id"] != school.user_id:
        await _validate_school_user(db, fields["user_id"], school_id=school.id)

    updated = await SchoolRepository.update(db, school, **fields)
    logger.info(f"Updated school {school_id}: {sorted(fields)}")
    return updated


async def delete_school(db: AsyncSession, school_id: int) -> None:
    school = await get_school(db, school_id)
    await SchoolRepository.delete(db, school)
