"""
Unit tests for the school service layer.

These tests cover:
- Linking a school to a school account
- One school per account
- Scoping school accounts to their own school
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rtb_assets.core.auth import ROLE_RTB_STAFF, ROLE_SCHOOL, CurrentUser
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.schools.schemas import SchoolCreate, SchoolUpdate
from rtb_assets.modules.schools.service import (
    InvalidSchoolUserError,
    SchoolAccessDeniedError,
    SchoolNotFoundError,
    SchoolUserAlreadyLinkedError,
    SchoolUserNotFoundError,
    create_school,
    ensure_school_access,
    update_school,
)
from rtb_assets.modules.users.models import User, UserRole

SERVICE = "rtb_assets.modules.schools.service"


def _user(role: UserRole, user_id: int = 11) -> MagicMock:
    user = MagicMock(spec=User)
    user.id = user_id
    user.role = role
    return user


def _school(school_id: int = 2, user_id: int = 11) -> MagicMock:
    school = MagicMock(spec=School)
    school.id = school_id
    school.user_id = user_id
    school.district = "Gasabo"
    return school


@pytest.fixture
def school_create():
    return SchoolCreate(name="GS Kacyiru", province="Kigali", district="Gasabo", user_id=11)


class TestCreateSchool:
    """Tests for create_school."""

    @pytest.mark.asyncio
    async def test_create_school_success(self, mock_db, school_create):
        with (
            patch(f"{SERVICE}.UserRepository") as mock_users,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_users.get_by_id = AsyncMock(return_value=_user(UserRole.SCHOOL))
            mock_schools.get_by_user_id = AsyncMock(return_value=None)
            mock_schools.create = AsyncMock(return_value=_school())

            school = await create_school(mock_db, school_create)

            assert school.id == 2
            mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_user(self, mock_db, school_create):
        with patch(f"{SERVICE}.UserRepository") as mock_users:
            mock_users.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(SchoolUserNotFoundError):
                await create_school(mock_db, school_create)

    @pytest.mark.asyncio
    async def test_user_must_have_school_role(self, mock_db, school_create):
        with patch(f"{SERVICE}.UserRepository") as mock_users:
            mock_users.get_by_id = AsyncMock(return_value=_user(UserRole.TECHNICIAN))

            with pytest.raises(InvalidSchoolUserError) as exc_info:
                await create_school(mock_db, school_create)

            assert exc_info.value.status_code == 422

    @pytest.mark.asyncio
    async def test_user_already_manages_a_school(self, mock_db, school_create):
        with (
            patch(f"{SERVICE}.UserRepository") as mock_users,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_users.get_by_id = AsyncMock(return_value=_user(UserRole.SCHOOL))
            mock_schools.get_by_user_id = AsyncMock(return_value=_school(school_id=7))

            with pytest.raises(SchoolUserAlreadyLinkedError):
                await create_school(mock_db, school_create)


class TestUpdateSchool:
    @pytest.mark.asyncio
    async def test_relinking_to_same_school_is_allowed(self, mock_db):
        school = _school(school_id=2, user_id=11)
        with (
            patch(f"{SERVICE}.UserRepository") as mock_users,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_schools.get_by_id = AsyncMock(return_value=school)
            mock_users.get_by_id = AsyncMock(return_value=_user(UserRole.SCHOOL, user_id=12))
            mock_schools.get_by_user_id = AsyncMock(return_value=None)
            mock_schools.update = AsyncMock(return_value=school)

            await update_school(mock_db, 2, SchoolUpdate(user_id=12))

            mock_schools.update.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_school(self, mock_db):
        with patch(f"{SERVICE}.SchoolRepository") as mock_schools:
            mock_schools.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(SchoolNotFoundError):
                await update_school(mock_db, 99, SchoolUpdate(name="New"))


class TestEnsureSchoolAccess:
    """Tests for ensure_school_access."""

    @pytest.mark.asyncio
    async def test_staff_is_not_scoped(self, mock_db):
        user = CurrentUser(id=1, email="staff@rtb.rw", role=ROLE_RTB_STAFF)
        with patch(f"{SERVICE}.SchoolRepository") as mock_schools:
            await ensure_school_access(mock_db, user, 42)
            mock_schools.get_by_user_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_school_user_own_school(self, mock_db):
        user = CurrentUser(id=11, email="school@rtb.rw", role=ROLE_SCHOOL)
        with patch(f"{SERVICE}.SchoolRepository") as mock_schools:
            mock_schools.get_by_user_id = AsyncMock(return_value=_school(school_id=2))
            await ensure_school_access(mock_db, user, 2)

    @pytest.mark.asyncio
    async def test_school_user_other_school(self, mock_db):
        user = CurrentUser(id=11, email="school@rtb.rw", role=ROLE_SCHOOL)
        with patch(f"{SERVICE}.SchoolRepository") as mock_schools:
            mock_schools.get_by_user_id = AsyncMock(return_value=_school(school_id=2))

            with pytest.raises(SchoolAccessDeniedError) as exc_info:
                await ensure_school_access(mock_db, user, 3)

            assert exc_info.value.status_code == 403
