"""
Unit tests for the user service layer.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rtb_assets.core.config import settings
from rtb_assets.core.security import verify_password
from rtb_assets.modules.users.models import User, UserRole
from rtb_assets.modules.users.schemas import UserCreate, UserUpdate
from rtb_assets.modules.users.service import (
    DuplicateEmailError,
    UserNotFoundError,
    create_user,
    set_active,
    update_user,
)

SERVICE = "rtb_assets.modules.users.service"


@pytest.fixture
def existing_user():
    user = MagicMock(spec=User)
    user.id = 5
    user.email = "staff@rtb.gov.rw"
    user.role = UserRole.RTB_STAFF
    user.is_active = True
    return user


class TestCreateUser:
    """Tests for create_user."""

    @pytest.mark.asyncio
    async def test_default_password_when_omitted(self, mock_db, existing_user):
        data = UserCreate(
            first_name="Aline",
            last_name="Uwase",
            email="aline@rtb.gov.rw",
            role=UserRole.TECHNICIAN,
        )
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.email_exists = AsyncMock(return_value=False)
            mock_repo.create = AsyncMock(return_value=existing_user)

            await create_user(mock_db, data)

            kwargs = mock_repo.create.call_args.kwargs
            assert kwargs["role"] == UserRole.TECHNICIAN
            assert verify_password(settings.default_password, kwargs["password_hash"])
            mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_duplicate_email(self, mock_db):
        data = UserCreate(first_name="A", last_name="B", email="dup@rtb.gov.rw")
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.email_exists = AsyncMock(return_value=True)

            with pytest.raises(DuplicateEmailError) as exc_info:
                await create_user(mock_db, data)

            assert exc_info.value.status_code == 409
            mock_db.commit.assert_not_called()


class TestUpdateUser:
    @pytest.mark.asyncio
    async def test_email_change_to_taken_address(self, mock_db, existing_user):
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=existing_user)
            mock_repo.email_exists = AsyncMock(return_value=True)

            with pytest.raises(DuplicateEmailError):
                await update_user(mock_db, 5, UserUpdate(email="taken@rtb.gov.rw"))

    @pytest.mark.asyncio
    async def test_unchanged_email_is_not_checked(self, mock_db, existing_user):
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=existing_user)
            mock_repo.email_exists = AsyncMock(return_value=True)
            mock_repo.update = AsyncMock(return_value=existing_user)

            await update_user(mock_db, 5, UserUpdate(email="staff@rtb.gov.rw", first_name="Jo"))

            mock_repo.email_exists.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_user(self, mock_db):
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(UserNotFoundError):
                await update_user(mock_db, 404, UserUpdate(first_name="X"))


class TestSetActive:
    @pytest.mark.asyncio
    async def test_deactivate(self, mock_db, existing_user):
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.get_by_id = AsyncMock(return_value=existing_user)
            mock_repo.update = AsyncMock(return_value=existing_user)

            await set_active(mock_db, 5, False)

            mock_repo.update.assert_called_once_with(mock_db, existing_user, is_active=False)
