"""
Unit tests for the authentication service.

These tests cover:
- Password check and OTP issuing
- Default password handling
- OTP validity and single use
- Password reset
- Logout token revocation
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

from rtb_assets.core.config import settings
from rtb_assets.core.security import create_access_token, decode_token, hash_password
from rtb_assets.core.token_blacklist import is_token_blacklisted
from rtb_assets.modules.auth.schemas import RegisterRequest
from rtb_assets.modules.auth.service import (
    AccountInactiveError,
    AuthUserNotFoundError,
    EmailInUseError,
    InvalidCredentialsError,
    InvalidOtpError,
    forgot_password,
    is_otp_valid,
    login,
    logout,
    register,
    reset_password,
    verify_otp,
)
from rtb_assets.modules.users.models import User, UserRole

SERVICE = "rtb_assets.modules.auth.service"


@pytest.fixture
def user():
    user = MagicMock(spec=User)
    user.id = 4
    user.email = "tech@rtb.gov.rw"
    user.role = UserRole.TECHNICIAN
    user.full_name = "Eric Tech"
    user.is_active = True
    user.password_hash = "hashed"
    user.otp = None
    user.otp_expires_at = None
    return user


class TestIsOtpValid:
    """Tests for is_otp_valid."""

    def test_matching_unexpired_code(self, user):
        user.otp = "123456"
        user.otp_expires_at = datetime.now(UTC) + timedelta(minutes=5)
        assert is_otp_valid(user, "123456") is True

    def test_wrong_code(self, user):
        user.otp = "123456"
        user.otp_expires_at = datetime.now(UTC) + timedelta(minutes=5)
        assert is_otp_valid(user, "654321") is False

    def test_expired_code(self, user):
        user.otp = "123456"
        user.otp_expires_at = datetime.now(UTC) - timedelta(seconds=1)
        assert is_otp_valid(user, "123456") is False

    def test_no_code_issued(self, user):
        assert is_otp_valid(user, "123456") is False


class TestRegister:
    def test_admin_self_registration_is_rejected(self):
        with pytest.raises(ValidationError):
            RegisterRequest(
                first_name="A",
                last_name="B",
                email="a@rtb.gov.rw",
                password="Secret@123",
                role=UserRole.ADMIN,
            )

    @pytest.mark.asyncio
    async def test_register_sends_code(self, mock_db, user):
        data = RegisterRequest(
            first_name="Eric", last_name="Tech", email="tech@rtb.gov.rw", password="Secret@123"
        )
        with (
            patch(f"{SERVICE}.UserRepository") as mock_repo,
            patch(f"{SERVICE}.dispatch_notification") as mock_dispatch,
        ):
            mock_repo.email_exists = AsyncMock(return_value=False)
            mock_repo.create = AsyncMock(return_value=user)

            await register(mock_db, data)

            assert user.otp is not None and len(user.otp) == 6
            mock_db.commit.assert_called_once()
            assert mock_dispatch.call_args.args[0] == "otp_registration"

    @pytest.mark.asyncio
    async def test_register_existing_email(self, mock_db):
        data = RegisterRequest(
            first_name="Eric", last_name="Tech", email="tech@rtb.gov.rw", password="Secret@123"
        )
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.email_exists = AsyncMock(return_value=True)

            with pytest.raises(EmailInUseError):
                await register(mock_db, data)


class TestLogin:
    """Tests for login."""

    @pytest.mark.asyncio
    async def test_login_sends_otp(self, mock_db, user):
        with (
            patch(f"{SERVICE}.UserRepository") as mock_repo,
            patch(f"{SERVICE}.verify_password", return_value=True),
            patch(f"{SERVICE}.dispatch_notification") as mock_dispatch,
        ):
            mock_repo.get_by_email = AsyncMock(return_value=user)

            response = await login(mock_db, user.email, "Secret@123")

            assert response.otp_sent is True
            assert response.must_change_password is False
            mock_dispatch.assert_called_once()

    @pytest.mark.asyncio
    async def test_default_password_must_be_changed(self, mock_db, user):
        user.password_hash = hash_password(settings.default_password)
        with (
            patch(f"{SERVICE}.UserRepository") as mock_repo,
            patch(f"{SERVICE}.dispatch_notification") as mock_dispatch,
        ):
            mock_repo.get_by_email = AsyncMock(return_value=user)

            response = await login(mock_db, user.email, settings.default_password)

            assert response.must_change_password is True
            assert response.otp_sent is False
            mock_dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_password(self, mock_db, user):
        with (
            patch(f"{SERVICE}.UserRepository") as mock_repo,
            patch(f"{SERVICE}.verify_password", return_value=False),
        ):
            mock_repo.get_by_email = AsyncMock(return_value=user)

            with pytest.raises(InvalidCredentialsError) as exc_info:
                await login(mock_db, user.email, "nope")

            assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_inactive_account(self, mock_db, user):
        user.is_active = False
        with (
            patch(f"{SERVICE}.UserRepository") as mock_repo,
            patch(f"{SERVICE}.verify_password", return_value=True),
        ):
            mock_repo.get_by_email = AsyncMock(return_value=user)

            with pytest.raises(AccountInactiveError) as exc_info:
                await login(mock_db, user.email, "Secret@123")

            assert exc_info.value.status_code == 403


class TestVerifyOtp:
    @pytest.mark.asyncio
    async def test_valid_code_returns_tokens_and_is_consumed(self, mock_db, user):
        user.otp = "111222"
        user.otp_expires_at = datetime.now(UTC) + timedelta(minutes=5)
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.get_by_email = AsyncMock(return_value=user)

            result = await verify_otp(mock_db, user.email, "111222")

            claims = decode_token(result["access_token"])
            assert claims["sub"] == "4"
            assert claims["role"] == "technician"
            assert user.otp is None
            assert user.otp_expires_at is None

    @pytest.mark.asyncio
    async def test_invalid_code(self, mock_db, user):
        user.otp = "111222"
        user.otp_expires_at = datetime.now(UTC) + timedelta(minutes=5)
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.get_by_email = AsyncMock(return_value=user)

            with pytest.raises(InvalidOtpError):
                await verify_otp(mock_db, user.email, "000000")


class TestPasswordReset:
    """Tests for forgot_password and reset_password."""

    @pytest.mark.asyncio
    async def test_forgot_password_unknown_email(self, mock_db):
        with patch(f"{SERVICE}.UserRepository") as mock_repo:
            mock_repo.get_by_email = AsyncMock(return_value=None)

            with pytest.raises(AuthUserNotFoundError):
                await forgot_password(mock_db, "ghost@rtb.gov.rw")

    @pytest.mark.asyncio
    async def test_reset_password(self, mock_db, user):
        user.otp = "333444"
        user.otp_expires_at = datetime.now(UTC) + timedelta(minutes=5)
        with (
            patch(f"{SERVICE}.UserRepository") as mock_repo,
            patch(f"{SERVICE}.hash_password", return_value="new-hash"),
        ):
            mock_repo.get_by_email = AsyncMock(return_value=user)

            await reset_password(mock_db, user.email, "333444", "NewSecret@1")

            assert user.password_hash == "new-hash"
            assert user.otp is None
            mock_db.commit.assert_called_once()


class TestLogout:
    @pytest.mark.asyncio
    async def test_logout_revokes_token(self):
        token = create_access_token("4")
        with patch("rtb_assets.core.token_blacklist.get_redis_client", return_value=None):
            await logout(token)
            assert await is_token_blacklisted(token) is True
