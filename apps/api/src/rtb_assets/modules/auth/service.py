"""
Authentication Service

Two-step login: password check, then a 6-digit one-time code sent by
email. The same code mechanism drives password reset.

Accounts still using the configured default password are told to change
it instead of receiving a code.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core import email
from rtb_assets.core.config import settings
from rtb_assets.core.notifications import dispatch_notification
from rtb_assets.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_otp,
    hash_password,
    verify_password,
)
from rtb_assets.core.token_blacklist import blacklist_token
from rtb_assets.modules.auth.schemas import LoginResponse, RegisterRequest
from rtb_assets.modules.users.models import User
from rtb_assets.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)


class AuthServiceError(Exception):
    """Base exception for authentication errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class InvalidCredentialsError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Invalid email or password.",
            error_code="INVALID_CREDENTIALS",
            status_code=401,
        )


class AccountInactiveError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Your account has been deactivated.",
            error_code="ACCOUNT_INACTIVE",
            status_code=403,
        )


class EmailInUseError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Email already in use.",
            error_code="EMAIL_IN_USE",
            status_code=409,
        )


class AuthUserNotFoundError(AuthServiceError):
    def __init__(self):
        super().__init__(message="User not found.", error_code="USER_NOT_FOUND", status_code=404)


class InvalidOtpError(AuthServiceError):
    def __init__(self):
        super().__init__(
            message="Invalid or expired OTP.",
            error_code="INVALID_OTP",
            status_code=400,
        )


# ============================================
# OTP helpers
# ============================================


def _issue_otp(user: User) -> str:
    otp = generate_otp()
    user.otp = otp
    user.otp_expires_at = datetime.now(UTC) + timedelta(minutes=settings.otp_expiry_minutes)
    return otp


def is_otp_valid(user: User, otp: str, now: datetime | None = None) -> bool:
    """A code is valid when it matches and has not expired."""
    now = now or datetime.now(UTC)
    return bool(
        user.otp
        and user.otp_expires_at
        and user.otp == otp
        and user.otp_expires_at >= now
    )


def _clear_otp(user: User) -> None:
    user.otp = None
    user.otp_expires_at = None


def _send_otp(to_email: str, otp: str, purpose: str) -> None:
    dispatch_notification(
        f"otp_{purpose}",
        lambda: email.send_otp_email(to_email, otp, purpose=purpose),
    )


async def _get_user_or_404(db: AsyncSession, email_address: str) -> User:
    user = await UserRepository.get_by_email(db, email_address)
    if not user:
        raise AuthUserNotFoundError()
    return user


# ============================================
# Operations
# ============================================


async def register(db: AsyncSession, data: RegisterRequest) -> User:
    """
    Create an account and email a verification code.

    Raises:
        EmailInUseError: If the email is registered
    """
    if await UserRepository.email_exists(db, data.email):
        logger.warning(f"Registration with existing email: {data.email}")
        raise EmailInUseError()

    user = await UserRepository.create(
        db,
        email=data.email,
        password_hash=hash_password(data.password),
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        phone=data.phone,
        gender=data.gender,
    )
    otp = _issue_otp(user)
    await db.commit()

    _send_otp(user.email, otp, "registration")
    logger.info(f"Registered user {user.id} ({user.role.value})")
    return user


async def login(db: AsyncSession, email_address: str, password: str) -> LoginResponse:
    """
    Check credentials and send a login code.

    Raises:
        InvalidCredentialsError: Unknown email or wrong password
        AccountInactiveError: Account deactivated
    """
    user = await UserRepository.get_by_email(db, email_address)

    if not user or not verify_password(password, user.password_hash):
        logger.warning(f"Failed login for: {email_address}")
        raise InvalidCredentialsError()

    if not user.is_active:
        logger.warning(f"Login attempt for inactive account: {email_address}")
        raise AccountInactiveError()

    if password == settings.default_password:
        logger.info(f"User {user.id} must change the default password")
        return LoginResponse(
            message="You must change your password before logging in.",
            must_change_password=True,
        )

    otp = _issue_otp(user)
    await db.commit()

    _send_otp(user.email, otp, "login")
    return LoginResponse(message="OTP sent to your email.", otp_sent=True)


async def verify_otp(db: AsyncSession, email_address: str, otp: str) -> dict[str, Any]:
    """
    Exchange a valid login code for tokens. The code is single-use.

    Returns:
        Dict with access_token, refresh_token and user
    """
    user = await _get_user_or_404(db, email_address)

    if not is_otp_valid(user, otp):
        logger.warning(f"Invalid OTP for user {user.id}")
        raise InvalidOtpError()

    _clear_otp(user)
    await db.commit()

    claims = {
        "email": user.email,
        "role": user.role.value,
        "name": user.full_name,
    }
    logger.info(f"User logged in: {user.email} (role: {user.role.value})")
    return {
        "access_token": create_access_token(subject=str(user.id), additional_claims=claims),
        "refresh_token": create_refresh_token(subject=str(user.id)),
        "user": user,
    }


async def forgot_password(db: AsyncSession, email_address: str) -> None:
    user = await _get_user_or_404(db, email_address)
    otp = _issue_otp(user)
    await db.commit()
    _send_otp(user.email, otp, "password reset")


async def verify_reset_otp(db: AsyncSession, email_address: str, otp: str) -> None:
    """Check a reset code without consuming it."""
    user = await _get_user_or_404(db, email_address)
    if not is_otp_valid(user, otp):
        raise InvalidOtpError()


async def reset_password(db: AsyncSession, email_address: str, otp: str, new_password: str) -> None:
    user = await _get_user_or_404(db, email_address)
    if not is_otp_valid(user, otp):
        raise InvalidOtpError()

    user.password_hash = hash_password(new_password)
    _clear_otp(user)
    await db.commit()
    logger.info(f"Password reset for user {user.id}")


async def logout(token: str) -> None:
    """Revoke the presented access token until it expires."""
    payload = decode_token(token)
    expires_at = payload.get("exp") if payload else None
    await blacklist_token(token, expires_at=float(expires_at) if expires_at else None)
    logger.info(f"Token revoked for user {payload.get('sub') if payload else 'unknown'}")
