"""Authentication router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import CurrentUser, get_current_user
from rtb_assets.core.database import get_db
from rtb_assets.core.rate_limit import rate_limited
from rtb_assets.modules.auth import service
from rtb_assets.modules.auth.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    OtpVerifyRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
)
from rtb_assets.modules.auth.service import AuthServiceError
from rtb_assets.modules.users.schemas import UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()

# OTP-issuing endpoints send email, so they are limited per client IP
otp_rate_limit = [Depends(rate_limited("auth_otp", limit=5, window_seconds=60))]
verify_rate_limit = [Depends(rate_limited("auth_verify", limit=10, window_seconds=60))]


def _handle_service_error(e: AuthServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=otp_rate_limit,
)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    try:
        return UserResponse.model_validate(await service.register(db, data))
    except AuthServiceError as e:
        _handle_service_error(e)


@router.post("/login", response_model=LoginResponse, dependencies=otp_rate_limit)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Check credentials and email a one-time code.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    try:
        return await service.login(db, credentials.email, credentials.password)
    except AuthServiceError as e:
        _handle_service_error(e)


@router.post("/verify-otp", response_model=TokenResponse, dependencies=verify_rate_limit)
async def verify_otp(
    data: OtpVerifyRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    try:
        result = await service.verify_otp(db, data.email, data.otp)
        return TokenResponse(
            access_token=result["access_token"],
            refresh_token=result["refresh_token"],
            user=UserResponse.model_validate(result["user"]),
        )
    except AuthServiceError as e:
        _handle_service_error(e)


@router.post("/forgot-password", response_model=MessageResponse, dependencies=otp_rate_limit)
async def forgot_password(
    data: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    try:
        await service.forgot_password(db, data.email)
        return MessageResponse(message="OTP sent to your email.")
    except AuthServiceError as e:
        _handle_service_error(e)


@router.post("/verify-reset-otp", response_model=MessageResponse, dependencies=verify_rate_limit)
async def verify_reset_otp(
    data: OtpVerifyRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    try:
        await service.verify_reset_otp(db, data.email, data.otp)
        return MessageResponse(message="OTP is valid.")
    except AuthServiceError as e:
        _handle_service_error(e)


@router.post("/reset-password", response_model=MessageResponse, dependencies=verify_rate_limit)
async def reset_password(
    data: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    try:
        await service.reset_password(db, data.email, data.otp, data.new_password)
        return MessageResponse(message="Password has been reset.")
    except AuthServiceError as e:
        _handle_service_error(e)


@router.post("/logout", response_model=MessageResponse)
async def logout(user: CurrentUser = Depends(get_current_user)) -> MessageResponse:
    if user.token:
        await service.logout(user.token)
    return MessageResponse(message="Logged out.")
