"""Authentication schemas."""

from pydantic import BaseModel, EmailStr, Field, field_validator

from rtb_assets.modules.users.models import Gender, UserRole
from rtb_assets.modules.users.schemas import UserResponse


class RegisterRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    phone: str | None = Field(None, max_length=20)
    gender: Gender | None = None
    role: UserRole = UserRole.SCHOOL

    @field_validator("role")
    @classmethod
    def no_self_registered_admins(cls, v: UserRole) -> UserRole:
        if v == UserRole.ADMIN:
            raise ValueError("admin accounts cannot be self-registered")
        return v


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str


class OtpVerifyRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=r"^\d{6}$")


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=r"^\d{6}$")
    new_password: str = Field(..., min_length=8, max_length=128)


class MessageResponse(BaseModel):
    message: str


class LoginResponse(BaseModel):
    """Either an OTP was sent, or the default password must be changed first."""

    message: str
    must_change_password: bool = False
    otp_sent: bool = False


class TokenResponse(BaseModel):
    """Token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse
