"""
User Schemas

Pydantic schemas for user management requests and responses.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from rtb_assets.modules.users.models import Gender, UserRole


class UserCreate(BaseModel):
    """Request body for POST /users.

    When `password` is omitted the configured default password is used and
    the user is asked to change it at first login.
    """

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(None, max_length=20)
    gender: Gender | None = None
    role: UserRole = UserRole.SCHOOL
    password: str | None = Field(None, min_length=8, max_length=128)


class UserUpdate(BaseModel):
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    gender: Gender | None = None
    role: UserRole | None = None
    is_active: bool | None = None


class SetActiveRequest(BaseModel):
    is_active: bool


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    gender: Gender | None = None
    role: UserRole
    is_active: bool
    created_at: datetime
    updated_at: datetime
