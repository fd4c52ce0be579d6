"""
User Models

Database models for accounts and authentication.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rtb_assets.modules.shared import BaseModel, enum_values

if TYPE_CHECKING:
    from rtb_assets.modules.schools.models import School


class UserRole(str, Enum):
    """User roles in the system."""

    ADMIN = "admin"
    RTB_STAFF = "rtb-staff"
    SCHOOL = "school"
    TECHNICIAN = "technician"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"


class User(BaseModel):
    """
    User model for authentication and authorization.

    Accounts with role SCHOOL are linked one-to-one to a School through
    School.user_id.
    """

    __tablename__ = "users"

    # Profile fields
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    gender: Mapped[Gender | None] = mapped_column(
        SAEnum(Gender, name="user_gender", values_callable=enum_values),
        nullable=True,
    )

    # Authentication fields
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)

    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role", values_callable=enum_values),
        nullable=False,
        default=UserRole.SCHOOL,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # One-time password for login verification and password reset
    otp: Mapped[str | None] = mapped_column(String(6), nullable=True)
    otp_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    school: Mapped["School | None"] = relationship(
        "School",
        back_populates="user",
        uselist=False,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"

    @property
    def full_name(self) -> str:
        """Return user's full name."""
        return f"{self.first_name} {self.last_name}"
