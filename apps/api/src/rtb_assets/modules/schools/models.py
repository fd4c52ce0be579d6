"""
School Models

Schools receiving devices. Each school is managed through exactly one
user account with role `school`.
"""

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rtb_assets.modules.shared import BaseModel

if TYPE_CHECKING:
    from rtb_assets.modules.devices.models import Device
    from rtb_assets.modules.users.models import User


class School(BaseModel):
    """School registry entry, located by province / district / sector."""

    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Location
    province: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    district: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    sector: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    # ON DELETE CASCADE: removing the account removes the school
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="school",
        lazy="selectin",
    )
    devices: Mapped[list["Device"]] = relationship(
        "Device",
        back_populates="school",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<School(id={self.id}, name={self.name}, district={self.district})>"
