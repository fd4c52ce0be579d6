"""
Shared model base.

Every table gets an integer primary key plus server-managed
created_at / updated_at timestamps.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column

from rtb_assets.core.database import Base


class BaseModel(Base):
    """Abstract base with id and audit timestamps."""

    __abstract__ = True

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def enum_values(enum_cls) -> list[str]:
    """Persist enum values (not member names) in database enum types."""
    return [member.value for member in enum_cls]


__all__ = ["BaseModel", "enum_values"]
