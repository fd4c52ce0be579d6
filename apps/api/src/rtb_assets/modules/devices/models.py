"""
Device Models

Inventory of devices distributed to schools. Each device carries a
human-readable name tag that is unique within its school.
"""

import enum
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rtb_assets.modules.shared import BaseModel, enum_values

if TYPE_CHECKING:
    from rtb_assets.modules.schools.models import School

ANNUAL_DEPRECIATION_RATE = Decimal("0.20")
MAINTENANCE_DUE_WINDOW_DAYS = 7


class DeviceCategory(str, enum.Enum):
    LAPTOP = "laptop"
    DESKTOP = "desktop"
    PROJECTOR = "projector"
    OTHER = "other"


class DeviceStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"


class DeviceCondition(str, enum.Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    BROKEN = "broken"


def _today() -> date:
    return datetime.now(UTC).date()


def whole_years_between(start: date, end: date) -> int:
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


class Device(BaseModel):
    """
    A single tracked device.

    `age` is a stored copy of `age_in_years`, refreshed by the monthly
    aging job so it can be filtered and aggregated in SQL.
    """

    __tablename__ = "devices"

    name_tag: Mapped[str] = mapped_column(String(50), nullable=False)
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    brand: Mapped[str | None] = mapped_column(String(100), nullable=True)
    purchase_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    category: Mapped[DeviceCategory] = mapped_column(
        Enum(DeviceCategory, name="device_category", values_callable=enum_values),
        nullable=False,
        default=DeviceCategory.OTHER,
    )
    status: Mapped[DeviceStatus] = mapped_column(
        Enum(DeviceStatus, name="device_status", values_callable=enum_values),
        nullable=False,
        default=DeviceStatus.ACTIVE,
    )
    condition: Mapped[DeviceCondition] = mapped_column(
        Enum(DeviceCondition, name="device_condition", values_callable=enum_values),
        nullable=False,
        default=DeviceCondition.GOOD,
    )

    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ON DELETE CASCADE: removing a school removes its devices
    school_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )

    purchase_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    warranty_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_maintenance_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # {"storage": ..., "ram": ..., "processor": ...}
    specifications: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Relationships
    school: Mapped["School | None"] = relationship(
        "School",
        back_populates="devices",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("school_id", "name_tag", name="uq_devices_school_name_tag"),
        Index("ix_devices_serial_number", "serial_number", unique=True),
        Index("ix_devices_category", "category"),
        Index("ix_devices_model", "model"),
        Index("ix_devices_purchase_date", "purchase_date"),
        Index("ix_devices_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Device(id={self.id}, name_tag={self.name_tag}, serial={self.serial_number})>"

    @property
    def age_in_years(self) -> int | None:
        if self.purchase_date is None:
            return None
        return whole_years_between(self.purchase_date, _today())

    @property
    def days_since_last_seen(self) -> int | None:
        if self.last_seen_at is None:
            return None
        return (datetime.now(UTC) - self.last_seen_at).days

    @property
    def depreciated_value(self) -> Decimal:
        """Straight-line value at 20% per year, never below zero."""
        cost = Decimal(self.purchase_cost or 0)
        if self.purchase_date is None:
            return cost
        years = Decimal((_today() - self.purchase_date).days) / Decimal("365.25")
        remaining = max(Decimal(0), 1 - ANNUAL_DEPRECIATION_RATE * years)
        return (cost * remaining).quantize(Decimal("0.01"))

    @property
    def is_warranty_active(self) -> bool:
        return self.warranty_expiry is not None and self.warranty_expiry >= _today()

    @property
    def needs_maintenance(self) -> bool:
        if self.next_maintenance_date is None:
            return False
        return self.next_maintenance_date <= _today() + timedelta(days=MAINTENANCE_DUE_WINDOW_DAYS)

    @property
    def maintenance_overdue(self) -> bool:
        return self.next_maintenance_date is not None and self.next_maintenance_date < _today()
