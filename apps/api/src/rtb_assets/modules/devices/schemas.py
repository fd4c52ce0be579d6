"""
Device Schemas

Pydantic schemas for device requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from rtb_assets.modules.devices.models import DeviceCategory, DeviceCondition, DeviceStatus
from rtb_assets.modules.schools.schemas import SchoolSummary


class DeviceSpecifications(BaseModel):
    storage: str | None = Field(None, max_length=100)
    ram: str | None = Field(None, max_length=100)
    processor: str | None = Field(None, max_length=200)


class DeviceCreate(BaseModel):
    """Request body for POST /devices. The name tag is generated."""

    serial_number: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    brand: str | None = Field(None, max_length=100)
    purchase_cost: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    category: DeviceCategory = DeviceCategory.OTHER
    status: DeviceStatus = DeviceStatus.ACTIVE
    condition: DeviceCondition = DeviceCondition.GOOD
    school_id: int | None = Field(None, gt=0)
    purchase_date: date | None = None
    warranty_expiry: date | None = None
    next_maintenance_date: date | None = None
    specifications: DeviceSpecifications | None = None


class DeviceUpdate(BaseModel):
    """Partial update. Changing school_id or category regenerates the name tag."""

    serial_number: str | None = Field(None, min_length=1, max_length=100)
    model: str | None = Field(None, min_length=1, max_length=100)
    brand: str | None = Field(None, max_length=100)
    purchase_cost: Decimal | None = Field(None, ge=0, max_digits=12, decimal_places=2)
    category: DeviceCategory | None = None
    status: DeviceStatus | None = None
    condition: DeviceCondition | None = None
    school_id: int | None = Field(None, gt=0)
    purchase_date: date | None = None
    warranty_expiry: date | None = None
    next_maintenance_date: date | None = None
    specifications: DeviceSpecifications | None = None
    last_seen_at: datetime | None = None


class DeviceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name_tag: str
    serial_number: str
    model: str
    brand: str | None = None
    purchase_cost: Decimal
    category: DeviceCategory
    status: DeviceStatus
    condition: DeviceCondition
    last_seen_at: datetime | None = None
    school_id: int | None = None
    school: SchoolSummary | None = None
    purchase_date: date | None = None
    warranty_expiry: date | None = None
    next_maintenance_date: date | None = None
    specifications: dict | None = None
    age: int | None = None

    # Computed
    age_in_years: int | None = None
    days_since_last_seen: int | None = None
    depreciated_value: Decimal
    is_warranty_active: bool
    needs_maintenance: bool
    maintenance_overdue: bool

    created_at: datetime
    updated_at: datetime


class AssignDeviceRequest(BaseModel):
    school_id: int = Field(..., gt=0)


class BulkAssignRequest(BaseModel):
    device_ids: list[int] = Field(..., min_length=1, max_length=500)
    school_id: int = Field(..., gt=0)


class BulkAssignFailure(BaseModel):
    device_id: int
    error: str


class BulkAssignResult(BaseModel):
    assigned: list[DeviceResponse]
    failed: list[BulkAssignFailure]


class BulkCreateRequest(BaseModel):
    devices: list[DeviceCreate] = Field(..., min_length=1, max_length=500)


class BulkCreateFailure(BaseModel):
    index: int
    serial_number: str
    error: str


class BulkCreateResult(BaseModel):
    created: list[DeviceResponse]
    failed: list[BulkCreateFailure]


class DeviceStatistics(BaseModel):
    total: int
    by_category: dict[str, int]
    assigned: int
    unassigned: int
    average_age: float | None = None
