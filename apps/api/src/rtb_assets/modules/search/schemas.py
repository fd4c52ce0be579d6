"""
Search Schemas

Filter sets for the per-entity searches and the shapes returned by the
global, quick, autocomplete and filter-option endpoints.
"""

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from rtb_assets.modules.devices.models import DeviceCategory, DeviceCondition, DeviceStatus
from rtb_assets.modules.devices.schemas import DeviceResponse
from rtb_assets.modules.schools.schemas import SchoolResponse
from rtb_assets.modules.users.models import UserRole
from rtb_assets.modules.users.schemas import UserResponse

SuggestionType = Literal["device", "school", "user"]


# ============================================
# Filters
# ============================================


class DeviceSearchFilters(BaseModel):
    query: str | None = Field(None, max_length=100)
    categories: list[DeviceCategory] | None = None
    statuses: list[DeviceStatus] | None = None
    conditions: list[DeviceCondition] | None = None
    school_id: int | None = Field(None, gt=0)
    province: str | None = None
    district: str | None = None
    purchased_from: date | None = None
    purchased_to: date | None = None
    price_min: Decimal | None = Field(None, ge=0)
    price_max: Decimal | None = Field(None, ge=0)
    is_online: bool | None = None
    needs_maintenance: bool | None = None
    has_warranty: bool | None = None


class SchoolSearchFilters(BaseModel):
    query: str | None = Field(None, max_length=100)
    province: str | None = None
    district: str | None = None
    has_devices: bool | None = None


class UserSearchFilters(BaseModel):
    query: str | None = Field(None, max_length=100)
    roles: list[UserRole] | None = None
    is_active: bool | None = None
    has_school: bool | None = None


# ============================================
# Results
# ============================================


class GlobalSearchResult(BaseModel):
    devices: list[DeviceResponse]
    schools: list[SchoolResponse]
    users: list[UserResponse]


class QuickDevice(BaseModel):
    id: int
    name_tag: str
    type: Literal["device"] = "device"


class QuickSchool(BaseModel):
    id: int
    name: str
    type: Literal["school"] = "school"


class QuickUser(BaseModel):
    id: int
    full_name: str
    type: Literal["user"] = "user"


class QuickSearchResult(BaseModel):
    """Compact hits for a header search box."""

    devices: list[QuickDevice]
    schools: list[QuickSchool]
    users: list[QuickUser]


class DeviceFilterOptions(BaseModel):
    categories: list[str]
    statuses: list[str]
    conditions: list[str]
    brands: list[str]
    provinces: list[str]
    districts: list[str]


class SchoolFilterOptions(BaseModel):
    provinces: list[str]
    districts: list[str]


class UserFilterOptions(BaseModel):
    roles: list[str]


class SearchFilterOptions(BaseModel):
    devices: DeviceFilterOptions
    schools: SchoolFilterOptions
    users: UserFilterOptions
