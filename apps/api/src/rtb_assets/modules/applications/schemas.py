"""
Application Schemas

Pydantic schemas for application requests and responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from rtb_assets.modules.applications.models import (
    ApplicationPriority,
    ApplicationStatus,
    ApplicationType,
)
from rtb_assets.modules.schools.schemas import SchoolSummary


def _not_blank(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


NonBlankStr = Annotated[str, AfterValidator(_not_blank)]


# ============================================
# Requests
# ============================================


class NewDeviceApplicationCreate(BaseModel):
    """New device request. The letter path is filled in by the upload handler."""

    title: NonBlankStr = Field(..., min_length=1, max_length=255)
    description: NonBlankStr = Field(..., min_length=1)
    school_id: int = Field(..., gt=0)
    requested_device_count: int = Field(..., gt=0)
    requested_device_type: NonBlankStr = Field(..., min_length=1, max_length=100)
    justification: NonBlankStr = Field(..., min_length=1)
    priority: ApplicationPriority = ApplicationPriority.MEDIUM
    application_letter_path: str | None = None


class DeviceIssueCreate(BaseModel):
    device_id: int = Field(..., gt=0)
    problem_description: NonBlankStr = Field(..., min_length=1)


class MaintenanceApplicationCreate(BaseModel):
    """Maintenance request covering one or more devices."""

    title: NonBlankStr = Field(..., min_length=1, max_length=255)
    description: NonBlankStr = Field(..., min_length=1)
    school_id: int = Field(..., gt=0)
    device_issues: list[DeviceIssueCreate] = Field(..., min_length=1, max_length=200)
    priority: ApplicationPriority = ApplicationPriority.MEDIUM


class ApplicationUpdate(BaseModel):
    """
    Partial update.

    `status`, when present, is applied through the validated transition
    call rather than merged like the other fields.
    """

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, min_length=1)
    status: ApplicationStatus | None = None
    priority: ApplicationPriority | None = None
    assigned_to: str | None = Field(None, min_length=1, max_length=255)
    estimated_completion_date: datetime | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    estimated_cost: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    actual_cost: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)


class AssignApplicationRequest(BaseModel):
    assigned_to: str = Field(..., min_length=1, max_length=255)


class ApproveApplicationRequest(BaseModel):
    estimated_cost: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    estimated_completion_date: datetime | None = None


class RejectApplicationRequest(BaseModel):
    rejection_reason: str


class CompleteApplicationRequest(BaseModel):
    actual_cost: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)


class DeviceIssueUpdate(BaseModel):
    action_taken: str
    resolved: bool = False


class ApplicationFilters(BaseModel):
    """Conjunctive filters for listing applications."""

    type: ApplicationType | None = None
    status: ApplicationStatus | None = None
    priority: ApplicationPriority | None = None
    school_id: int | None = None
    assigned_to: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    is_overdue: bool | None = None


# ============================================
# Responses
# ============================================


class IssueDeviceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name_tag: str
    serial_number: str
    model: str


class DeviceIssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    application_id: int
    device_id: int
    device: IssueDeviceSummary | None = None
    problem_description: str
    action_taken: str | None = None
    resolved_at: datetime | None = None
    is_resolved: bool
    created_at: datetime
    updated_at: datetime


class ApplicationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: ApplicationType
    status: ApplicationStatus
    priority: ApplicationPriority
    title: str
    description: str
    school_id: int
    school: SchoolSummary | None = None

    requested_device_count: int | None = None
    requested_device_type: str | None = None
    justification: str | None = None
    device_issues: list[DeviceIssueResponse] = []

    assigned_to: str | None = None
    assigned_at: datetime | None = None
    estimated_completion_date: datetime | None = None
    completed_at: datetime | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    estimated_cost: Decimal | None = None
    actual_cost: Decimal | None = None

    # Computed
    is_overdue: bool
    affected_device_count: int
    resolved_issue_count: int
    has_application_letter: bool
    days_since_created: int
    status_display_name: str
    priority_display_name: str

    created_at: datetime
    updated_at: datetime


class ApplicationStatistics(BaseModel):
    total: int
    pending: int
    approved: int
    completed: int
    rejected: int
    new_device_requests: int
    maintenance_requests: int
    overdue: int
