"""
Application Models

Requests raised by schools: either new devices, or maintenance on
devices they already hold. Maintenance requests carry one
ApplicationDeviceIssue per reported problem.
"""

import enum
import math
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rtb_assets.modules.shared import BaseModel, enum_values

if TYPE_CHECKING:
    from rtb_assets.modules.devices.models import Device
    from rtb_assets.modules.schools.models import School


class ApplicationType(str, enum.Enum):
    NEW_DEVICE_REQUEST = "new_device_request"
    MAINTENANCE_REQUEST = "maintenance_request"


class ApplicationStatus(str, enum.Enum):
    """Status of an application."""

    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApplicationPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


STATUS_DISPLAY_NAMES = {
    ApplicationStatus.PENDING: "Pending Review",
    ApplicationStatus.UNDER_REVIEW: "Under Review",
    ApplicationStatus.APPROVED: "Approved",
    ApplicationStatus.REJECTED: "Rejected",
    ApplicationStatus.IN_PROGRESS: "In Progress",
    ApplicationStatus.COMPLETED: "Completed",
    ApplicationStatus.CANCELLED: "Cancelled",
}

PRIORITY_DISPLAY_NAMES = {
    ApplicationPriority.LOW: "Low Priority",
    ApplicationPriority.MEDIUM: "Medium Priority",
    ApplicationPriority.HIGH: "High Priority",
    ApplicationPriority.URGENT: "Urgent",
}


class ApplicationDeviceIssue(BaseModel):
    """
    One reported problem on one device, owned by a maintenance application.

    resolved_at is set once and never cleared.
    """

    __tablename__ = "application_device_issues"

    application_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    device_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("devices.id"),
        nullable=False,
        index=True,
    )

    problem_description: Mapped[str] = mapped_column(Text, nullable=False)
    action_taken: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    application: Mapped["Application"] = relationship("Application", back_populates="device_issues")
    device: Mapped["Device"] = relationship("Device", lazy="selectin")

    def __repr__(self) -> str:
        return f"<ApplicationDeviceIssue(id={self.id}, device_id={self.device_id})>"

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


class Application(BaseModel):
    """
    A school-submitted request.

    `type` and `school_id` are fixed at creation. Status changes go through
    the service's transition call so they are validated and logged.
    """

    __tablename__ = "applications"

    type: Mapped[ApplicationType] = mapped_column(
        Enum(ApplicationType, name="application_type", values_callable=enum_values),
        nullable=False,
    )
    status: Mapped[ApplicationStatus] = mapped_column(
        Enum(ApplicationStatus, name="application_status", values_callable=enum_values),
        nullable=False,
        default=ApplicationStatus.PENDING,
    )
    priority: Mapped[ApplicationPriority] = mapped_column(
        Enum(ApplicationPriority, name="application_priority", values_callable=enum_values),
        nullable=False,
        default=ApplicationPriority.MEDIUM,
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    school_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("schools.id", ondelete="CASCADE"),
        nullable=False,
    )

    # New device requests
    requested_device_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requested_device_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    application_letter_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Workflow tracking
    assigned_to: Mapped[str | None] = mapped_column(String(255), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_completion_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    estimated_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    actual_cost: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)

    # Relationships
    school: Mapped["School"] = relationship("School", lazy="selectin")
    device_issues: Mapped[list[ApplicationDeviceIssue]] = relationship(
        ApplicationDeviceIssue,
        back_populates="application",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by=ApplicationDeviceIssue.id,
    )

    __table_args__ = (
        Index("ix_applications_type", "type"),
        Index("ix_applications_status", "status"),
        Index("ix_applications_priority", "priority"),
        Index("ix_applications_school_id", "school_id"),
        Index("ix_applications_created_at", "created_at"),
        Index("ix_applications_assigned_to", "assigned_to"),
        CheckConstraint(
            "requested_device_count IS NULL OR requested_device_count > 0",
            name="ck_applications_requested_device_count_positive",
        ),
        CheckConstraint(
            "estimated_cost IS NULL OR estimated_cost >= 0",
            name="ck_applications_estimated_cost_non_negative",
        ),
        CheckConstraint(
            "actual_cost IS NULL OR actual_cost >= 0",
            name="ck_applications_actual_cost_non_negative",
        ),
    )

    def __repr__(self) -> str:
        return f"<Application(id={self.id}, type={self.type}, status={self.status})>"

    @property
    def is_overdue(self) -> bool:
        if self.estimated_completion_date is None:
            return False
        if self.status == ApplicationStatus.COMPLETED:
            return False
        return self.estimated_completion_date < datetime.now(UTC)

    @property
    def affected_device_count(self) -> int:
        """One per reported issue, so a device reported twice counts twice."""
        return len(self.device_issues or [])

    @property
    def resolved_issue_count(self) -> int:
        return sum(1 for issue in self.device_issues or [] if issue.resolved_at is not None)

    @property
    def has_application_letter(self) -> bool:
        return bool(self.application_letter_path)

    @property
    def days_since_created(self) -> int:
        """Whole days since creation, rounded up."""
        if self.created_at is None:
            return 0
        elapsed = abs((datetime.now(UTC) - self.created_at).total_seconds())
        return math.ceil(elapsed / 86400)

    @property
    def status_display_name(self) -> str:
        return STATUS_DISPLAY_NAMES.get(self.status, str(self.status))

    @property
    def priority_display_name(self) -> str:
        return PRIORITY_DISPLAY_NAMES.get(self.priority, str(self.priority))
