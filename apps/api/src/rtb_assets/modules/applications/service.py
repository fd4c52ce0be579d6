"""
Application Workflow Service

Business logic for device and maintenance requests raised by schools.

Status changes all go through change_status(), which checks the
transition table and logs `previous -> new` for every change. Emails are
dispatched after commit as background notifications, so a failed send
never affects the request.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core import email
from rtb_assets.core.config import settings
from rtb_assets.core.notifications import dispatch_notification
from rtb_assets.modules.applications import repository, uploads
from rtb_assets.modules.applications.helpers import (
    describe_device_issues,
    get_school_contact,
    get_school_name,
    status_label,
)
from rtb_assets.modules.applications.models import (
    PRIORITY_DISPLAY_NAMES,
    Application,
    ApplicationDeviceIssue,
    ApplicationStatus,
    ApplicationType,
)
from rtb_assets.modules.applications.schemas import (
    ApplicationFilters,
    ApplicationUpdate,
    MaintenanceApplicationCreate,
    NewDeviceApplicationCreate,
)
from rtb_assets.modules.devices import repository as device_repository
from rtb_assets.modules.schools.repository import SchoolRepository
from rtb_assets.modules.shared.pagination import PaginationMeta

logger = logging.getLogger(__name__)


# ============================================
# Status transitions
# ============================================

# Default: any status may move to any other
ALLOWED_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    status: set(ApplicationStatus) - {status} for status in ApplicationStatus
}

# Opt-in with STRICT_STATUS_TRANSITIONS=true
STRICT_STATUS_TRANSITIONS_TABLE: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {
        ApplicationStatus.UNDER_REVIEW,
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.IN_PROGRESS,
        ApplicationStatus.CANCELLED,
    },
    ApplicationStatus.UNDER_REVIEW: {
        ApplicationStatus.PENDING,
        ApplicationStatus.APPROVED,
        ApplicationStatus.REJECTED,
        ApplicationStatus.IN_PROGRESS,
        ApplicationStatus.CANCELLED,
    },
    ApplicationStatus.APPROVED: {
        ApplicationStatus.IN_PROGRESS,
        ApplicationStatus.COMPLETED,
        ApplicationStatus.CANCELLED,
    },
    ApplicationStatus.IN_PROGRESS: {ApplicationStatus.COMPLETED, ApplicationStatus.CANCELLED},
    # Terminal states
    ApplicationStatus.COMPLETED: set(),
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.CANCELLED: set(),
}


def get_transition_table() -> dict[ApplicationStatus, set[ApplicationStatus]]:
    if settings.strict_status_transitions:
        return STRICT_STATUS_TRANSITIONS_TABLE
    return ALLOWED_STATUS_TRANSITIONS


def is_transition_allowed(current: ApplicationStatus, new: ApplicationStatus) -> bool:
    """Staying in the same status is always allowed and changes nothing."""
    if current == new:
        return True
    return new in get_transition_table().get(current, set())


# ============================================
# Exceptions
# ============================================


class ApplicationServiceError(Exception):
    """Base exception for application workflow errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class ApplicationNotFoundError(ApplicationServiceError):
    def __init__(self, application_id: int | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(message=message, error_code="APPLICATION_NOT_FOUND", status_code=404)


class ApplicationSchoolNotFoundError(ApplicationServiceError):
    def __init__(self, school_id: int):
        super().__init__(
            message=f"School {school_id} not found",
            error_code="SCHOOL_NOT_FOUND",
            status_code=404,
        )


class ApplicationDeviceNotFoundError(ApplicationServiceError):
    """One or more devices referenced by a maintenance request do not exist."""

    def __init__(self, missing_ids: list[int]):
        self.missing_ids = missing_ids
        super().__init__(
            message=f"Devices not found: {', '.join(str(i) for i in missing_ids)}",
            error_code="DEVICE_NOT_FOUND",
            status_code=404,
        )


class DeviceIssueNotFoundError(ApplicationServiceError):
    def __init__(self, issue_id: int):
        super().__init__(
            message=f"Device issue {issue_id} not found",
            error_code="DEVICE_ISSUE_NOT_FOUND",
            status_code=404,
        )


class ApplicationValidationError(ApplicationServiceError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="VALIDATION_ERROR", status_code=422)


class InvalidStatusTransitionError(ApplicationServiceError):
    def __init__(self, current: ApplicationStatus, new: ApplicationStatus):
        self.current_status = current
        self.new_status = new
        allowed = sorted(s.value for s in get_transition_table().get(current, set()))
        super().__init__(
            message=(
                f"Invalid status transition: {current.value} -> {new.value}. "
                f"Valid transitions: {allowed}"
            ),
            error_code="INVALID_STATUS_TRANSITION",
            status_code=409,
        )


class ApplicationLetterNotFoundError(ApplicationServiceError):
    def __init__(self, application_id: int):
        super().__init__(
            message=f"Application {application_id} has no letter on file",
            error_code="LETTER_NOT_FOUND",
            status_code=404,
        )


# ============================================
# Notifications
# ============================================


def _notify_new_application(application: Application) -> None:
    recipients = settings.admin_notification_list
    if not recipients:
        logger.warning(f"No admin recipients configured for application {application.id}")
        return

    app_id = application.id
    title = application.title
    school_name = get_school_name(application)
    count = application.requested_device_count
    device_type = application.requested_device_type
    priority = PRIORITY_DISPLAY_NAMES[application.priority]

    dispatch_notification(
        f"new_application:{app_id}",
        lambda: email.send_new_application_notification(
            recipients, app_id, title, school_name, count, device_type, priority
        ),
    )


def _notify_maintenance_request(application: Application) -> None:
    recipients = settings.admin_notification_list
    if not recipients:
        logger.warning(f"No admin recipients configured for application {application.id}")
        return

    app_id = application.id
    title = application.title
    school_name = get_school_name(application)
    issues = describe_device_issues(application)
    priority = PRIORITY_DISPLAY_NAMES[application.priority]

    dispatch_notification(
        f"maintenance_request:{app_id}",
        lambda: email.send_maintenance_request_notification(
            recipients, app_id, title, school_name, issues, priority
        ),
    )


def _notify_status_change(application: Application, previous: ApplicationStatus) -> None:
    to_email, name = get_school_contact(application)
    if not to_email:
        logger.warning(f"No school contact for application {application.id}, status email skipped")
        return

    app_id = application.id
    title = application.title
    previous_label = status_label(previous)
    new_label = status_label(application.status)
    rejected = application.status == ApplicationStatus.REJECTED
    note = application.rejection_reason if rejected else None

    dispatch_notification(
        f"status_change:{app_id}",
        lambda: email.send_application_status_change_notification(
            to_email, name or "", app_id, title, previous_label, new_label, note
        ),
    )


# ============================================
# Internal helpers
# ============================================


async def _get_or_404(db: AsyncSession, application_id: int) -> Application:
    application = await repository.get_by_id(db, application_id)
    if not application:
        logger.warning(f"Application not found: {application_id}")
        raise ApplicationNotFoundError(application_id)
    return application


async def _ensure_school(db: AsyncSession, school_id: int) -> None:
    if not await SchoolRepository.get_by_id(db, school_id):
        logger.warning(f"Application for unknown school {school_id}")
        raise ApplicationSchoolNotFoundError(school_id)


def _check_cost(value: Decimal | None, field: str) -> None:
    if value is not None and value < 0:
        raise ApplicationValidationError(f"{field} must not be negative")


def _apply_status(
    application: Application,
    new_status: ApplicationStatus,
) -> ApplicationStatus | None:
    """
    Move `application` to `new_status` after checking the transition table.

    Returns:
        The previous status if it changed, otherwise None

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed
    """
    previous = application.status
    if not is_transition_allowed(previous, new_status):
        logger.warning(
            f"Rejected transition for application {application.id}: "
            f"{previous.value} -> {new_status.value}"
        )
        raise InvalidStatusTransitionError(previous, new_status)

    if previous == new_status:
        return None

    application.status = new_status
    # Every entry into COMPLETED stamps a fresh completion time
    if new_status == ApplicationStatus.COMPLETED:
        application.completed_at = datetime.now(UTC)

    logger.info(f"Application {application.id} status {previous.value} -> {new_status.value}")
    return previous


def _apply_assignment(application: Application, assigned_to: str | None) -> None:
    application.assigned_to = assigned_to
    if assigned_to and application.assigned_at is None:
        application.assigned_at = datetime.now(UTC)


async def _commit_and_reload(db: AsyncSession, application_id: int) -> Application:
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return await _get_or_404(db, application_id)


# ============================================
# Creation
# ============================================


async def create_new_device_application(
    db: AsyncSession,
    data: NewDeviceApplicationCreate,
) -> Application:
    """
    Submit a new device request.

    Raises:
        ApplicationSchoolNotFoundError: If the school does not exist
    """
    await _ensure_school(db, data.school_id)

    try:
        application = await repository.create_application(
            db,
            type=ApplicationType.NEW_DEVICE_REQUEST,
            status=ApplicationStatus.PENDING,
            priority=data.priority,
            title=data.title,
            description=data.description,
            school_id=data.school_id,
            requested_device_count=data.requested_device_count,
            requested_device_type=data.requested_device_type,
            justification=data.justification,
            application_letter_path=data.application_letter_path,
        )
        application_id = application.id
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    application = await _get_or_404(db, application_id)
    logger.info(f"New device application {application_id} created for school {data.school_id}")

    _notify_new_application(application)
    return application


async def create_maintenance_application(
    db: AsyncSession,
    data: MaintenanceApplicationCreate,
) -> Application:
    """
    Submit a maintenance request with its device issues.

    The application and all issues are written in one transaction. All
    referenced devices are resolved with a single query; if any is missing
    nothing is written.

    Raises:
        ApplicationValidationError: If there are no device issues
        ApplicationSchoolNotFoundError: If the school does not exist
        ApplicationDeviceNotFoundError: If any device does not exist
    """
    if not data.device_issues:
        raise ApplicationValidationError("At least one device issue is required")

    await _ensure_school(db, data.school_id)

    requested_ids = list(dict.fromkeys(issue.device_id for issue in data.device_issues))
    devices = await device_repository.get_by_ids(db, requested_ids)
    if len(devices) != len(requested_ids):
        found = {device.id for device in devices}
        missing = [device_id for device_id in requested_ids if device_id not in found]
        logger.warning(f"Maintenance request references unknown devices: {missing}")
        raise ApplicationDeviceNotFoundError(missing)

    try:
        application = await repository.create_application(
            db,
            type=ApplicationType.MAINTENANCE_REQUEST,
            status=ApplicationStatus.PENDING,
            priority=data.priority,
            title=data.title,
            description=data.description,
            school_id=data.school_id,
        )
        application_id = application.id
        await repository.add_device_issues(
            db,
            application_id,
            [(issue.device_id, issue.problem_description) for issue in data.device_issues],
        )
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.error(f"Maintenance request for school {data.school_id} rolled back: {e}")
        raise

    application = await _get_or_404(db, application_id)
    logger.info(
        f"Maintenance application {application_id} created for school {data.school_id} "
        f"with {len(data.device_issues)} issue(s)"
    )

    _notify_maintenance_request(application)
    return application


# ============================================
# Queries
# ============================================


async def get_all_applications(
    db: AsyncSession,
    filters: ApplicationFilters | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> tuple[list[Application], PaginationMeta | None]:
    return await repository.list_applications(db, filters, page, limit)


async def get_applications_by_school(db: AsyncSession, school_id: int) -> list[Application]:
    return await repository.get_by_school(db, school_id)


async def get_applications_by_date_range(
    db: AsyncSession,
    start: datetime,
    end: datetime,
) -> list[Application]:
    if start > end:
        raise ApplicationValidationError("start must not be after end")
    return await repository.get_by_date_range(db, start, end)


async def get_application_by_id(db: AsyncSession, application_id: int) -> Application:
    return await _get_or_404(db, application_id)


async def get_application_statistics(db: AsyncSession) -> dict[str, int]:
    return await repository.get_statistics(db)


async def get_application_letter_path(db: AsyncSession, application_id: int) -> str:
    """
    Raises:
        ApplicationLetterNotFoundError: No letter recorded, or the file is gone
    """
    application = await _get_or_404(db, application_id)
    path = application.application_letter_path
    if not uploads.letter_exists(path):
        if path:
            logger.error(f"Letter for application {application_id} missing on disk: {path}")
        raise ApplicationLetterNotFoundError(application_id)
    return path


# ============================================
# Updates and transitions
# ============================================

# Columns that may be patched but never set to NULL
_NON_NULLABLE_FIELDS = {"title", "description", "priority"}


async def update_application(
    db: AsyncSession,
    application_id: int,
    data: ApplicationUpdate,
) -> Application:
    """
    Merge a partial update.

    A `status` in the patch goes through the same transition check as
    change_status(). Setting `assigned_to` stamps `assigned_at` the first
    time only.
    """
    application = await _get_or_404(db, application_id)
    patch = data.model_dump(exclude_unset=True)
    new_status = patch.pop("status", None)

    _check_cost(patch.get("estimated_cost"), "estimated_cost")
    _check_cost(patch.get("actual_cost"), "actual_cost")

    # Validate before touching anything so a rejected transition changes nothing
    if new_status is not None and not is_transition_allowed(application.status, new_status):
        raise InvalidStatusTransitionError(application.status, new_status)

    for field, value in patch.items():
        if value is None and field in _NON_NULLABLE_FIELDS:
            continue
        if field == "assigned_to":
            _apply_assignment(application, value)
        else:
            setattr(application, field, value)

    previous = _apply_status(application, new_status) if new_status is not None else None

    application = await _commit_and_reload(db, application_id)
    logger.info(f"Application {application_id} updated: {sorted(patch)}")

    if previous is not None:
        _notify_status_change(application, previous)
    return application


async def change_status(
    db: AsyncSession,
    application_id: int,
    new_status: ApplicationStatus,
    **changes: Any,
) -> Application:
    """
    Validated status transition.

    Args:
        new_status: Target status
        **changes: Extra fields written in the same commit (e.g. rejection_reason)

    Raises:
        ApplicationNotFoundError: If the application does not exist
        InvalidStatusTransitionError: If the transition is not allowed
    """
    application = await _get_or_404(db, application_id)

    if not is_transition_allowed(application.status, new_status):
        raise InvalidStatusTransitionError(application.status, new_status)

    for field, value in changes.items():
        if field == "assigned_to":
            _apply_assignment(application, value)
        else:
            setattr(application, field, value)

    previous = _apply_status(application, new_status)
    application = await _commit_and_reload(db, application_id)

    if previous is not None:
        _notify_status_change(application, previous)
    return application


async def assign_application(
    db: AsyncSession,
    application_id: int,
    assigned_to: str,
) -> Application:
    """Assign a handler and move to IN_PROGRESS. assigned_at is set once."""
    assigned_to = (assigned_to or "").strip()
    if not assigned_to:
        raise ApplicationValidationError("assigned_to is required")
    return await change_status(
        db, application_id, ApplicationStatus.IN_PROGRESS, assigned_to=assigned_to
    )


async def approve_application(
    db: AsyncSession,
    application_id: int,
    estimated_cost: Decimal | None = None,
    estimated_completion_date: datetime | None = None,
) -> Application:
    _check_cost(estimated_cost, "estimated_cost")
    changes: dict[str, Any] = {}
    if estimated_cost is not None:
        changes["estimated_cost"] = estimated_cost
    if estimated_completion_date is not None:
        changes["estimated_completion_date"] = estimated_completion_date
    return await change_status(db, application_id, ApplicationStatus.APPROVED, **changes)


async def reject_application(
    db: AsyncSession,
    application_id: int,
    rejection_reason: str,
) -> Application:
    reason = (rejection_reason or "").strip()
    if not reason:
        raise ApplicationValidationError("A rejection reason is required")
    return await change_status(
        db, application_id, ApplicationStatus.REJECTED, rejection_reason=reason
    )


async def complete_application(
    db: AsyncSession,
    application_id: int,
    actual_cost: Decimal | None = None,
) -> Application:
    """Move to COMPLETED. Completing an already completed application changes no timestamp."""
    _check_cost(actual_cost, "actual_cost")
    changes: dict[str, Any] = {}
    if actual_cost is not None:
        changes["actual_cost"] = actual_cost
    return await change_status(db, application_id, ApplicationStatus.COMPLETED, **changes)


async def update_device_issue(
    db: AsyncSession,
    issue_id: int,
    action_taken: str,
    resolved: bool = False,
) -> ApplicationDeviceIssue:
    """
    Record the action taken on a device issue.

    resolved=True stamps resolved_at once. It is never cleared.

    Raises:
        ApplicationValidationError: If action_taken is blank
        DeviceIssueNotFoundError: If the issue does not exist
    """
    action_taken = (action_taken or "").strip()
    if not action_taken:
        raise ApplicationValidationError("action_taken is required")

    issue = await repository.get_issue_by_id(db, issue_id)
    if not issue:
        raise DeviceIssueNotFoundError(issue_id)

    issue.action_taken = action_taken
    if resolved and issue.resolved_at is None:
        issue.resolved_at = datetime.now(UTC)
        logger.info(f"Device issue {issue_id} resolved (application {issue.application_id})")

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    return await repository.get_issue_by_id(db, issue_id)


async def delete_application(db: AsyncSession, application_id: int) -> bool:
    """
    Hard delete, cascading to device issues. A stored letter is removed too.

    Returns:
        True if a row was deleted
    """
    application = await repository.get_by_id(db, application_id)
    if application is None:
        return False
    letter_path = application.application_letter_path

    try:
        deleted = await repository.delete_application(db, application_id)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    if deleted:
        logger.info(f"Application {application_id} deleted")
        await uploads.remove_letter(letter_path)
    return deleted
