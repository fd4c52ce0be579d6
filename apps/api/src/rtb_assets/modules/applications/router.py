"""
Applications Router

School endpoints:
- POST /applications/new-device - Submit a new device request (multipart, optional PDF letter)
- POST /applications/maintenance - Submit a maintenance request
- GET /applications/school/{school_id} - Applications of one school
- GET /applications/{id} - Get application
- GET /applications/{id}/download-letter - Download the request letter

Admin endpoints:
- GET /applications - List with filters (pagination optional)
- GET /applications/stats/overview - Counters
- PUT /applications/{id} - Partial update
- POST /applications/{id}/assign - Assign a handler
- POST /applications/{id}/approve - Approve
- POST /applications/{id}/reject - Reject with a reason
- POST /applications/{id}/complete - Complete
- DELETE /applications/{id} - Delete

Technician endpoints:
- PUT /applications/device-issue/{issue_id} - Record action on a device issue

School accounts are limited to their own school.
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import (
    ROLE_SCHOOL,
    ROLE_TECHNICIAN,
    CurrentUser,
    require_admin,
    require_roles,
)
from rtb_assets.core.database import get_db
from rtb_assets.core.rate_limit import rate_limited
from rtb_assets.modules.applications import service, uploads
from rtb_assets.modules.applications.models import (
    ApplicationPriority,
    ApplicationStatus,
    ApplicationType,
)
from rtb_assets.modules.applications.schemas import (
    ApplicationFilters,
    ApplicationResponse,
    ApplicationStatistics,
    ApplicationUpdate,
    ApproveApplicationRequest,
    AssignApplicationRequest,
    CompleteApplicationRequest,
    DeviceIssueResponse,
    DeviceIssueUpdate,
    MaintenanceApplicationCreate,
    NewDeviceApplicationCreate,
    RejectApplicationRequest,
)
from rtb_assets.modules.applications.service import ApplicationServiceError
from rtb_assets.modules.applications.uploads import LetterUploadError
from rtb_assets.modules.schools.service import SchoolServiceError, ensure_school_access
from rtb_assets.modules.shared.pagination import MAX_PAGE_SIZE, PaginationMeta

logger = logging.getLogger(__name__)

router = APIRouter()

require_school = require_roles(ROLE_SCHOOL)
require_technician = require_roles(ROLE_TECHNICIAN)

# Admin mutations are limited per client IP
admin_rate_limit = [Depends(rate_limited("applications_admin", limit=30, window_seconds=60))]


class ApplicationListResponse(BaseModel):
    data: list[ApplicationResponse]
    pagination: PaginationMeta | None = None


def _handle_service_error(
    e: ApplicationServiceError | SchoolServiceError | LetterUploadError,
) -> None:
    """Convert service errors to HTTPExceptions."""
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


# ============================================
# Submission
# ============================================


@router.post(
    "/new-device",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_new_device_application(
    title: str = Form(...),
    description: str = Form(...),
    school_id: int = Form(...),
    requested_device_count: int = Form(...),
    requested_device_type: str = Form(...),
    justification: str = Form(...),
    priority: ApplicationPriority = Form(ApplicationPriority.MEDIUM),
    application_letter: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_school),
) -> ApplicationResponse:
    """
    Submit a new device request.

    The optional letter must be a PDF within the configured size limit.
    """
    try:
        data = NewDeviceApplicationCreate(
            title=title,
            description=description,
            school_id=school_id,
            requested_device_count=requested_device_count,
            requested_device_type=requested_device_type,
            justification=justification,
            priority=priority,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e

    letter_path = None
    try:
        await ensure_school_access(db, user, data.school_id)
        if application_letter is not None and application_letter.filename:
            letter_path = await uploads.save_application_letter(application_letter)
            data.application_letter_path = letter_path

        application = await service.create_new_device_application(db, data)
        logger.info(f"User {user.id} submitted new device application {application.id}")
        return ApplicationResponse.model_validate(application)
    except (ApplicationServiceError, SchoolServiceError, LetterUploadError) as e:
        await uploads.remove_letter(letter_path)
        _handle_service_error(e)
    except Exception as e:
        await uploads.remove_letter(letter_path)
        logger.exception(f"Error creating new device application: {e}")
        raise _internal_error() from e


@router.post(
    "/maintenance",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_maintenance_application(
    data: MaintenanceApplicationCreate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_school),
) -> ApplicationResponse:
    try:
        await ensure_school_access(db, user, data.school_id)
        application = await service.create_maintenance_application(db, data)
        logger.info(f"User {user.id} submitted maintenance application {application.id}")
        return ApplicationResponse.model_validate(application)
    except (ApplicationServiceError, SchoolServiceError) as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error creating maintenance application: {e}")
        raise _internal_error() from e


# ============================================
# Queries
# ============================================


@router.get("", response_model=ApplicationListResponse)
async def list_applications(
    application_type: ApplicationType | None = Query(None, alias="type"),
    application_status: ApplicationStatus | None = Query(None, alias="status"),
    priority: ApplicationPriority | None = Query(None),
    school_id: int | None = Query(None, gt=0),
    assigned_to: str | None = Query(None, max_length=255),
    date_from: datetime | None = Query(None),
    date_to: datetime | None = Query(None),
    is_overdue: bool | None = Query(None),
    page: int | None = Query(None, ge=1),
    limit: int | None = Query(None, ge=1, le=MAX_PAGE_SIZE),
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> ApplicationListResponse:
    """List applications, newest first. Without page/limit every match is returned."""
    filters = ApplicationFilters(
        type=application_type,
        status=application_status,
        priority=priority,
        school_id=school_id,
        assigned_to=assigned_to,
        date_from=date_from,
        date_to=date_to,
        is_overdue=is_overdue,
    )
    applications, meta = await service.get_all_applications(db, filters, page, limit)
    return ApplicationListResponse(
        data=[ApplicationResponse.model_validate(a) for a in applications],
        pagination=meta,
    )


@router.get("/stats/overview", response_model=ApplicationStatistics)
async def application_statistics(
    db: AsyncSession = Depends(get_db),
    _admin: CurrentUser = Depends(require_admin),
) -> ApplicationStatistics:
    return ApplicationStatistics(**await service.get_application_statistics(db))


@router.get("/school/{school_id}", response_model=list[ApplicationResponse])
async def applications_by_school(
    school_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_school),
) -> list[ApplicationResponse]:
    try:
        await ensure_school_access(db, user, school_id)
        applications = await service.get_applications_by_school(db, school_id)
        return [ApplicationResponse.model_validate(a) for a in applications]
    except SchoolServiceError as e:
        _handle_service_error(e)


@router.put(
    "/device-issue/{issue_id}",
    response_model=DeviceIssueResponse,
)
async def update_device_issue(
    issue_id: int,
    data: DeviceIssueUpdate,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_technician),
) -> DeviceIssueResponse:
    try:
        issue = await service.update_device_issue(db, issue_id, data.action_taken, data.resolved)
        logger.info(f"User {user.id} updated device issue {issue_id}")
        return DeviceIssueResponse.model_validate(issue)
    except ApplicationServiceError as e:
        _handle_service_error(e)


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_school),
) -> ApplicationResponse:
    try:
        application = await service.get_application_by_id(db, application_id)
        await ensure_school_access(db, user, application.school_id)
        return ApplicationResponse.model_validate(application)
    except (ApplicationServiceError, SchoolServiceError) as e:
        _handle_service_error(e)


@router.get("/{application_id}/download-letter")
async def download_application_letter(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_school),
) -> FileResponse:
    try:
        application = await service.get_application_by_id(db, application_id)
        await ensure_school_access(db, user, application.school_id)
        path = await service.get_application_letter_path(db, application_id)
    except (ApplicationServiceError, SchoolServiceError) as e:
        _handle_service_error(e)

    return FileResponse(
        path,
        media_type="application/pdf",
        filename=f"application-{application_id}-letter.pdf",
    )


# ============================================
# Administration
# ============================================


@router.put(
    "/{application_id}",
    response_model=ApplicationResponse,
    dependencies=admin_rate_limit,
)
async def update_application(
    application_id: int,
    data: ApplicationUpdate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ApplicationResponse:
    try:
        application = await service.update_application(db, application_id, data)
        logger.info(f"Admin {admin.id} updated application {application_id}")
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating application {application_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{application_id}/assign",
    response_model=ApplicationResponse,
    dependencies=admin_rate_limit,
)
async def assign_application(
    application_id: int,
    data: AssignApplicationRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ApplicationResponse:
    try:
        application = await service.assign_application(db, application_id, data.assigned_to)
        logger.info(f"Admin {admin.id} assigned application {application_id} to {data.assigned_to}")
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{application_id}/approve",
    response_model=ApplicationResponse,
    dependencies=admin_rate_limit,
)
async def approve_application(
    application_id: int,
    data: ApproveApplicationRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ApplicationResponse:
    try:
        application = await service.approve_application(
            db,
            application_id,
            estimated_cost=data.estimated_cost,
            estimated_completion_date=data.estimated_completion_date,
        )
        logger.info(f"Admin {admin.id} approved application {application_id}")
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{application_id}/reject",
    response_model=ApplicationResponse,
    dependencies=admin_rate_limit,
)
async def reject_application(
    application_id: int,
    data: RejectApplicationRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ApplicationResponse:
    try:
        application = await service.reject_application(db, application_id, data.rejection_reason)
        logger.info(f"Admin {admin.id} rejected application {application_id}")
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        _handle_service_error(e)


@router.post(
    "/{application_id}/complete",
    response_model=ApplicationResponse,
    dependencies=admin_rate_limit,
)
async def complete_application(
    application_id: int,
    data: CompleteApplicationRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> ApplicationResponse:
    try:
        application = await service.complete_application(db, application_id, data.actual_cost)
        logger.info(f"Admin {admin.id} completed application {application_id}")
        return ApplicationResponse.model_validate(application)
    except ApplicationServiceError as e:
        _handle_service_error(e)


@router.delete(
    "/{application_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=admin_rate_limit,
)
async def delete_application(
    application_id: int,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> None:
    if not await service.delete_application(db, application_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "error": "APPLICATION_NOT_FOUND",
                "message": f"Application {application_id} not found",
            },
        )
    logger.info(f"Admin {admin.id} deleted application {application_id}")
