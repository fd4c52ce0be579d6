"""
Application Repository

Database operations for applications and their device issues.
Writes flush only; the service owns commit and rollback.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy import and_, case, delete as sa_delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rtb_assets.modules.applications.models import (
    Application,
    ApplicationDeviceIssue,
    ApplicationStatus,
    ApplicationType,
)
from rtb_assets.modules.applications.schemas import ApplicationFilters
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.shared.pagination import PaginationMeta, paginate

logger = logging.getLogger(__name__)


def _with_relations(query):
    return query.options(
        selectinload(Application.school).selectinload(School.user),
        selectinload(Application.device_issues).selectinload(ApplicationDeviceIssue.device),
    )


def overdue_clause(now: datetime | None = None):
    """SQL form of Application.is_overdue."""
    now = now or datetime.now(UTC)
    return and_(
        Application.estimated_completion_date.is_not(None),
        Application.estimated_completion_date < now,
        Application.status != ApplicationStatus.COMPLETED,
    )


# ============================================
# Writes
# ============================================


async def create_application(db: AsyncSession, **fields) -> Application:
    application = Application(**fields)
    db.add(application)
    await db.flush()
    return application


async def add_device_issues(
    db: AsyncSession,
    application_id: int,
    issues: list[tuple[int, str]],
) -> list[ApplicationDeviceIssue]:
    """Create one issue row per (device_id, problem_description)."""
    rows = [
        ApplicationDeviceIssue(
            application_id=application_id,
            device_id=device_id,
            problem_description=problem,
        )
        for device_id, problem in issues
    ]
    db.add_all(rows)
    await db.flush()
    return rows


async def delete_application(db: AsyncSession, application_id: int) -> bool:
    """Hard delete. Issues go with it through ON DELETE CASCADE."""
    result = await db.execute(sa_delete(Application).where(Application.id == application_id))
    return result.rowcount > 0


# ============================================
# Reads
# ============================================


async def get_by_id(db: AsyncSession, application_id: int) -> Application | None:
    result = await db.execute(
        _with_relations(select(Application))
        .where(Application.id == application_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_issue_by_id(db: AsyncSession, issue_id: int) -> ApplicationDeviceIssue | None:
    result = await db.execute(
        select(ApplicationDeviceIssue)
        .options(selectinload(ApplicationDeviceIssue.device))
        .where(ApplicationDeviceIssue.id == issue_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def build_list_query(filters: ApplicationFilters | None = None, now: datetime | None = None):
    """Filters combine with AND. Newest first."""
    query = _with_relations(select(Application))
    filters = filters or ApplicationFilters()

    if filters.type:
        query = query.where(Application.type == filters.type)
    if filters.status:
        query = query.where(Application.status == filters.status)
    if filters.priority:
        query = query.where(Application.priority == filters.priority)
    if filters.school_id:
        query = query.where(Application.school_id == filters.school_id)
    if filters.assigned_to:
        query = query.where(Application.assigned_to == filters.assigned_to)
    if filters.date_from:
        query = query.where(Application.created_at >= filters.date_from)
    if filters.date_to:
        query = query.where(Application.created_at <= filters.date_to)
    if filters.is_overdue:
        query = query.where(overdue_clause(now))

    return query.order_by(Application.created_at.desc(), Application.id.desc())


async def list_applications(
    db: AsyncSession,
    filters: ApplicationFilters | None = None,
    page: int | None = None,
    limit: int | None = None,
) -> tuple[list[Application], PaginationMeta | None]:
    """
    List applications matching `filters`.

    Pagination is applied only when page or limit is given; otherwise the
    full result set is returned with no metadata.
    """
    query = build_list_query(filters)

    if page is None and limit is None:
        result = await db.execute(query)
        return list(result.scalars().unique().all()), None

    return await paginate(db, query, page or 1, limit)


async def get_by_school(db: AsyncSession, school_id: int) -> list[Application]:
    result = await db.execute(
        _with_relations(select(Application))
        .where(Application.school_id == school_id)
        .order_by(Application.created_at.desc(), Application.id.desc())
    )
    return list(result.scalars().unique().all())


async def get_by_date_range(db: AsyncSession, start: datetime, end: datetime) -> list[Application]:
    """Inclusive on both ends."""
    result = await db.execute(
        _with_relations(select(Application))
        .where(Application.created_at.between(start, end))
        .order_by(Application.created_at.desc(), Application.id.desc())
    )
    return list(result.scalars().unique().all())


STATISTICS_KEYS = (
    "total",
    "pending",
    "approved",
    "completed",
    "rejected",
    "new_device_requests",
    "maintenance_requests",
    "overdue",
)


def build_statistics_query(now: datetime | None = None):
    """Every counter as one aggregate row. `overdue` reuses overdue_clause."""
    return select(
        func.count(Application.id).label("total"),
        func.count(case((Application.status == ApplicationStatus.PENDING, 1))).label("pending"),
        func.count(case((Application.status == ApplicationStatus.APPROVED, 1))).label("approved"),
        func.count(case((Application.status == ApplicationStatus.COMPLETED, 1))).label(
            "completed"
        ),
        func.count(case((Application.status == ApplicationStatus.REJECTED, 1))).label("rejected"),
        func.count(case((Application.type == ApplicationType.NEW_DEVICE_REQUEST, 1))).label(
            "new_device_requests"
        ),
        func.count(case((Application.type == ApplicationType.MAINTENANCE_REQUEST, 1))).label(
            "maintenance_requests"
        ),
        func.count(case((overdue_clause(now), 1))).label("overdue"),
    )


async def get_statistics(db: AsyncSession) -> dict[str, int]:
    row = (await db.execute(build_statistics_query())).one()
    return {key: int(value or 0) for key, value in row._mapping.items()}
