"""
Search Repository

Filtered, sortable queries over devices, schools and users, plus the
small lookups behind quick search, autocomplete and filter options.
Nothing here writes.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy import Select, and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rtb_assets.modules.devices.models import MAINTENANCE_DUE_WINDOW_DAYS, Device
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.search.schemas import (
    DeviceSearchFilters,
    SchoolSearchFilters,
    UserSearchFilters,
)
from rtb_assets.modules.shared.pagination import PaginationMeta, apply_sort, paginate
from rtb_assets.modules.users.models import User

ONLINE_WINDOW = timedelta(minutes=30)

DEVICE_SORT_COLUMNS = {
    "name_tag",
    "serial_number",
    "model",
    "purchase_cost",
    "category",
    "status",
    "condition",
    "last_seen_at",
    "purchase_date",
    "created_at",
}
SCHOOL_SORT_COLUMNS = {"name", "code", "district", "province", "created_at"}
USER_SORT_COLUMNS = {"first_name", "last_name", "email", "role", "created_at"}


def _contains(term: str, *columns):
    pattern = f"%{term}%"
    return or_(*(column.ilike(pattern) for column in columns))


# ============================================
# Query builders
# ============================================


def build_device_search_query(
    filters: DeviceSearchFilters | None = None,
    now: datetime | None = None,
) -> Select:
    """Devices joined to their (optional) school; every filter is ANDed."""
    filters = filters or DeviceSearchFilters()
    now = now or datetime.now(UTC)
    today = now.date()

    query = (
        select(Device)
        .outerjoin(School, Device.school_id == School.id)
        .options(selectinload(Device.school))
    )

    if filters.query:
        query = query.where(
            _contains(
                filters.query,
                Device.name_tag,
                Device.serial_number,
                Device.model,
                Device.brand,
                School.name,
            )
        )
    if filters.categories:
        query = query.where(Device.category.in_(filters.categories))
    if filters.statuses:
        query = query.where(Device.status.in_(filters.statuses))
    if filters.conditions:
        query = query.where(Device.condition.in_(filters.conditions))
    if filters.school_id:
        query = query.where(Device.school_id == filters.school_id)
    if filters.province:
        query = query.where(School.province == filters.province)
    if filters.district:
        query = query.where(School.district == filters.district)
    if filters.purchased_from:
        query = query.where(Device.purchase_date >= filters.purchased_from)
    if filters.purchased_to:
        query = query.where(Device.purchase_date <= filters.purchased_to)
    if filters.price_min is not None:
        query = query.where(Device.purchase_cost >= filters.price_min)
    if filters.price_max is not None:
        query = query.where(Device.purchase_cost <= filters.price_max)

    if filters.is_online is not None:
        cutoff = now - ONLINE_WINDOW
        if filters.is_online:
            query = query.where(Device.last_seen_at >= cutoff)
        else:
            query = query.where(or_(Device.last_seen_at.is_(None), Device.last_seen_at < cutoff))

    if filters.needs_maintenance is not None:
        due_by = today + timedelta(days=MAINTENANCE_DUE_WINDOW_DAYS)
        due = and_(
            Device.next_maintenance_date.is_not(None),
            Device.next_maintenance_date <= due_by,
        )
        query = query.where(due if filters.needs_maintenance else ~due)

    if filters.has_warranty is not None:
        covered = and_(Device.warranty_expiry.is_not(None), Device.warranty_expiry >= today)
        query = query.where(covered if filters.has_warranty else ~covered)

    return query


def build_school_search_query(filters: SchoolSearchFilters | None = None) -> Select:
    filters = filters or SchoolSearchFilters()
    query = select(School)

    if filters.query:
        query = query.where(
            _contains(filters.query, School.name, School.code, School.district, School.sector)
        )
    if filters.province:
        query = query.where(School.province == filters.province)
    if filters.district:
        query = query.where(School.district == filters.district)
    if filters.has_devices is not None:
        has_devices = exists().where(Device.school_id == School.id)
        query = query.where(has_devices if filters.has_devices else ~has_devices)

    return query


def build_user_search_query(filters: UserSearchFilters | None = None) -> Select:
    filters = filters or UserSearchFilters()
    query = select(User)

    if filters.query:
        query = query.where(
            _contains(filters.query, User.first_name, User.last_name, User.email, User.phone)
        )
    if filters.roles:
        query = query.where(User.role.in_(filters.roles))
    if filters.is_active is not None:
        query = query.where(User.is_active.is_(filters.is_active))
    if filters.has_school is not None:
        has_school = exists().where(School.user_id == User.id)
        query = query.where(has_school if filters.has_school else ~has_school)

    return query


# ============================================
# Paged searches
# ============================================


async def search_devices(
    db: AsyncSession,
    filters: DeviceSearchFilters,
    page: int,
    limit: int,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Device], PaginationMeta]:
    query = apply_sort(
        build_device_search_query(filters), Device, sort_by, sort_order, DEVICE_SORT_COLUMNS
    )
    return await paginate(db, query, page, limit)


async def search_schools(
    db: AsyncSession,
    filters: SchoolSearchFilters,
    page: int,
    limit: int,
    sort_by: str = "name",
    sort_order: str = "asc",
) -> tuple[list[School], PaginationMeta]:
    query = apply_sort(
        build_school_search_query(filters), School, sort_by, sort_order, SCHOOL_SORT_COLUMNS
    )
    return await paginate(db, query, page, limit)


async def search_users(
    db: AsyncSession,
    filters: UserSearchFilters,
    page: int,
    limit: int,
    sort_by: str = "last_name",
    sort_order: str = "asc",
) -> tuple[list[User], PaginationMeta]:
    query = apply_sort(
        build_user_search_query(filters), User, sort_by, sort_order, USER_SORT_COLUMNS
    )
    return await paginate(db, query, page, limit)


# ============================================
# Lookups
# ============================================


async def quick_devices(db: AsyncSession, term: str, limit: int) -> list[tuple[int, str]]:
    result = await db.execute(
        select(Device.id, Device.name_tag)
        .where(_contains(term, Device.name_tag, Device.serial_number))
        .order_by(Device.name_tag.asc())
        .limit(limit)
    )
    return [tuple(row) for row in result.all()]


async def quick_schools(db: AsyncSession, term: str, limit: int) -> list[tuple[int, str]]:
    result = await db.execute(
        select(School.id, School.name)
        .where(_contains(term, School.name, School.code))
        .order_by(School.name.asc())
        .limit(limit)
    )
    return [tuple(row) for row in result.all()]


async def quick_users(db: AsyncSession, term: str, limit: int) -> list[tuple[int, str, str]]:
    result = await db.execute(
        select(User.id, User.first_name, User.last_name)
        .where(_contains(term, User.first_name, User.last_name, User.email))
        .order_by(User.last_name.asc())
        .limit(limit)
    )
    return [tuple(row) for row in result.all()]


SUGGESTION_COLUMNS = {
    "device": (Device.name_tag, Device.model, Device.brand),
    "school": (School.name, School.code, School.district),
    "user": (User.first_name, User.last_name, User.email),
}


async def suggestion_rows(db: AsyncSession, kind: str, term: str, limit: int) -> list[tuple]:
    """Rows of the autocomplete columns for `kind` where any column contains `term`."""
    columns = SUGGESTION_COLUMNS[kind]
    result = await db.execute(select(*columns).where(_contains(term, *columns)).limit(limit))
    return [tuple(row) for row in result.all()]


async def distinct_values(db: AsyncSession, column) -> list[str]:
    """Sorted non-null distinct values of `column`."""
    result = await db.execute(
        select(column).where(column.is_not(None)).distinct().order_by(column.asc())
    )
    return list(result.scalars().all())
