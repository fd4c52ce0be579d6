"""
Search Service

Cross-entity search for the dashboard: filtered device/school/user
searches, a combined global search, compact quick-search hits,
autocomplete suggestions and the option lists that feed filter UIs.

Queries run one after another on the request's session; AsyncSession
does not allow concurrent use.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.modules.devices.models import (
    Device,
    DeviceCategory,
    DeviceCondition,
    DeviceStatus,
)
from rtb_assets.modules.devices.schemas import DeviceResponse
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.schools.schemas import SchoolResponse
from rtb_assets.modules.search import repository
from rtb_assets.modules.search.schemas import (
    DeviceFilterOptions,
    DeviceSearchFilters,
    GlobalSearchResult,
    QuickDevice,
    QuickSchool,
    QuickSearchResult,
    QuickUser,
    SchoolFilterOptions,
    SchoolSearchFilters,
    SearchFilterOptions,
    SuggestionType,
    UserFilterOptions,
    UserSearchFilters,
)
from rtb_assets.modules.shared.pagination import PaginationMeta
from rtb_assets.modules.users.models import User, UserRole
from rtb_assets.modules.users.schemas import UserResponse

logger = logging.getLogger(__name__)

MIN_SUGGESTION_LENGTH = 2


# ============================================
# Custom Exceptions
# ============================================


class SearchServiceError(Exception):
    """Base exception for search service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class SearchQueryRequiredError(SearchServiceError):
    def __init__(self):
        super().__init__("Search query is required", "SEARCH_QUERY_REQUIRED", 400)


def _require_query(query: str | None) -> str:
    term = (query or "").strip()
    if not term:
        raise SearchQueryRequiredError()
    return term


# ============================================
# Entity searches
# ============================================


async def search_devices(
    db: AsyncSession,
    filters: DeviceSearchFilters,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> tuple[list[Device], PaginationMeta]:
    return await repository.search_devices(db, filters, page, limit, sort_by, sort_order)


async def search_schools(
    db: AsyncSession,
    filters: SchoolSearchFilters,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "name",
    sort_order: str = "asc",
) -> tuple[list[School], PaginationMeta]:
    return await repository.search_schools(db, filters, page, limit, sort_by, sort_order)


async def search_users(
    db: AsyncSession,
    filters: UserSearchFilters,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "last_name",
    sort_order: str = "asc",
) -> tuple[list[User], PaginationMeta]:
    return await repository.search_users(db, filters, page, limit, sort_by, sort_order)


# ============================================
# Combined searches
# ============================================


async def global_search(db: AsyncSession, query: str, limit: int = 10) -> GlobalSearchResult:
    """
    First page of each entity search for the same free-text query.

    Raises:
        SearchQueryRequiredError: If the query is blank
    """
    term = _require_query(query)

    devices, _ = await search_devices(db, DeviceSearchFilters(query=term), 1, limit)
    schools, _ = await search_schools(db, SchoolSearchFilters(query=term), 1, limit)
    users, _ = await search_users(db, UserSearchFilters(query=term), 1, limit)

    logger.debug(
        f"Global search '{term}': {len(devices)} devices, "
        f"{len(schools)} schools, {len(users)} users"
    )
    return GlobalSearchResult(
        devices=[DeviceResponse.model_validate(d) for d in devices],
        schools=[SchoolResponse.model_validate(s) for s in schools],
        users=[UserResponse.model_validate(u) for u in users],
    )


async def quick_search(db: AsyncSession, query: str, limit: int = 5) -> QuickSearchResult:
    """
    Raises:
        SearchQueryRequiredError: If the query is blank
    """
    term = _require_query(query)

    devices = await repository.quick_devices(db, term, limit)
    schools = await repository.quick_schools(db, term, limit)
    users = await repository.quick_users(db, term, limit)

    return QuickSearchResult(
        devices=[QuickDevice(id=id_, name_tag=name_tag) for id_, name_tag in devices],
        schools=[QuickSchool(id=id_, name=name) for id_, name in schools],
        users=[QuickUser(id=id_, full_name=f"{first} {last}") for id_, first, last in users],
    )


async def get_autocomplete_suggestions(
    db: AsyncSession,
    query: str,
    kind: SuggestionType = "device",
    limit: int = 10,
) -> list[str]:
    """
    Distinct values containing `query`, in the order they were found.

    Queries shorter than two characters return nothing. User suggestions
    include the full name alongside first name, last name and email.

    Raises:
        SearchQueryRequiredError: If the query is blank
    """
    term = _require_query(query)
    if len(term) < MIN_SUGGESTION_LENGTH:
        return []

    rows = await repository.suggestion_rows(db, kind, term, limit)

    # Column by column, so every name tag precedes every model and brand
    candidates = [value for column in zip(*rows) for value in column]
    if kind == "user":
        candidates += [f"{row[0]} {row[1]}" for row in rows]

    needle = term.lower()
    suggestions = [
        value for value in dict.fromkeys(candidates) if value and needle in value.lower()
    ]
    return suggestions[:limit]


async def get_search_filters(db: AsyncSession) -> SearchFilterOptions:
    """Enum values plus the brands, provinces and districts present in the data."""
    brands = await repository.distinct_values(db, Device.brand)
    provinces = await repository.distinct_values(db, School.province)
    districts = await repository.distinct_values(db, School.district)

    return SearchFilterOptions(
        devices=DeviceFilterOptions(
            categories=[c.value for c in DeviceCategory],
            statuses=[s.value for s in DeviceStatus],
            conditions=[c.value for c in DeviceCondition],
            brands=brands,
            provinces=provinces,
            districts=districts,
        ),
        schools=SchoolFilterOptions(provinces=provinces, districts=districts),
        users=UserFilterOptions(roles=[r.value for r in UserRole]),
    )
