"""
Pagination

Shared page/limit handling for list endpoints.

Responses have the shape:
    {"data": [...], "pagination": {current_page, page_size, total_items,
     total_pages, has_next_page, has_previous_page}}
"""

import math
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field
from sqlalchemy import Select, asc, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

T = TypeVar("T")


class PaginationParams(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)
    sort_by: str = "created_at"
    sort_order: str = Field("desc", pattern="^(asc|desc|ASC|DESC)$")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginationMeta(BaseModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class Page(BaseModel, Generic[T]):
    data: list[T]
    pagination: PaginationMeta


def normalize(page: int | None, limit: int | None) -> tuple[int, int]:
    """Clamp page to >= 1 and limit to 1..MAX_PAGE_SIZE."""
    page = max(1, page or 1)
    limit = min(max(1, limit or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    return page, limit


def build_meta(page: int, limit: int, total: int) -> PaginationMeta:
    total_pages = math.ceil(total / limit) if total else 0
    return PaginationMeta(
        current_page=page,
        page_size=limit,
        total_items=total,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_previous_page=page > 1,
    )


def apply_sort(
    query: Select,
    model: Any,
    sort_by: str,
    sort_order: str,
    allowed: set[str],
) -> Select:
    """Order by a whitelisted column, falling back to created_at."""
    if sort_by not in allowed:
        sort_by = "created_at"
    column = getattr(model, sort_by)
    direction = asc if sort_order.lower() == "asc" else desc
    return query.order_by(direction(column))


async def paginate(
    db: AsyncSession,
    query: Select,
    page: int,
    limit: int,
) -> tuple[list[Any], PaginationMeta]:
    """
    Run a count query and a page query for `query`.

    Returns:
        Tuple of (rows on the page, pagination metadata)
    """
    page, limit = normalize(page, limit)

    count_query = select(func.count()).select_from(query.order_by(None).subquery())
    total = (await db.execute(count_query)).scalar() or 0

    result = await db.execute(query.offset((page - 1) * limit).limit(limit))
    items = list(result.scalars().unique().all())

    return items, build_meta(page, limit, total)
