"""
School Repository

Database operations for the school registry.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.modules.schools.models import School
from rtb_assets.modules.shared.pagination import PaginationMeta, apply_sort, paginate

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {"created_at", "updated_at", "name", "province", "district", "sector"}


class SchoolRepository:
    """Repository for school database operations."""

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        name: str,
        user_id: int,
        code: str | None = None,
        province: str | None = None,
        district: str | None = None,
        sector: str | None = None,
    ) -> School:
        """
        Create a new school record.

        Args:
            db: Database session
            name: School name
            user_id: Linked account (role school)
            code: School code (optional)
            province: Province (optional)
            district: District, also used for device name tags (optional)
            sector: Sector (optional)

        Returns:
            Created School instance
        """
        school = School(
            name=name,
            user_id=user_id,
            code=code,
            province=province,
            district=district,
            sector=sector,
        )

        db.add(school)
        await db.flush()
        await db.refresh(school)

        logger.info(f"Created school: {school.id} - {school.name}")
        return school

    @staticmethod
    async def get_by_id(db: AsyncSession, school_id: int) -> School | None:
        return await db.get(School, school_id)

    @staticmethod
    async def get_by_user_id(db: AsyncSession, user_id: int) -> School | None:
        """Get the school managed by a given account."""
        result = await db.execute(select(School).where(School.user_id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def list_schools(
        db: AsyncSession,
        *,
        province: str | None = None,
        district: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> tuple[list[School], PaginationMeta]:
        query = select(School)

        if province:
            query = query.where(School.province == province)
        if district:
            query = query.where(School.district == district)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    School.name.ilike(pattern),
                    School.code.ilike(pattern),
                    School.province.ilike(pattern),
                    School.district.ilike(pattern),
                    School.sector.ilike(pattern),
                )
            )

        query = apply_sort(query, School, sort_by, sort_order, SORTABLE_COLUMNS)
        return await paginate(db, query, page, limit)

    @staticmethod
    async def update(db: AsyncSession, school: School, **fields) -> School:
        for key, value in fields.items():
            setattr(school, key, value)
        await db.commit()
        await db.refresh(school)
        return school

    @staticmethod
    async def delete(db: AsyncSession, school: School) -> None:
        await db.delete(school)
        await db.commit()
        logger.info(f"Deleted school: {school.id} - {school.name}")
