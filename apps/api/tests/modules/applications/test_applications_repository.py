"""
Unit tests for the application repository.

These tests focus on the query built for filtered listings and on the
pagination switch.
"""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql

from rtb_assets.modules.applications.models import ApplicationStatus, ApplicationType
from rtb_assets.modules.applications.repository import (
    STATISTICS_KEYS,
    build_list_query,
    build_statistics_query,
    get_statistics,
    list_applications,
    overdue_clause,
)
from rtb_assets.modules.applications.schemas import ApplicationFilters


def _sql(query) -> str:
    return str(query.compile(dialect=postgresql.dialect()))


class TestBuildListQuery:
    """Tests for build_list_query."""

    def test_no_filters_orders_newest_first(self):
        sql = _sql(build_list_query())
        assert "WHERE" not in sql
        assert "ORDER BY applications.created_at DESC" in sql

    def test_filters_are_conjunctive(self):
        filters = ApplicationFilters(status=ApplicationStatus.REJECTED, school_id=5)
        sql = _sql(build_list_query(filters))
        assert "applications.status = " in sql
        assert "applications.school_id = " in sql
        assert " AND " in sql
        assert "ORDER BY applications.created_at DESC" in sql

    def test_date_range_is_inclusive(self):
        filters = ApplicationFilters(
            date_from=datetime(2025, 1, 1, tzinfo=UTC),
            date_to=datetime(2025, 1, 31, tzinfo=UTC),
        )
        sql = _sql(build_list_query(filters))
        assert "applications.created_at >= " in sql
        assert "applications.created_at <= " in sql

    def test_overdue_filter(self):
        sql = _sql(build_list_query(ApplicationFilters(is_overdue=True)))
        assert "applications.estimated_completion_date IS NOT NULL" in sql
        assert "applications.estimated_completion_date < " in sql
        assert "applications.status != " in sql

    def test_type_and_assignee(self):
        filters = ApplicationFilters(type=ApplicationType.MAINTENANCE_REQUEST, assigned_to="tech1")
        sql = _sql(build_list_query(filters))
        assert "applications.type = " in sql
        assert "applications.assigned_to = " in sql


class TestListApplications:
    """Tests for list_applications."""

    @pytest.mark.asyncio
    async def test_without_paging_returns_everything(self, mock_db):
        result = MagicMock()
        result.scalars.return_value.unique.return_value.all.return_value = ["a", "b"]
        mock_db.execute = AsyncMock(return_value=result)

        items, meta = await list_applications(mock_db)

        assert items == ["a", "b"]
        assert meta is None

    @pytest.mark.asyncio
    async def test_with_limit_uses_pagination(self, mock_db):
        with patch(
            "rtb_assets.modules.applications.repository.paginate",
            new=AsyncMock(return_value=([], "meta")),
        ) as mock_paginate:
            items, meta = await list_applications(mock_db, limit=5)

        assert meta == "meta"
        assert mock_paginate.call_args.args[2:] == (1, 5)


class TestBuildStatisticsQuery:
    """Tests for the aggregate statistics query."""

    def test_selects_every_counter(self):
        query = build_statistics_query()

        assert tuple(query.selected_columns.keys()) == STATISTICS_KEYS

    def test_counters_filter_by_status_and_type(self):
        sql = _sql(build_statistics_query())

        assert "count(applications.id) AS total" in sql
        assert sql.count("applications.status = ") == 4
        assert sql.count("applications.type = ") == 2
        assert "FROM applications" in sql

    def test_overdue_uses_the_listing_predicate(self):
        now = datetime(2026, 3, 1, tzinfo=UTC)
        with patch(
            "rtb_assets.modules.applications.repository.overdue_clause",
            wraps=overdue_clause,
        ) as clause:
            sql = _sql(build_statistics_query(now))

        clause.assert_called_once_with(now)
        assert "applications.estimated_completion_date IS NOT NULL" in sql
        assert "applications.estimated_completion_date < " in sql
        assert "applications.status != " in sql


class TestGetStatistics:
    """Tests for get_statistics."""

    @pytest.mark.asyncio
    async def test_returns_integer_counters(self, mock_db):
        row = MagicMock()
        row._mapping = dict.fromkeys(STATISTICS_KEYS, 2) | {"overdue": None}
        result = MagicMock()
        result.one.return_value = row
        mock_db.execute = AsyncMock(return_value=result)

        stats = await get_statistics(mock_db)

        assert list(stats) == list(STATISTICS_KEYS)
        assert stats["total"] == 2
        assert stats["overdue"] == 0
        mock_db.execute.assert_awaited_once()
