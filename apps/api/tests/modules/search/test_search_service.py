"""
Unit tests for the search service.

These tests cover:
- Required queries for global and quick search
- Quick-search hit shapes
- Autocomplete ordering, de-duplication and matching
- Filter option lists
"""

from unittest.mock import AsyncMock, patch

import pytest

from rtb_assets.modules.devices.models import Device
from rtb_assets.modules.schools.models import School
from rtb_assets.modules.search.schemas import DeviceSearchFilters
from rtb_assets.modules.search.service import (
    SearchQueryRequiredError,
    get_autocomplete_suggestions,
    get_search_filters,
    global_search,
    quick_search,
    search_devices,
)

SERVICE = "rtb_assets.modules.search.service"


class TestGlobalSearch:
    """Tests for global_search."""

    @pytest.mark.asyncio
    async def test_blank_query_is_rejected(self, mock_db):
        with pytest.raises(SearchQueryRequiredError) as exc_info:
            await global_search(mock_db, "   ")

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "SEARCH_QUERY_REQUIRED"

    @pytest.mark.asyncio
    async def test_first_page_of_each_entity(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.search_devices = AsyncMock(return_value=([], None))
            mock_repo.search_schools = AsyncMock(return_value=([], None))
            mock_repo.search_users = AsyncMock(return_value=([], None))

            result = await global_search(mock_db, " kacyiru ", limit=3)

        assert result.devices == []
        assert result.users == []
        _db, filters, page, limit, *_ = mock_repo.search_devices.call_args.args
        assert filters.query == "kacyiru"
        assert (page, limit) == (1, 3)
        assert mock_repo.search_schools.call_args.args[1].query == "kacyiru"
        assert mock_repo.search_users.call_args.args[1].query == "kacyiru"


class TestSearchDevices:
    @pytest.mark.asyncio
    async def test_defaults_to_newest_first(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.search_devices = AsyncMock(return_value=([], "meta"))
            filters = DeviceSearchFilters(is_online=True)

            items, meta = await search_devices(mock_db, filters)

        assert meta == "meta"
        mock_repo.search_devices.assert_awaited_once_with(
            mock_db, filters, 1, 20, "created_at", "desc"
        )


class TestQuickSearch:
    @pytest.mark.asyncio
    async def test_hits_carry_their_type(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.quick_devices = AsyncMock(return_value=[(4, "RTB-GAS-004")])
            mock_repo.quick_schools = AsyncMock(return_value=[(2, "GS Kacyiru")])
            mock_repo.quick_users = AsyncMock(return_value=[(9, "Aline", "Uwase")])

            result = await quick_search(mock_db, "a")

        assert result.devices[0].model_dump() == {
            "id": 4,
            "name_tag": "RTB-GAS-004",
            "type": "device",
        }
        assert result.schools[0].type == "school"
        assert result.users[0].full_name == "Aline Uwase"
        assert mock_repo.quick_devices.call_args.args[1:] == ("a", 5)

    @pytest.mark.asyncio
    async def test_missing_query(self, mock_db):
        with pytest.raises(SearchQueryRequiredError):
            await quick_search(mock_db, None)


class TestAutocomplete:
    """Tests for get_autocomplete_suggestions."""

    @pytest.mark.asyncio
    async def test_one_character_returns_nothing(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.suggestion_rows = AsyncMock()

            assert await get_autocomplete_suggestions(mock_db, "r") == []

            mock_repo.suggestion_rows.assert_not_called()

    @pytest.mark.asyncio
    async def test_device_values_are_distinct_and_matching(self, mock_db):
        rows = [
            ("RTB-GAS-001", "ThinkPad T14", "Lenovo"),
            ("RTB-GAS-002", "ThinkPad T14", "Lenovo"),
        ]
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.suggestion_rows = AsyncMock(return_value=rows)

            assert await get_autocomplete_suggestions(mock_db, "think") == ["ThinkPad T14"]

            mock_repo.suggestion_rows.assert_awaited_once_with(mock_db, "device", "think", 10)

    @pytest.mark.asyncio
    async def test_name_tags_come_first_and_limit_applies(self, mock_db):
        rows = [("RTB-GAS-001", "RTB Edu Book", None), ("RTB-GAS-002", "X1", "RTB")]
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.suggestion_rows = AsyncMock(return_value=rows)

            result = await get_autocomplete_suggestions(mock_db, "rtb", limit=3)

        assert result == ["RTB-GAS-001", "RTB-GAS-002", "RTB Edu Book"]

    @pytest.mark.asyncio
    async def test_users_also_match_on_full_name(self, mock_db):
        rows = [("Aline", "Uwase", "aline@rtb.rw"), ("Alain", "Mugisha", "alain@rtb.rw")]
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.suggestion_rows = AsyncMock(return_value=rows)

            result = await get_autocomplete_suggestions(mock_db, "ALI", kind="user")

        assert result == ["Aline", "aline@rtb.rw", "Aline Uwase"]


class TestSearchFilters:
    @pytest.mark.asyncio
    async def test_options(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.distinct_values = AsyncMock(
                side_effect=[["Dell", "Lenovo"], ["Kigali"], ["Gasabo", "Kicukiro"]]
            )

            options = await get_search_filters(mock_db)

        columns = [c.args[1] for c in mock_repo.distinct_values.call_args_list]
        assert [(c.class_, c.key) for c in columns] == [
            (Device, "brand"),
            (School, "province"),
            (School, "district"),
        ]
        assert options.devices.brands == ["Dell", "Lenovo"]
        assert options.devices.categories == ["laptop", "desktop", "projector", "other"]
        assert options.schools.districts == ["Gasabo", "Kicukiro"]
        assert options.users.roles == ["admin", "rtb-staff", "school", "technician"]
