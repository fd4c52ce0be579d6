"""
Unit tests for device name tag generation.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from rtb_assets.modules.devices.models import DeviceCategory
from rtb_assets.modules.devices.name_tag import (
    category_prefix,
    default_name_tag,
    district_prefix,
    format_name_tag,
    generate_school_name_tag,
    is_name_tag_conflict,
    next_sequence,
    parse_sequence,
)


class TestPrefixes:
    """Tests for category and district prefixes."""

    def test_category_prefixes(self):
        assert category_prefix(DeviceCategory.LAPTOP) == "LT"
        assert category_prefix(DeviceCategory.DESKTOP) == "DT"
        assert category_prefix(DeviceCategory.PROJECTOR) == "PT"
        assert category_prefix(DeviceCategory.OTHER) == "OT"
        assert category_prefix("laptop") == "LT"

    def test_unknown_category_maps_to_other(self):
        assert category_prefix("tablet") == "OT"

    def test_district_prefix_is_first_three_letters_uppercased(self):
        assert district_prefix("Gasabo") == "GAS"
        assert district_prefix("  nyarugenge ") == "NYA"

    def test_missing_district(self):
        assert district_prefix(None) == "UNK"
        assert district_prefix("   ") == "UNK"


class TestFormatting:
    def test_default_tag_for_unassigned_devices(self):
        assert default_name_tag(DeviceCategory.PROJECTOR) == "RTB/PT/DEFAULT/001"

    def test_sequence_is_zero_padded(self):
        assert format_name_tag(DeviceCategory.LAPTOP, "Gasabo", 7) == "RTB/LT/GAS/007"
        assert format_name_tag(DeviceCategory.LAPTOP, "Gasabo", 1234) == "RTB/LT/GAS/1234"


class TestSequences:
    """Tests for sequence parsing."""

    def test_parse_sequence(self):
        assert parse_sequence("RTB/LT/GAS/012") == 12
        assert parse_sequence("RTB/LT/GAS/abc") is None

    def test_next_sequence_uses_highest_not_count(self):
        """Gaps left by deleted devices are not reused."""
        tags = ["RTB/LT/GAS/001", "RTB/LT/GAS/004", "garbage"]
        assert next_sequence(tags) == 5

    def test_next_sequence_starts_at_one(self):
        assert next_sequence([]) == 1


class TestGenerateSchoolNameTag:
    @pytest.mark.asyncio
    async def test_uses_existing_tags_for_school(self, mock_db):
        result = MagicMock()
        result.scalars.return_value.all.return_value = ["RTB/DT/KIC/001", "RTB/DT/KIC/002"]
        mock_db.execute = AsyncMock(return_value=result)

        tag = await generate_school_name_tag(mock_db, 3, "Kicukiro", DeviceCategory.DESKTOP)

        assert tag == "RTB/DT/KIC/003"
        mock_db.execute.assert_called_once()


class TestIsNameTagConflict:
    def test_detects_name_tag_constraint(self):
        error = IntegrityError(
            "INSERT", {}, Exception('violates unique constraint "uq_devices_school_name_tag"')
        )
        assert is_name_tag_conflict(error) is True

    def test_other_constraint_is_not_a_tag_conflict(self):
        error = IntegrityError(
            "INSERT", {}, Exception('violates unique constraint "ix_devices_serial_number"')
        )
        assert is_name_tag_conflict(error) is False
