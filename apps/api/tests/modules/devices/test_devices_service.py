"""
Unit tests for the device service layer.

These tests cover:
- Registration with generated name tags
- Name tag conflict retries
- Re-tagging on assignment
- Bulk operations with per-item failures
- Deletion of devices with maintenance history
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from rtb_assets.modules.devices import repository
from rtb_assets.modules.devices.models import Device, DeviceCategory
from rtb_assets.modules.devices.schemas import DeviceCreate
from rtb_assets.modules.devices.service import (
    DeviceInUseError,
    DeviceNotFoundError,
    DeviceSchoolNotFoundError,
    DuplicateSerialNumberError,
    NameTagAllocationError,
    assign_device,
    bulk_assign_devices,
    bulk_create_devices,
    create_device,
    delete_device,
    update_last_seen,
)
from rtb_assets.modules.schools.models import School

SERVICE = "rtb_assets.modules.devices.service"


def _conflict() -> IntegrityError:
    return IntegrityError(
        "INSERT", {}, Exception('duplicate key value violates "uq_devices_school_name_tag"')
    )


def _serial_conflict() -> IntegrityError:
    return IntegrityError(
        "INSERT", {}, Exception('duplicate key value violates "ix_devices_serial_number"')
    )


@pytest.fixture
def school():
    school = MagicMock(spec=School)
    school.id = 3
    school.district = "Gasabo"
    return school


@pytest.fixture
def device_create():
    return DeviceCreate(
        serial_number="SN-100",
        model="ThinkPad T14",
        brand="Lenovo",
        purchase_cost=Decimal("950.00"),
        category=DeviceCategory.LAPTOP,
        school_id=3,
    )


@pytest.fixture
def nested_db(mock_db):
    """A session whose begin_nested() works as an async context manager."""
    savepoint = MagicMock()
    savepoint.__aenter__ = AsyncMock(return_value=savepoint)
    savepoint.__aexit__ = AsyncMock(return_value=False)
    mock_db.begin_nested = MagicMock(return_value=savepoint)
    return mock_db


class TestSaveWithNameTag:
    """Tests for the repository retry loop."""

    @pytest.mark.asyncio
    async def test_retries_with_a_fresh_tag_after_conflict(self, nested_db):
        nested_db.flush = AsyncMock(side_effect=[_conflict(), None])
        compute_tag = AsyncMock(side_effect=["RTB/LT/GAS/001", "RTB/LT/GAS/002"])
        device = Device(serial_number="SN-1", model="X", purchase_cost=Decimal("1"))

        saved = await repository.save_with_name_tag(nested_db, device, compute_tag)

        assert saved.name_tag == "RTB/LT/GAS/002"
        assert compute_tag.await_count == 2

    @pytest.mark.asyncio
    async def test_other_integrity_errors_are_not_retried(self, nested_db):
        nested_db.flush = AsyncMock(side_effect=_serial_conflict())
        compute_tag = AsyncMock(return_value="RTB/LT/GAS/001")
        device = Device(serial_number="SN-1", model="X", purchase_cost=Decimal("1"))

        with pytest.raises(IntegrityError):
            await repository.save_with_name_tag(nested_db, device, compute_tag)

        compute_tag.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, nested_db):
        nested_db.flush = AsyncMock(side_effect=_conflict())
        compute_tag = AsyncMock(return_value="RTB/LT/GAS/001")
        device = Device(serial_number="SN-1", model="X", purchase_cost=Decimal("1"))

        with pytest.raises(IntegrityError):
            await repository.save_with_name_tag(nested_db, device, compute_tag)

        assert compute_tag.await_count == 5


class TestCreateDevice:
    """Tests for create_device."""

    @pytest.mark.asyncio
    async def test_create_device_success(self, mock_db, school, device_create):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_repo.get_by_serial = AsyncMock(return_value=None)
            mock_schools.get_by_id = AsyncMock(return_value=school)
            mock_repo.save_with_name_tag = AsyncMock()
            mock_repo.get_by_id = AsyncMock(return_value=None)

            device = await create_device(mock_db, device_create)

            assert device.serial_number == "SN-100"
            assert device.school_id == 3
            mock_repo.save_with_name_tag.assert_called_once()
            mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_duplicate_serial_number(self, mock_db, device_create):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.get_by_serial = AsyncMock(return_value=MagicMock(spec=Device))

            with pytest.raises(DuplicateSerialNumberError) as exc_info:
                await create_device(mock_db, device_create)

            assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_unknown_school(self, mock_db, device_create):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_repo.get_by_serial = AsyncMock(return_value=None)
            mock_schools.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(DeviceSchoolNotFoundError):
                await create_device(mock_db, device_create)

    @pytest.mark.asyncio
    async def test_exhausted_tag_retries(self, mock_db, school, device_create):
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_repo.get_by_serial = AsyncMock(return_value=None)
            mock_schools.get_by_id = AsyncMock(return_value=school)
            mock_repo.save_with_name_tag = AsyncMock(side_effect=_conflict())

            with pytest.raises(NameTagAllocationError):
                await create_device(mock_db, device_create)

            mock_db.rollback.assert_called_once()

    @pytest.mark.asyncio
    async def test_serial_race_maps_to_duplicate(self, mock_db, school, device_create):
        """A serial number inserted concurrently surfaces as a duplicate."""
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_repo.get_by_serial = AsyncMock(return_value=None)
            mock_schools.get_by_id = AsyncMock(return_value=school)
            mock_repo.save_with_name_tag = AsyncMock(side_effect=_serial_conflict())

            with pytest.raises(DuplicateSerialNumberError):
                await create_device(mock_db, device_create)


class TestAssignment:
    """Tests for assign_device and bulk_assign_devices."""

    @pytest.mark.asyncio
    async def test_assign_retags_for_new_school(self, mock_db, school):
        device = MagicMock(spec=Device)
        device.id = 9
        device.category = DeviceCategory.LAPTOP
        device.serial_number = "SN-9"
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_repo.get_by_id = AsyncMock(return_value=device)
            mock_schools.get_by_id = AsyncMock(return_value=school)
            mock_repo.save_with_name_tag = AsyncMock()

            await assign_device(mock_db, 9, 3)

            args = mock_repo.save_with_name_tag.call_args
            assert args.kwargs["changes"] == {"school_id": 3}

    @pytest.mark.asyncio
    async def test_bulk_assign_collects_failures(self, mock_db, school):
        device = MagicMock(spec=Device)
        device.id = 1
        device.category = DeviceCategory.DESKTOP
        device.serial_number = "SN-1"
        with (
            patch(f"{SERVICE}.repository") as mock_repo,
            patch(f"{SERVICE}.SchoolRepository") as mock_schools,
        ):
            mock_repo.get_by_id = AsyncMock(side_effect=[device, device, None])
            mock_schools.get_by_id = AsyncMock(return_value=school)
            mock_repo.save_with_name_tag = AsyncMock()

            assigned, failed = await bulk_assign_devices(mock_db, [1, 2, 2], 3)

            # Duplicate ids are processed once
            assert len(assigned) == 1
            assert len(failed) == 1
            assert failed[0].device_id == 2

    @pytest.mark.asyncio
    async def test_bulk_assign_unknown_school(self, mock_db):
        with patch(f"{SERVICE}.SchoolRepository") as mock_schools:
            mock_schools.get_by_id = AsyncMock(return_value=None)

            with pytest.raises(DeviceSchoolNotFoundError):
                await bulk_assign_devices(mock_db, [1], 99)


class TestBulkCreate:
    @pytest.mark.asyncio
    async def test_failures_are_reported_by_index(self, mock_db, device_create):
        with patch(f"{SERVICE}.create_device") as mock_create:
            mock_create.side_effect = [
                MagicMock(spec=Device),
                DuplicateSerialNumberError("SN-100"),
            ]

            created, failed = await bulk_create_devices(mock_db, [device_create, device_create])

            assert len(created) == 1
            assert failed[0].index == 1
            assert failed[0].serial_number == "SN-100"


class TestUpdateLastSeen:
    @pytest.mark.asyncio
    async def test_unknown_device(self, mock_db):
        with patch(f"{SERVICE}.repository") as mock_repo:
            mock_repo.touch_last_seen = AsyncMock(return_value=False)

            with pytest.raises(DeviceNotFoundError):
                await update_last_seen(mock_db, 404)


class TestDeleteDevice:
    """Tests for delete_device."""

    @pytest.mark.asyncio
    async def test_deleted(self, mock_db):
        with patch(f"{SERVICE}.repository.delete", new=AsyncMock(return_value=True)):
            assert await delete_device(mock_db, 42) is True

    @pytest.mark.asyncio
    async def test_device_with_issue_history_is_in_use(self, mock_db):
        error = IntegrityError(
            "DELETE",
            {},
            Exception(
                'update or delete on table "devices" violates foreign key constraint '
                '"fk_application_device_issues_device_id"'
            ),
        )
        with patch(f"{SERVICE}.repository.delete", new=AsyncMock(side_effect=error)):
            with pytest.raises(DeviceInUseError) as exc_info:
                await delete_device(mock_db, 42)

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "DEVICE_IN_USE"
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_other_integrity_errors_propagate(self, mock_db):
        with patch(f"{SERVICE}.repository.delete", new=AsyncMock(side_effect=_conflict())):
            with pytest.raises(IntegrityError):
                await delete_device(mock_db, 42)
