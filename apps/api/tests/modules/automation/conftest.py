"""
Fixtures for automation tests.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from rtb_assets.modules.automation.rules import registry
from rtb_assets.modules.devices.models import Device, DeviceCondition, DeviceStatus


@pytest.fixture(autouse=True)
def fresh_registry():
    """Every test starts from the default rules and an empty run history."""
    registry.reset()
    yield
    registry.reset()


@pytest.fixture
def make_device():
    """Factory for device stand-ins with the attributes the routines read."""

    def factory(device_id: int = 1, **overrides) -> MagicMock:
        device = MagicMock(spec=Device)
        device.id = device_id
        device.name_tag = f"RTB/LT/GAS/{device_id:03d}"
        device.serial_number = f"SN-{device_id}"
        device.school_id = None
        device.school = None
        device.purchase_cost = Decimal("1000.00")
        device.purchase_date = date(2020, 1, 1)
        device.age = None
        device.age_in_years = 0
        device.days_since_last_seen = 0
        device.last_seen_at = None
        device.status = DeviceStatus.ACTIVE
        device.condition = DeviceCondition.GOOD
        device.next_maintenance_date = None
        device.warranty_expiry = None
        device.needs_maintenance = False
        device.maintenance_overdue = False
        for key, value in overrides.items():
            setattr(device, key, value)
        return device

    return factory
