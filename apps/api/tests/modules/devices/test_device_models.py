"""
Unit tests for computed device properties.
"""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

from rtb_assets.modules.devices.models import Device, whole_years_between


def _today() -> date:
    return datetime.now(UTC).date()


def _device(**overrides) -> Device:
    fields = {
        "name_tag": "RTB/LT/GAS/001",
        "serial_number": "SN-001",
        "model": "ThinkPad",
        "purchase_cost": Decimal("1000.00"),
    }
    fields.update(overrides)
    return Device(**fields)


class TestWholeYearsBetween:
    def test_before_anniversary(self):
        assert whole_years_between(date(2020, 6, 15), date(2023, 6, 14)) == 2

    def test_on_anniversary(self):
        assert whole_years_between(date(2020, 6, 15), date(2023, 6, 15)) == 3


class TestDeviceProperties:
    """Tests for Device computed properties."""

    def test_age_without_purchase_date(self):
        assert _device().age_in_years is None

    def test_days_since_last_seen(self):
        device = _device(last_seen_at=datetime.now(UTC) - timedelta(days=3, hours=1))
        assert device.days_since_last_seen == 3

    def test_depreciated_value_without_purchase_date_is_cost(self):
        assert _device().depreciated_value == Decimal("1000.00")

    def test_depreciated_value_never_negative(self):
        device = _device(purchase_date=_today() - timedelta(days=365 * 8))
        assert device.depreciated_value == Decimal("0.00")

    def test_depreciated_value_after_one_year(self):
        device = _device(purchase_date=_today() - timedelta(days=365))
        value = device.depreciated_value
        assert Decimal("799") < value < Decimal("801")

    def test_warranty(self):
        assert _device(warranty_expiry=_today()).is_warranty_active is True
        assert _device(warranty_expiry=_today() - timedelta(days=1)).is_warranty_active is False
        assert _device().is_warranty_active is False

    def test_maintenance_window(self):
        """Due within a week counts as needing maintenance, past due is overdue."""
        soon = _device(next_maintenance_date=_today() + timedelta(days=7))
        later = _device(next_maintenance_date=_today() + timedelta(days=8))
        past = _device(next_maintenance_date=_today() - timedelta(days=1))

        assert soon.needs_maintenance is True
        assert soon.maintenance_overdue is False
        assert later.needs_maintenance is False
        assert past.needs_maintenance is True
        assert past.maintenance_overdue is True
