"""
Devices module - Inventory, name tags and assignment.
"""

from rtb_assets.modules.devices.models import (
    Device,
    DeviceCategory,
    DeviceCondition,
    DeviceStatus,
)

__all__ = ["Device", "DeviceCategory", "DeviceCondition", "DeviceStatus"]
