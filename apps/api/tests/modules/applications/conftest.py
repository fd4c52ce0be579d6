"""
Fixtures for application workflow tests.
"""

from unittest.mock import MagicMock

import pytest

from rtb_assets.modules.applications.models import (
    Application,
    ApplicationDeviceIssue,
    ApplicationPriority,
    ApplicationStatus,
    ApplicationType,
)
from rtb_assets.modules.applications.schemas import (
    DeviceIssueCreate,
    MaintenanceApplicationCreate,
    NewDeviceApplicationCreate,
)
from rtb_assets.modules.devices.models import Device


def make_application(**overrides) -> Application:
    """Build a transient Application with sensible defaults."""
    fields = {
        "type": ApplicationType.MAINTENANCE_REQUEST,
        "status": ApplicationStatus.PENDING,
        "priority": ApplicationPriority.MEDIUM,
        "title": "Broken projector",
        "description": "Projector in lab 2 does not power on",
        "school_id": 5,
    }
    fields.update(overrides)
    application = Application(**fields)
    application.id = overrides.get("id", 1)
    return application


@pytest.fixture
def application_factory():
    return make_application


@pytest.fixture
def application():
    return make_application()


@pytest.fixture
def device_issue():
    issue = ApplicationDeviceIssue(
        application_id=1,
        device_id=42,
        problem_description="fan noise",
    )
    issue.id = 7
    return issue


@pytest.fixture
def device_42():
    device = MagicMock(spec=Device)
    device.id = 42
    device.name_tag = "RTB/LT/GAS/001"
    return device


@pytest.fixture
def new_device_create():
    return NewDeviceApplicationCreate(
        title="Laptops for ICT lab",
        description="The ICT lab needs more laptops",
        school_id=5,
        requested_device_count=20,
        requested_device_type="laptop",
        justification="Enrolment doubled this year",
    )


@pytest.fixture
def maintenance_create():
    return MaintenanceApplicationCreate(
        title="Screen issue",
        description="One laptop screen flickers",
        school_id=5,
        device_issues=[DeviceIssueCreate(device_id=42, problem_description="screen flicker")],
    )
