"""
Applications Module

New device and maintenance requests raised by schools:
1. Submission (maintenance requests are written in one transaction)
2. Review: assign, approve, reject, complete
3. Device issue follow-up by technicians

Every status change is validated against the transition table and
logged. Notification emails are sent in the background with retries.
"""

from rtb_assets.modules.applications.models import (
    Application,
    ApplicationDeviceIssue,
    ApplicationPriority,
    ApplicationStatus,
    ApplicationType,
)
from rtb_assets.modules.applications.router import router

__all__ = [
    "router",
    "Application",
    "ApplicationDeviceIssue",
    "ApplicationPriority",
    "ApplicationStatus",
    "ApplicationType",
]
