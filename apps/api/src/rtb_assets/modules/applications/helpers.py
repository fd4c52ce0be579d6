"""
Application Helpers

Small lookups shared by the service and the router: who to notify about an
application, and how its device issues are summarised in emails.
"""

from rtb_assets.modules.applications.models import (
    STATUS_DISPLAY_NAMES,
    Application,
    ApplicationStatus,
)


def get_school_contact(application: Application) -> tuple[str | None, str | None]:
    """
    Email and display name of the account that manages the application's school.

    Returns:
        (email, name), either of which may be None when the school or its
        account is not loaded
    """
    school = application.school
    user = school.user if school is not None else None
    if user is None:
        return None, school.name if school is not None else None
    return user.email, user.full_name or school.name


def get_school_name(application: Application) -> str:
    if application.school is not None:
        return application.school.name
    return f"School #{application.school_id}"


def describe_device_issues(application: Application) -> list[tuple[str, str]]:
    """(device label, problem) pairs for the maintenance request email."""
    rows = []
    for issue in application.device_issues or []:
        device = issue.device
        label = device.name_tag if device is not None else f"Device #{issue.device_id}"
        rows.append((label, issue.problem_description))
    return rows


def status_label(status: ApplicationStatus) -> str:
    return STATUS_DISPLAY_NAMES.get(status, status.value)
