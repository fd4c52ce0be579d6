"""
Unit tests for the application tables' delete behaviour.
"""

from rtb_assets.modules.applications.models import Application, ApplicationDeviceIssue


def _foreign_key(column):
    (foreign_key,) = ApplicationDeviceIssue.__table__.c[column].foreign_keys
    return foreign_key


class TestDeleteBehaviour:
    """Deleting an application takes its issues with it; deleting a device does not."""

    def test_issue_rows_cascade_with_their_application(self):
        foreign_key = _foreign_key("application_id")

        assert foreign_key.target_fullname == "applications.id"
        assert foreign_key.ondelete == "CASCADE"

    def test_relationship_deletes_orphans_and_defers_to_the_database(self):
        relationship = Application.device_issues.property

        assert relationship.cascade.delete is True
        assert relationship.cascade.delete_orphan is True
        assert relationship.passive_deletes is True

    def test_device_reference_does_not_cascade(self):
        foreign_key = _foreign_key("device_id")

        assert foreign_key.target_fullname == "devices.id"
        assert foreign_key.ondelete is None
