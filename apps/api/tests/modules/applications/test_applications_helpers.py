"""
Unit tests for application helpers, computed properties and letter uploads.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from rtb_assets.core.config import settings
from rtb_assets.modules.applications.helpers import (
    describe_device_issues,
    get_school_contact,
    get_school_name,
    status_label,
)
from rtb_assets.modules.applications.models import ApplicationDeviceIssue, ApplicationStatus
from rtb_assets.modules.applications.uploads import (
    LetterUploadError,
    letter_exists,
    remove_letter,
    save_application_letter,
    validate_letter,
)


class TestGetSchoolContact:
    """Tests for get_school_contact."""

    def test_returns_school_user(self):
        application = MagicMock()
        application.school.user.email = "gs@rtb.rw"
        application.school.user.full_name = "Head Teacher"

        assert get_school_contact(application) == ("gs@rtb.rw", "Head Teacher")

    def test_school_without_user(self):
        application = MagicMock()
        application.school.user = None
        application.school.name = "GS Kacyiru"

        assert get_school_contact(application) == (None, "GS Kacyiru")

    def test_school_not_loaded(self):
        application = MagicMock()
        application.school = None

        assert get_school_contact(application) == (None, None)

    def test_school_name_fallback(self):
        application = MagicMock()
        application.school = None
        application.school_id = 5

        assert get_school_name(application) == "School #5"


class TestDescribeDeviceIssues:
    def test_uses_name_tag_or_device_id(self):
        device = MagicMock()
        device.name_tag = "RTB/LT/GAS/001"
        known = MagicMock(device=device, device_id=42, problem_description="screen flicker")
        unknown = MagicMock(device=None, device_id=43, problem_description="battery")
        application = MagicMock(device_issues=[known, unknown])

        assert describe_device_issues(application) == [
            ("RTB/LT/GAS/001", "screen flicker"),
            ("Device #43", "battery"),
        ]


class TestStatusLabel:
    def test_every_status_has_a_label(self):
        for status in ApplicationStatus:
            assert status_label(status)


class TestComputedProperties:
    """Tests for Application computed properties."""

    def test_overdue_requires_past_estimate(self, application):
        assert application.is_overdue is False

        application.estimated_completion_date = datetime.now(UTC) - timedelta(hours=1)
        assert application.is_overdue is True

        application.estimated_completion_date = datetime.now(UTC) + timedelta(hours=1)
        assert application.is_overdue is False

    def test_completed_is_never_overdue(self, application):
        application.estimated_completion_date = datetime.now(UTC) - timedelta(days=3)
        application.status = ApplicationStatus.COMPLETED
        assert application.is_overdue is False

    def test_affected_device_count_counts_issues(self, application):
        for device_id in (42, 42, 43):
            application.device_issues.append(
                ApplicationDeviceIssue(device_id=device_id, problem_description="x")
            )
        assert application.affected_device_count == 3


class TestValidateLetter:
    """Tests for validate_letter."""

    def test_pdf_accepted(self):
        validate_letter("letter.PDF", "application/pdf", 1024)

    def test_wrong_type(self):
        with pytest.raises(LetterUploadError) as exc_info:
            validate_letter("letter.docx", "application/msword", 1024)
        assert exc_info.value.status_code == 422

    def test_empty_file(self):
        with pytest.raises(LetterUploadError):
            validate_letter("letter.pdf", "application/pdf", 0)

    def test_too_large(self):
        with pytest.raises(LetterUploadError) as exc_info:
            validate_letter("letter.pdf", "application/pdf", settings.max_upload_size_bytes + 1)
        assert exc_info.value.status_code == 413


class TestLetterStorage:
    """Tests for storing and removing letters on disk."""

    @pytest.mark.asyncio
    async def test_save_and_remove(self, tmp_path):
        upload = MagicMock()
        upload.filename = "letter.pdf"
        upload.content_type = "application/pdf"
        upload.read = AsyncMock(return_value=b"%PDF-1.4 test")

        with patch.object(settings, "upload_dir", str(tmp_path)):
            path = await save_application_letter(upload)

        assert path.startswith(str(tmp_path))
        assert path.endswith(".pdf")
        assert letter_exists(path)

        await remove_letter(path)
        assert not letter_exists(path)

    @pytest.mark.asyncio
    async def test_remove_missing_letter_is_quiet(self, tmp_path):
        await remove_letter(str(tmp_path / "missing.pdf"))
        await remove_letter(None)
