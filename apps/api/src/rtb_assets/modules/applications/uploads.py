"""
Application Letter Uploads

PDF letters attached to new device requests are stored on the local
filesystem under {upload_dir}/applications.
"""

import asyncio
import logging
import os
import secrets
import time

from fastapi import UploadFile

from rtb_assets.core.config import settings

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"application/pdf"}
ALLOWED_EXTENSIONS = {".pdf"}


class LetterUploadError(Exception):
    """Rejected upload. Same shape as the service errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "INVALID_APPLICATION_LETTER",
        status_code: int = 422,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


def letters_dir() -> str:
    return os.path.join(settings.upload_dir, "applications")


def build_letter_filename() -> str:
    """application-{ms timestamp}-{random}.pdf"""
    return f"application-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.pdf"


def validate_letter(filename: str | None, content_type: str | None, size: int) -> None:
    """
    Raises:
        LetterUploadError: Not a PDF, empty, or larger than the configured limit
    """
    extension = os.path.splitext(filename or "")[1].lower()
    if content_type not in ALLOWED_CONTENT_TYPES or extension not in ALLOWED_EXTENSIONS:
        raise LetterUploadError("Only PDF files are allowed for application letters.")
    if size == 0:
        raise LetterUploadError("The application letter is empty.")
    if size > settings.max_upload_size_bytes:
        raise LetterUploadError(
            f"The application letter exceeds {settings.max_upload_size_mb} MB.",
            error_code="APPLICATION_LETTER_TOO_LARGE",
            status_code=413,
        )


def _write_file(path: str, content: bytes) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)


async def save_application_letter(upload: UploadFile) -> str:
    """
    Validate and store an uploaded letter.

    Returns:
        Path of the stored file
    """
    # Read one byte past the limit so oversize files are detected without
    # loading arbitrarily large bodies
    content = await upload.read(settings.max_upload_size_bytes + 1)
    validate_letter(upload.filename, upload.content_type, len(content))

    path = os.path.join(letters_dir(), build_letter_filename())
    await asyncio.to_thread(_write_file, path, content)
    logger.info(f"Stored application letter {path} ({len(content)} bytes)")
    return path


def letter_exists(path: str | None) -> bool:
    return bool(path) and os.path.isfile(path)


async def remove_letter(path: str | None) -> None:
    """Delete a stored letter. A missing file is not an error."""
    if not letter_exists(path):
        return
    try:
        await asyncio.to_thread(os.remove, path)
        logger.info(f"Removed application letter {path}")
    except OSError as e:
        logger.error(f"Failed to remove application letter {path}: {e}", exc_info=True)
