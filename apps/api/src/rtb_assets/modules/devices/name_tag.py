"""
Device name tags.

Format: RTB/{category prefix}/{district prefix}/{NNN}

- Unassigned devices share the tag RTB/{prefix}/DEFAULT/001
- Assigned devices take the next free sequence number for their school and
  category, zero-padded to three digits

Sequence allocation reads the current maximum and adds one, so two
concurrent writers can compute the same tag. The (school_id, name_tag)
unique constraint rejects the second insert and the caller retries.
"""

import re

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.modules.devices.models import Device, DeviceCategory

NAME_TAG_MAX_ATTEMPTS = 5
NAME_TAG_CONSTRAINT = "uq_devices_school_name_tag"

CATEGORY_PREFIXES: dict[DeviceCategory, str] = {
    DeviceCategory.LAPTOP: "LT",
    DeviceCategory.DESKTOP: "DT",
    DeviceCategory.PROJECTOR: "PT",
    DeviceCategory.OTHER: "OT",
}

UNKNOWN_DISTRICT_PREFIX = "UNK"

_SEQUENCE_RE = re.compile(r"/(\d{3,})$")


def category_prefix(category: DeviceCategory | str) -> str:
    try:
        return CATEGORY_PREFIXES[DeviceCategory(category)]
    except ValueError:
        return CATEGORY_PREFIXES[DeviceCategory.OTHER]


def district_prefix(district: str | None) -> str:
    if not district or not district.strip():
        return UNKNOWN_DISTRICT_PREFIX
    return district.strip()[:3].upper()


def default_name_tag(category: DeviceCategory | str) -> str:
    return f"RTB/{category_prefix(category)}/DEFAULT/001"


def format_name_tag(category: DeviceCategory | str, district: str | None, sequence: int) -> str:
    return f"RTB/{category_prefix(category)}/{district_prefix(district)}/{sequence:03d}"


def parse_sequence(name_tag: str) -> int | None:
    match = _SEQUENCE_RE.search(name_tag)
    return int(match.group(1)) if match else None


def next_sequence(existing_tags: list[str]) -> int:
    """Highest parsed sequence plus one, or 1 when there is none."""
    sequences = [s for s in (parse_sequence(t) for t in existing_tags) if s is not None]
    return max(sequences, default=0) + 1


async def generate_school_name_tag(
    db: AsyncSession,
    school_id: int,
    district: str | None,
    category: DeviceCategory | str,
    exclude_device_id: int | None = None,
) -> str:
    """
    Compute the next tag for a school and category.

    Args:
        exclude_device_id: Device being re-tagged, ignored when reading
            existing sequences
    """
    pattern = f"RTB/{category_prefix(category)}/{district_prefix(district)}/%"
    query = select(Device.name_tag).where(
        Device.school_id == school_id,
        Device.name_tag.like(pattern),
    )
    if exclude_device_id is not None:
        query = query.where(Device.id != exclude_device_id)

    result = await db.execute(query)
    existing = list(result.scalars().all())

    return format_name_tag(category, district, next_sequence(existing))


def is_name_tag_conflict(error: Exception) -> bool:
    """True when an IntegrityError came from the name tag constraint."""
    return NAME_TAG_CONSTRAINT in str(getattr(error, "orig", error))
