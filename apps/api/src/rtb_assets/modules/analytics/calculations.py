"""
Analytics Calculations

Pure functions over loaded Device objects. The service does the querying;
everything here is arithmetic so it can be tested without a database.
"""

from collections import Counter, defaultdict
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from rtb_assets.modules.devices.models import Device

UTILIZATION_WINDOW_DAYS = 30
ONLINE_WINDOW_MINUTES = 30
OFFLINE_ALERT_DAYS = 7
WARRANTY_ALERT_DAYS = 30
TOP_BRANDS_LIMIT = 10

AGE_BUCKETS = (
    "Unknown",
    "Less than 1 year",
    "1-2 years",
    "3-5 years",
    "More than 5 years",
)


def money(value: Decimal | float | int | None) -> float:
    return round(float(value or 0), 2)


def percentage(part: float, whole: float) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def _key(value: Any, default: str = "Unknown") -> str:
    if value is None:
        return default
    return getattr(value, "value", value)


# ============================================
# Fleet-level figures
# ============================================


def is_recently_seen(
    device: Device,
    now: datetime | None = None,
    days: int = UTILIZATION_WINDOW_DAYS,
) -> bool:
    if device.last_seen_at is None:
        return False
    now = now or datetime.now(UTC)
    return device.last_seen_at > now - timedelta(days=days)


def utilization_rate(devices: Sequence[Device], now: datetime | None = None) -> float:
    """Share of devices seen within the utilization window, as a percentage."""
    active = sum(1 for d in devices if is_recently_seen(d, now))
    return percentage(active, len(devices))


def underutilized_devices(devices: Iterable[Device], now: datetime | None = None) -> list[Device]:
    return [d for d in devices if not is_recently_seen(d, now)]


def average_age(devices: Iterable[Device]) -> float:
    ages = [d.age_in_years for d in devices if d.age_in_years is not None]
    if not ages:
        return 0.0
    return round(sum(ages) / len(ages), 2)


def age_bucket(age: int | None) -> str:
    if age is None:
        return "Unknown"
    if age < 1:
        return "Less than 1 year"
    if age <= 2:
        return "1-2 years"
    if age <= 5:
        return "3-5 years"
    return "More than 5 years"


def age_distribution(devices: Iterable[Device]) -> dict[str, int]:
    counts = dict.fromkeys(AGE_BUCKETS, 0)
    for device in devices:
        counts[age_bucket(device.age_in_years)] += 1
    return counts


def count_by(devices: Iterable[Device], attribute: str) -> dict[str, int]:
    return dict(Counter(_key(getattr(d, attribute)) for d in devices))


def category_distribution(devices: Sequence[Device]) -> dict[str, dict[str, float]]:
    """{category: {count, value, percentage}}"""
    total = len(devices)
    buckets: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "value": Decimal(0)})
    for device in devices:
        bucket = buckets[_key(device.category)]
        bucket["count"] += 1
        bucket["value"] += Decimal(device.purchase_cost or 0)

    return {
        category: {
            "count": stats["count"],
            "value": money(stats["value"]),
            "percentage": percentage(stats["count"], total),
        }
        for category, stats in buckets.items()
    }


def top_brands(devices: Iterable[Device], limit: int = TOP_BRANDS_LIMIT) -> list[dict[str, Any]]:
    stats: dict[str, dict[str, Any]] = defaultdict(lambda: {"count": 0, "value": Decimal(0)})
    for device in devices:
        entry = stats[device.brand or "Unknown"]
        entry["count"] += 1
        entry["value"] += Decimal(device.purchase_cost or 0)

    ranked = sorted(stats.items(), key=lambda item: (-item[1]["count"], item[0]))
    return [
        {"brand": brand, "count": entry["count"], "value": money(entry["value"])}
        for brand, entry in ranked[:limit]
    ]


def province_distribution(devices: Iterable[Device]) -> dict[str, dict[str, float]]:
    stats: dict[str, dict[str, Any]] = defaultdict(lambda: {"devices": 0, "value": Decimal(0)})
    for device in devices:
        province = device.school.province if device.school and device.school.province else None
        entry = stats[province or "Unassigned"]
        entry["devices"] += 1
        entry["value"] += Decimal(device.purchase_cost or 0)
    return {k: {"devices": v["devices"], "value": money(v["value"])} for k, v in stats.items()}


def utilization_by_category(
    devices: Iterable[Device],
    now: datetime | None = None,
) -> dict[str, float]:
    totals: Counter[str] = Counter()
    active: Counter[str] = Counter()
    for device in devices:
        category = _key(device.category)
        totals[category] += 1
        if is_recently_seen(device, now):
            active[category] += 1
    return {category: percentage(active[category], total) for category, total in totals.items()}


def utilization_by_school(
    devices: Iterable[Device],
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    totals: Counter[str] = Counter()
    active: Counter[str] = Counter()
    for device in devices:
        if device.school is None:
            continue
        totals[device.school.name] += 1
        if is_recently_seen(device, now):
            active[device.school.name] += 1
    rows = [
        {"school": name, "utilization": percentage(active[name], total)}
        for name, total in totals.items()
    ]
    return sorted(rows, key=lambda row: row["utilization"])


def maintenance_efficiency(devices: Iterable[Device]) -> float:
    """Share of due devices that are not yet overdue. 100 when nothing is due."""
    devices = list(devices)
    due = sum(1 for d in devices if d.needs_maintenance)
    if due == 0:
        return 100.0
    overdue = sum(1 for d in devices if d.maintenance_overdue)
    return max(0.0, percentage(due - overdue, due))


# ============================================
# Per-device and per-school scores
# ============================================


def utilization_score(device: Device) -> float:
    """100 when seen today, falling to 0 after 30 days without a heartbeat."""
    days = device.days_since_last_seen
    if days is None:
        return 0.0
    return round(max(0.0, 100 - days * 3.33), 2)


def reliability_score(device: Device, repair_count: int = 0) -> float:
    """Loses 10 points per year of age and 10 per repair (repairs capped at 50)."""
    age = device.age_in_years or 0
    base = max(0, 100 - age * 10)
    penalty = min(50, repair_count * 10)
    return float(max(0, base - penalty))


def cost_efficiency(device: Device, maintenance_cost: Decimal | float = 0) -> float:
    """Current (depreciated) value as a percentage of everything spent on the device."""
    total = Decimal(device.purchase_cost or 0) + Decimal(str(maintenance_cost or 0))
    if total == 0:
        return 0.0
    return percentage(float(device.depreciated_value), float(total))


def device_recommendations(device: Device, utilization: float, reliability: float) -> list[str]:
    recommendations = []
    if utilization < 30:
        recommendations.append("Device appears underutilized - consider reassignment")
    if reliability < 50:
        recommendations.append("Device reliability is low - consider replacement")
    if device.needs_maintenance:
        recommendations.append("Schedule maintenance as soon as possible")
    age = device.age_in_years
    if not device.is_warranty_active and age is not None and age > 5:
        recommendations.append("Consider upgrading this aging device")
    return recommendations


def technology_readiness(device_count: int) -> int:
    score = 0
    if device_count > 0:
        score += 50
    if device_count > 10:
        score += 25
    if device_count > 50:
        score += 25
    return score


def school_recommendations(device_count: int, utilization: float, readiness: int) -> list[str]:
    recommendations = []
    if utilization < 50:
        recommendations.append("Increase device utilization through training programs")
    if readiness < 70:
        recommendations.append("Improve basic infrastructure for better technology adoption")
    if device_count == 0:
        recommendations.append("Consider initial device allocation for this school")
    return recommendations


def utilization_recommendations(overall: float, underutilized_count: int) -> list[str]:
    recommendations = []
    if overall < 60:
        recommendations.append("Overall device utilization is low - review deployment strategy")
    if underutilized_count > 0:
        recommendations.append(
            f"{underutilized_count} devices are underutilized - consider redistribution"
        )
    return recommendations


def device_brief(device: Device) -> dict[str, Any]:
    """Compact device row used in alert and analytics lists."""
    return {
        "id": device.id,
        "name_tag": device.name_tag,
        "serial_number": device.serial_number,
        "category": _key(device.category),
        "status": _key(device.status),
        "condition": _key(device.condition),
        "school_id": device.school_id,
        "school_name": device.school.name if device.school else None,
        "last_seen_at": device.last_seen_at,
        "next_maintenance_date": device.next_maintenance_date,
        "warranty_expiry": device.warranty_expiry,
    }
