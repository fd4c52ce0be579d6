"""
Analytics Schemas

Read-only report shapes. Distributions are keyed by enum value.
"""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


class DeviceBrief(BaseModel):
    id: int
    name_tag: str
    serial_number: str
    category: str
    status: str
    condition: str
    school_id: int | None = None
    school_name: str | None = None
    last_seen_at: datetime | None = None
    next_maintenance_date: date | None = None
    warranty_expiry: date | None = None


# ============================================
# Dashboard
# ============================================


class DashboardOverview(BaseModel):
    total_devices: int = 0
    total_schools: int = 0
    total_users: int = 0
    active_devices: int = 0
    online_devices: int = 0
    devices_needing_maintenance: int = 0


class DashboardAlerts(BaseModel):
    maintenance_overdue: list[DeviceBrief] = Field(default_factory=list)
    warranty_expiring: list[DeviceBrief] = Field(default_factory=list)
    offline_devices: list[DeviceBrief] = Field(default_factory=list)


class DashboardStatistics(BaseModel):
    overview: DashboardOverview
    devices_by_category: dict[str, int]
    devices_by_status: dict[str, int]
    devices_by_condition: dict[str, int]
    schools_by_province: dict[str, int]
    users_by_role: dict[str, int]
    applications: dict[str, int]
    alerts: DashboardAlerts


# ============================================
# Devices
# ============================================


class CategoryStats(BaseModel):
    count: int
    value: float
    percentage: float


class BrandStats(BaseModel):
    brand: str
    count: int
    value: float


class ProvinceStats(BaseModel):
    devices: int
    value: float


class DeviceAnalytics(BaseModel):
    total_devices: int
    total_value: float
    depreciated_value: float
    average_age: float
    utilization_rate: float
    maintenance_costs: float
    category_distribution: dict[str, CategoryStats]
    age_distribution: dict[str, int]
    status_distribution: dict[str, int]
    condition_distribution: dict[str, int]
    top_brands: list[BrandStats]
    province_distribution: dict[str, ProvinceStats]


class SchoolUtilization(BaseModel):
    school: str
    utilization: float


class UtilizationAnalytics(BaseModel):
    total_devices: int
    overall_utilization: float
    utilization_by_category: dict[str, float]
    utilization_by_school: list[SchoolUtilization]
    underutilized_devices: list[DeviceBrief]
    recommendations: list[str]


class MaintenanceAnalytics(BaseModel):
    total_devices: int
    upcoming_maintenance: list[DeviceBrief]
    overdue_maintenance: list[DeviceBrief]
    maintenance_efficiency: float
    maintenance_requests: int
    open_maintenance_requests: int
    reported_issues_by_category: dict[str, int]
    total_maintenance_cost: float
    average_cost_per_request: float


class CostAnalysis(BaseModel):
    group_by: Literal["month", "year"]
    total_purchase_cost: float
    total_maintenance_cost: float
    total_cost: float
    average_cost_per_device: float
    cost_by_category: dict[str, float]
    cost_by_period: dict[str, float]


# ============================================
# Performance
# ============================================


class DeviceIssueHistoryItem(BaseModel):
    application_id: int
    problem_description: str
    action_taken: str | None = None
    resolved_at: datetime | None = None
    reported_at: datetime


class DevicePerformance(BaseModel):
    device: DeviceBrief
    age_in_years: int | None
    utilization_score: float
    reliability_score: float
    cost_efficiency: float
    repair_count: int
    maintenance_history: list[DeviceIssueHistoryItem]
    recommendations: list[str]


class SchoolPerformance(BaseModel):
    school_id: int
    school_name: str
    total_devices: int
    device_utilization: float
    total_value: float
    maintenance_efficiency: float
    technology_readiness: int
    applications: dict[str, int]
    recommendations: list[str]
