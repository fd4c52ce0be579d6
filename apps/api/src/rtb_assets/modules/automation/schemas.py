"""
Automation Schemas
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TriggerType(str, enum.Enum):
    SCHEDULE = "schedule"
    EVENT = "event"
    CONDITION = "condition"


class ActionType(str, enum.Enum):
    EMAIL = "email"
    STATUS_CHANGE = "status_change"
    ASSIGNMENT = "assignment"
    NOTIFICATION = "notification"
    REPORT = "report"


class MaintenanceType(str, enum.Enum):
    PREVENTIVE = "preventive"
    REPAIR = "repair"
    INSPECTION = "inspection"


class MaintenancePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================
# Rules
# ============================================


class AutomationAction(BaseModel):
    type: ActionType
    parameters: dict[str, Any] = Field(default_factory=dict)


class AutomationRule(BaseModel):
    """
    A rule in the process-local registry.

    Scheduled rules carry a crontab expression in `trigger["cron"]`.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str
    name: str
    description: str = ""
    enabled: bool = True
    trigger_type: TriggerType = TriggerType.SCHEDULE
    trigger: dict[str, Any] = Field(default_factory=dict)
    actions: list[AutomationAction] = Field(default_factory=list)
    last_run: datetime | None = None
    next_run: datetime | None = None

    @property
    def cron(self) -> str | None:
        if self.trigger_type != TriggerType.SCHEDULE:
            return None
        return self.trigger.get("cron")


class AutomationRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    enabled: bool = True
    trigger_type: TriggerType = TriggerType.SCHEDULE
    trigger: dict[str, Any] = Field(default_factory=dict)
    actions: list[AutomationAction] = Field(default_factory=list)


class AutomationRuleUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    enabled: bool | None = None
    trigger_type: TriggerType | None = None
    trigger: dict[str, Any] | None = None
    actions: list[AutomationAction] | None = None


# ============================================
# Execution
# ============================================


class RuleExecutionResult(BaseModel):
    rule_id: str
    devices_processed: int = 0
    notifications_sent: int = 0
    maintenance_scheduled: int = 0


class AutomationReport(BaseModel):
    total_rules_executed: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    devices_processed: int = 0
    notifications_sent: int = 0
    maintenance_scheduled: int = 0
    automation_efficiency: float = 0.0
    failed_rules: list[str] = Field(default_factory=list)


class AutomationStatistics(BaseModel):
    total_rules: int
    enabled_rules: int
    disabled_rules: int
    last_execution_time: datetime | None = None
    average_execution_time: float
    success_rate: float


# ============================================
# Maintenance schedule
# ============================================


class MaintenanceScheduleItem(BaseModel):
    device_id: int
    name_tag: str
    school_id: int | None = None
    scheduled_date: date
    type: MaintenanceType = MaintenanceType.PREVENTIVE
    description: str
    priority: MaintenancePriority
    estimated_cost: float | None = None
    assigned_technician: str = "TBD"


class MaintenanceScheduleCreate(BaseModel):
    device_id: int = Field(..., gt=0)
    scheduled_date: date
    type: MaintenanceType = MaintenanceType.PREVENTIVE
    description: str = ""
    priority: MaintenancePriority | None = None
    estimated_cost: Decimal | None = Field(None, ge=0)
    assigned_technician: str | None = None


class MaintenanceScheduleUpdate(BaseModel):
    scheduled_date: date | None = None
    assigned_technician: str | None = None


class AgingUpdateResult(BaseModel):
    devices_processed: int
    ages_refreshed: int
    conditions_degraded: int
