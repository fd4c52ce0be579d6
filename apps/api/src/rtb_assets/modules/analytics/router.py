"""
Analytics Router

Endpoints (RTB staff and admin):
- GET /analytics/dashboard - Headline counters and alerts
- GET /analytics/devices - Inventory value, age and distribution
- GET /analytics/utilization - Utilization by category and school
- GET /analytics/maintenance - Upcoming/overdue maintenance
- GET /analytics/costs - Purchase and maintenance spend
- GET /analytics/devices/{id}/performance - Scores for one device
- GET /analytics/schools/{id}/performance - Scores for one school
"""

import logging
from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from rtb_assets.core.auth import ROLE_RTB_STAFF, CurrentUser, require_roles
from rtb_assets.core.database import get_db
from rtb_assets.modules.analytics import service
from rtb_assets.modules.analytics.schemas import (
    CostAnalysis,
    DashboardStatistics,
    DeviceAnalytics,
    DevicePerformance,
    MaintenanceAnalytics,
    SchoolPerformance,
    UtilizationAnalytics,
)
from rtb_assets.modules.analytics.service import AnalyticsServiceError
from rtb_assets.modules.devices.models import DeviceCategory

logger = logging.getLogger(__name__)

router = APIRouter()

require_analyst = require_roles(ROLE_RTB_STAFF)


def _handle_service_error(e: AnalyticsServiceError) -> None:
    raise HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    ) from e


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


@router.get("/dashboard", response_model=DashboardStatistics)
async def dashboard(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_analyst),
) -> DashboardStatistics:
    try:
        return await service.get_dashboard_statistics(db)
    except Exception:
        logger.exception("Failed to build dashboard statistics")
        raise _internal_error()


@router.get("/devices", response_model=DeviceAnalytics)
async def device_analytics(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_analyst),
) -> DeviceAnalytics:
    try:
        return await service.get_device_analytics(db)
    except Exception:
        logger.exception("Failed to build device analytics")
        raise _internal_error()


@router.get("/utilization", response_model=UtilizationAnalytics)
async def utilization_analytics(
    school_id: int | None = Query(None, gt=0),
    province: str | None = Query(None),
    district: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_analyst),
) -> UtilizationAnalytics:
    try:
        return await service.get_utilization_analytics(
            db, school_id=school_id, province=province, district=district
        )
    except Exception:
        logger.exception("Failed to build utilization analytics")
        raise _internal_error()


@router.get("/maintenance", response_model=MaintenanceAnalytics)
async def maintenance_analytics(
    school_id: int | None = Query(None, gt=0),
    category: DeviceCategory | None = Query(None),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_analyst),
) -> MaintenanceAnalytics:
    try:
        return await service.get_maintenance_analytics(db, school_id=school_id, category=category)
    except Exception:
        logger.exception("Failed to build maintenance analytics")
        raise _internal_error()


@router.get("/costs", response_model=CostAnalysis)
async def cost_analysis(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    group_by: Literal["month", "year"] = Query("month"),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_analyst),
) -> CostAnalysis:
    try:
        return await service.get_cost_analysis(
            db, start_date=start_date, end_date=end_date, group_by=group_by
        )
    except AnalyticsServiceError as e:
        _handle_service_error(e)
    except Exception:
        logger.exception("Failed to build cost analysis")
        raise _internal_error()


@router.get("/devices/{device_id}/performance", response_model=DevicePerformance)
async def device_performance(
    device_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_analyst),
) -> DevicePerformance:
    try:
        return await service.get_device_performance(db, device_id)
    except AnalyticsServiceError as e:
        _handle_service_error(e)
    except Exception:
        logger.exception(f"Failed to score device {device_id}")
        raise _internal_error()


@router.get("/schools/{school_id}/performance", response_model=SchoolPerformance)
async def school_performance(
    school_id: int,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_analyst),
) -> SchoolPerformance:
    try:
        return await service.get_school_performance(db, school_id)
    except AnalyticsServiceError as e:
        _handle_service_error(e)
    except Exception:
        logger.exception(f"Failed to score school {school_id}")
        raise _internal_error()
