"""Dashboard endpoints.

Read-only aggregations for the operations dashboard. Rendering is left to
the client.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_alerts.database import get_db
from fleet_alerts.models.alert import ACTIVE_STATUSES, AlertStatus
from fleet_alerts.schemas.alert import AlertHistoryResponse, AlertResponse
from fleet_alerts.schemas.dashboard import (
    AlertStatisticsResponse,
    AutoClosedAlertsResponse,
    DashboardOverviewResponse,
    DriverAlertCountResponse,
    SeverityCountsResponse,
    TopDriversResponse,
    TrendDataResponse,
    TrendPointResponse,
)
from fleet_alerts.services.dashboard import (
    DEFAULT_AUTO_CLOSED_HOURS,
    DEFAULT_TOP_DRIVERS,
    DEFAULT_TREND_DAYS,
    DriverAlertCount,
    get_alert_statistics,
    get_dashboard_overview,
    get_recently_auto_closed_alerts,
    get_severity_counts,
    get_top_drivers,
    get_trend_data,
)

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


def _by_value(counts: dict) -> dict[str, int]:
    return {key.value: count for key, count in counts.items()}


def _driver_response(driver: DriverAlertCount) -> DriverAlertCountResponse:
    return DriverAlertCountResponse(
        driver_id=driver.driver_id,
        total_alerts=driver.total_alerts,
        severity_breakdown=_by_value(driver.severity_breakdown),
    )


@router.get("", response_model=DashboardOverviewResponse)
async def get_overview(
    db: AsyncSession = Depends(get_db),
) -> DashboardOverviewResponse:
    """Severity mix, top drivers, recent auto-closures and status totals."""
    overview = await get_dashboard_overview(db)
    totals = overview.status_counts

    return DashboardOverviewResponse(
        severity_counts=_by_value(overview.severity_counts),
        top_drivers=[_driver_response(d) for d in overview.top_drivers],
        recently_auto_closed=[
            AlertResponse.from_alert(a) for a in overview.recently_auto_closed
        ],
        total_open_alerts=totals[AlertStatus.OPEN],
        total_escalated_alerts=totals[AlertStatus.ESCALATED],
        total_auto_closed_alerts=totals[AlertStatus.AUTO_CLOSED],
        total_resolved_alerts=totals[AlertStatus.RESOLVED],
        recent_events=[
            AlertHistoryResponse.model_validate(e) for e in overview.recent_events
        ],
        generated_at=overview.generated_at,
    )


@router.get("/severity", response_model=SeverityCountsResponse)
async def get_severity(
    statuses: list[AlertStatus] | None = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> SeverityCountsResponse:
    """Alert counts per severity. Defaults to OPEN and ESCALATED alerts."""
    statuses = statuses or list(ACTIVE_STATUSES)
    counts = await get_severity_counts(db, statuses)
    return SeverityCountsResponse(
        statuses=[s.value for s in statuses],
        counts=_by_value(counts),
    )


@router.get("/top-drivers", response_model=TopDriversResponse)
async def get_top_drivers_endpoint(
    limit: int = Query(default=DEFAULT_TOP_DRIVERS, ge=1, le=100),
    statuses: list[AlertStatus] | None = Query(default=None, alias="status"),
    db: AsyncSession = Depends(get_db),
) -> TopDriversResponse:
    """Drivers with the most alerts. Defaults to OPEN and ESCALATED alerts."""
    drivers = await get_top_drivers(db, limit, statuses or ACTIVE_STATUSES)
    return TopDriversResponse(
        drivers=[_driver_response(d) for d in drivers],
        count=len(drivers),
    )


@router.get("/auto-closed", response_model=AutoClosedAlertsResponse)
async def get_auto_closed(
    hours: int = Query(default=DEFAULT_AUTO_CLOSED_HOURS, ge=1, le=24 * 30),
    db: AsyncSession = Depends(get_db),
) -> AutoClosedAlertsResponse:
    """Alerts the system closed in the last ``hours`` hours."""
    alerts = await get_recently_auto_closed_alerts(db, hours)
    return AutoClosedAlertsResponse(
        hours=hours,
        alerts=[AlertResponse.from_alert(a) for a in alerts],
        count=len(alerts),
    )


@router.get("/trends", response_model=TrendDataResponse)
async def get_trends(
    days: int = Query(default=DEFAULT_TREND_DAYS, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
) -> TrendDataResponse:
    """Audit events per day and event type."""
    points = await get_trend_data(db, days)
    return TrendDataResponse(
        days=days,
        trends=[
            TrendPointResponse(date=p.date, event_counts=p.event_counts)
            for p in points
        ],
    )


@router.get("/statistics", response_model=AlertStatisticsResponse)
async def get_statistics(
    db: AsyncSession = Depends(get_db),
) -> AlertStatisticsResponse:
    """Alert totals per status and activity of the last 24 hours."""
    stats = await get_alert_statistics(db)
    return AlertStatisticsResponse(
        status_counts=_by_value(stats.status_counts),
        active_count=stats.active_count,
        severity_distribution=_by_value(stats.severity_distribution),
        last_24_hours_activity=stats.last_24_hours_activity,
        generated_at=stats.generated_at,
    )
