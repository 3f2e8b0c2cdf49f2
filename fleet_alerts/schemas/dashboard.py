"""Dashboard schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from fleet_alerts.schemas.alert import AlertHistoryResponse, AlertResponse


class DriverAlertCountResponse(BaseModel):
    """A driver ranked by alert count."""

    driver_id: str
    total_alerts: int = Field(..., ge=0)
    severity_breakdown: dict[str, int]


class TopDriversResponse(BaseModel):
    drivers: list[DriverAlertCountResponse]
    count: int


class SeverityCountsResponse(BaseModel):
    """Alert counts per severity for the requested statuses."""

    statuses: list[str]
    counts: dict[str, int]


class TrendPointResponse(BaseModel):
    date: str = Field(..., description="UTC calendar day, YYYY-MM-DD")
    event_counts: dict[str, int]


class TrendDataResponse(BaseModel):
    """Daily audit event counts, oldest day first."""

    days: int
    trends: list[TrendPointResponse]


class AutoClosedAlertsResponse(BaseModel):
    hours: int
    alerts: list[AlertResponse]
    count: int


class AlertStatisticsResponse(BaseModel):
    """Alert totals and recent activity."""

    status_counts: dict[str, int]
    active_count: int
    severity_distribution: dict[str, int]
    last_24_hours_activity: dict[str, int]
    generated_at: datetime


class DashboardOverviewResponse(BaseModel):
    """Landing page of the operations dashboard."""

    severity_counts: dict[str, int]
    top_drivers: list[DriverAlertCountResponse]
    recently_auto_closed: list[AlertResponse]
    total_open_alerts: int
    total_escalated_alerts: int
    total_auto_closed_alerts: int
    total_resolved_alerts: int
    recent_events: list[AlertHistoryResponse]
    generated_at: datetime
