"""Dashboard aggregations.

Read-only summaries over alerts and the audit trail: severity counts, top
drivers, recent auto-closures, daily event trends and overall statistics.
Nothing here writes or commits.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_alerts.logging_config import get_logger
from fleet_alerts.models.alert import ACTIVE_STATUSES, Alert, AlertSeverity, AlertStatus
from fleet_alerts.models.alert_history import AlertHistory
from fleet_alerts.services.alert_service import count_alerts_by_status
from fleet_alerts.services.alert_store import (
    count_alerts_by_severity,
    count_driver_alerts_by_severity,
    count_history_events_since,
    find_auto_closed_since,
    find_history_since,
    find_top_drivers,
    get_recent_history,
)

logger = get_logger(__name__)

DEFAULT_TOP_DRIVERS = 5
DEFAULT_AUTO_CLOSED_HOURS = 24
DEFAULT_TREND_DAYS = 7
RECENT_EVENTS_LIMIT = 100


@dataclass(frozen=True)
class DriverAlertCount:
    """One driver's alert total with its severity breakdown."""

    driver_id: str
    total_alerts: int
    severity_breakdown: dict[AlertSeverity, int]


@dataclass(frozen=True)
class TrendPoint:
    """Audit event counts of one UTC calendar day, keyed by event type."""

    date: str
    event_counts: dict[str, int]


@dataclass(frozen=True)
class AlertStatistics:
    status_counts: dict[AlertStatus, int]
    active_count: int
    severity_distribution: dict[AlertSeverity, int]
    last_24_hours_activity: dict[str, int]
    generated_at: datetime


@dataclass(frozen=True)
class DashboardOverview:
    severity_counts: dict[AlertSeverity, int]
    top_drivers: list[DriverAlertCount]
    recently_auto_closed: list[Alert]
    status_counts: dict[AlertStatus, int]
    recent_events: list[AlertHistory]
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


async def get_severity_counts(
    db: AsyncSession,
    statuses: Iterable[AlertStatus] = ACTIVE_STATUSES,
) -> dict[AlertSeverity, int]:
    """Alert counts per severity among ``statuses``; every severity is present."""
    counts = {severity: 0 for severity in AlertSeverity}
    counts.update(await count_alerts_by_severity(db, statuses))
    return counts


async def get_top_drivers(
    db: AsyncSession,
    limit: int = DEFAULT_TOP_DRIVERS,
    statuses: Iterable[AlertStatus] = ACTIVE_STATUSES,
) -> list[DriverAlertCount]:
    """The ``limit`` drivers with the most alerts among ``statuses``.

    Alerts without a driver are not attributed to anyone.
    """
    statuses = list(statuses)
    top = await find_top_drivers(db, statuses, limit)
    breakdown = await count_driver_alerts_by_severity(
        db, [driver_id for driver_id, _ in top], statuses
    )
    return [
        DriverAlertCount(
            driver_id=driver_id,
            total_alerts=count,
            severity_breakdown=breakdown.get(driver_id, {}),
        )
        for driver_id, count in top
    ]


async def get_recently_auto_closed_alerts(
    db: AsyncSession,
    hours: int = DEFAULT_AUTO_CLOSED_HOURS,
    now: datetime | None = None,
) -> list[Alert]:
    """Alerts auto-closed in the last ``hours`` hours, most recent first."""
    now = now or datetime.now(UTC)
    return await find_auto_closed_since(db, now - timedelta(hours=hours))


async def get_trend_data(
    db: AsyncSession,
    days: int = DEFAULT_TREND_DAYS,
    now: datetime | None = None,
) -> list[TrendPoint]:
    """Daily audit event counts over the last ``days`` days, oldest day first.

    Days without any event are left out.
    """
    now = now or datetime.now(UTC)
    events = await find_history_since(db, now - timedelta(days=days))

    by_day: dict[str, Counter[str]] = {}
    for event in events:
        day = event.timestamp.astimezone(UTC).date().isoformat()
        by_day.setdefault(day, Counter())[event.event_type.value] += 1

    return [
        TrendPoint(date=day, event_counts=dict(counts))
        for day, counts in sorted(by_day.items())
    ]


async def get_alert_statistics(
    db: AsyncSession,
    now: datetime | None = None,
) -> AlertStatistics:
    """Status totals, active severity mix and the last 24 hours of activity."""
    now = now or datetime.now(UTC)

    status_counts = await count_alerts_by_status(db)
    events = await count_history_events_since(db, now - timedelta(hours=24))

    return AlertStatistics(
        status_counts=status_counts,
        active_count=sum(status_counts[s] for s in ACTIVE_STATUSES),
        severity_distribution=await get_severity_counts(db, ACTIVE_STATUSES),
        last_24_hours_activity={
            event_type.value: count for event_type, count in events.items()
        },
        generated_at=now,
    )


async def get_dashboard_overview(
    db: AsyncSession,
    now: datetime | None = None,
) -> DashboardOverview:
    """Everything the operations dashboard shows on its landing page."""
    now = now or datetime.now(UTC)
    logger.debug("Generating dashboard overview")

    return DashboardOverview(
        severity_counts=await get_severity_counts(db, ACTIVE_STATUSES),
        top_drivers=await get_top_drivers(db, DEFAULT_TOP_DRIVERS, ACTIVE_STATUSES),
        recently_auto_closed=await get_recently_auto_closed_alerts(
            db, DEFAULT_AUTO_CLOSED_HOURS, now=now
        ),
        status_counts=await count_alerts_by_status(db),
        recent_events=await get_recent_history(db, RECENT_EVENTS_LIMIT),
        generated_at=now,
    )
