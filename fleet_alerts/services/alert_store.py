"""Alert and audit-log persistence.

Thin async data-access functions over an ``AsyncSession``. None of them
commit; the caller owns the unit of work.
"""

import uuid
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_alerts.models.alert import Alert, AlertSeverity, AlertStatus, AlertType
from fleet_alerts.models.alert_history import AlertHistory, HistoryEventType


async def insert_alert(db: AsyncSession, alert: Alert) -> Alert:
    """Add a new alert and flush it so it gets its id and version."""
    db.add(alert)
    await db.flush()
    return alert


async def get_alert(db: AsyncSession, alert_id: uuid.UUID) -> Alert | None:
    """Canonical copy of an alert, re-read from the database.

    Any unflushed in-memory state of an already loaded instance is
    overwritten, so callers always work on what is actually stored.
    """
    return await db.get(Alert, alert_id, populate_existing=True)


async def find_alerts_by_status(
    db: AsyncSession,
    statuses: Iterable[AlertStatus],
) -> list[Alert]:
    """All alerts whose status is one of ``statuses``, oldest first."""
    result = await db.execute(
        select(Alert)
        .where(Alert.status.in_(list(statuses)))
        .order_by(Alert.timestamp.asc(), Alert.id)
    )
    return list(result.scalars().all())


async def find_recent_alerts(
    db: AsyncSession,
    alert_type: AlertType,
    driver_id: str | None,
    since: datetime,
) -> list[Alert]:
    """Same-type, same-driver alerts with ``timestamp >= since``, newest first.

    Alerts without a driver are not correlated with anything, so a
    missing ``driver_id`` matches no rows.
    """
    if driver_id is None:
        return []

    result = await db.execute(
        select(Alert)
        .where(
            Alert.alert_type == alert_type,
            Alert.driver_id == driver_id,
            Alert.timestamp >= since,
        )
        .order_by(Alert.timestamp.desc())
    )
    return list(result.scalars().all())


async def find_alerts(
    db: AsyncSession,
    status: AlertStatus | None = None,
    driver_id: str | None = None,
    alert_type: AlertType | None = None,
    limit: int | None = None,
) -> list[Alert]:
    """Alerts matching the optional filters, newest first."""
    query = select(Alert)
    if status is not None:
        query = query.where(Alert.status == status)
    if driver_id is not None:
        query = query.where(Alert.driver_id == driver_id)
    if alert_type is not None:
        query = query.where(Alert.alert_type == alert_type)
    query = query.order_by(Alert.timestamp.desc())
    if limit is not None:
        query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def save_alert(db: AsyncSession, alert: Alert) -> Alert:
    """Flush pending changes of ``alert``.

    Raises:
        sqlalchemy.orm.exc.StaleDataError: If the row's version changed
            since the alert was loaded.
    """
    db.add(alert)
    await db.flush()
    return alert


async def delete_alerts_older_than(db: AsyncSession, threshold: datetime) -> int:
    """Delete alerts whose event time is before ``threshold``."""
    result = await db.execute(delete(Alert).where(Alert.timestamp < threshold))
    return result.rowcount or 0


async def append_history(db: AsyncSession, entry: AlertHistory) -> AlertHistory:
    """Append one audit entry."""
    db.add(entry)
    await db.flush()
    return entry


async def get_alert_history(
    db: AsyncSession,
    alert_id: uuid.UUID,
) -> list[AlertHistory]:
    """Audit trail of one alert, oldest first."""
    result = await db.execute(
        select(AlertHistory)
        .where(AlertHistory.alert_id == alert_id)
        .order_by(AlertHistory.timestamp.asc())
    )
    return list(result.scalars().all())


async def get_recent_history(db: AsyncSession, limit: int = 50) -> list[AlertHistory]:
    """The ``limit`` most recent audit entries across all alerts."""
    result = await db.execute(
        select(AlertHistory).order_by(AlertHistory.timestamp.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def delete_history_older_than(db: AsyncSession, threshold: datetime) -> int:
    """Delete audit entries recorded before ``threshold``."""
    result = await db.execute(
        delete(AlertHistory).where(AlertHistory.timestamp < threshold)
    )
    return result.rowcount or 0


async def delete_history_of_alerts_older_than(
    db: AsyncSession,
    threshold: datetime,
) -> int:
    """Delete audit entries of alerts whose event time is before ``threshold``.

    Run before ``delete_alerts_older_than`` on backends that do not enforce
    the ON DELETE CASCADE foreign key.
    """
    old_alert_ids = select(Alert.id).where(Alert.timestamp < threshold)
    result = await db.execute(
        delete(AlertHistory).where(AlertHistory.alert_id.in_(old_alert_ids))
    )
    return result.rowcount or 0


async def count_alerts_by_severity(
    db: AsyncSession,
    statuses: Iterable[AlertStatus],
) -> dict[AlertSeverity, int]:
    """Alert counts per severity among ``statuses``; absent severities omitted."""
    result = await db.execute(
        select(Alert.severity, func.count(Alert.id))
        .where(Alert.status.in_(list(statuses)))
        .group_by(Alert.severity)
    )
    return {severity: count for severity, count in result.all()}


async def find_top_drivers(
    db: AsyncSession,
    statuses: Iterable[AlertStatus],
    limit: int,
) -> list[tuple[str, int]]:
    """Drivers with the most alerts among ``statuses``, as (driver_id, count).

    Ties are broken by driver id so the order is stable.
    """
    alert_count = func.count(Alert.id).label("alert_count")
    result = await db.execute(
        select(Alert.driver_id, alert_count)
        .where(Alert.status.in_(list(statuses)), Alert.driver_id.is_not(None))
        .group_by(Alert.driver_id)
        .order_by(alert_count.desc(), Alert.driver_id.asc())
        .limit(limit)
    )
    return [(driver_id, count) for driver_id, count in result.all()]


async def count_driver_alerts_by_severity(
    db: AsyncSession,
    driver_ids: Iterable[str],
    statuses: Iterable[AlertStatus],
) -> dict[str, dict[AlertSeverity, int]]:
    """Per-driver severity breakdown among ``statuses``."""
    driver_ids = list(driver_ids)
    if not driver_ids:
        return {}

    result = await db.execute(
        select(Alert.driver_id, Alert.severity, func.count(Alert.id))
        .where(
            Alert.driver_id.in_(driver_ids),
            Alert.status.in_(list(statuses)),
        )
        .group_by(Alert.driver_id, Alert.severity)
    )
    breakdown: dict[str, dict[AlertSeverity, int]] = {}
    for driver_id, severity, count in result.all():
        breakdown.setdefault(driver_id, {})[severity] = count
    return breakdown


async def find_auto_closed_since(db: AsyncSession, since: datetime) -> list[Alert]:
    """AUTO_CLOSED alerts closed at or after ``since``, most recent first."""
    result = await db.execute(
        select(Alert)
        .where(
            Alert.status == AlertStatus.AUTO_CLOSED,
            Alert.closed_at >= since,
        )
        .order_by(Alert.closed_at.desc())
    )
    return list(result.scalars().all())


async def find_history_since(db: AsyncSession, since: datetime) -> list[AlertHistory]:
    """Audit entries recorded at or after ``since``, newest first."""
    result = await db.execute(
        select(AlertHistory)
        .where(AlertHistory.timestamp >= since)
        .order_by(AlertHistory.timestamp.desc())
    )
    return list(result.scalars().all())


async def count_history_events_since(
    db: AsyncSession,
    since: datetime,
) -> dict[HistoryEventType, int]:
    """Audit entry counts per event type since ``since``."""
    result = await db.execute(
        select(AlertHistory.event_type, func.count(AlertHistory.id))
        .where(AlertHistory.timestamp >= since)
        .group_by(AlertHistory.event_type)
    )
    return {event_type: count for event_type, count in result.all()}
