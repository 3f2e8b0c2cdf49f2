"""Alert service.

Request-facing alert operations. Each public function is one unit of work
and commits on success. Rule evaluation triggered by a create or a
condition update runs in the same session under its own SAVEPOINT, so it
always sees the triggering write and can never roll it back.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_alerts.logging_config import get_logger
from fleet_alerts.models.alert import (
    ACTIVE_STATUSES,
    CONDITION_METADATA_KEY,
    Alert,
    AlertSeverity,
    AlertStatus,
    AlertType,
)
from fleet_alerts.models.alert_history import AlertHistory
from fleet_alerts.schemas.alert import AlertCreateRequest
from fleet_alerts.services.alert_store import (
    append_history,
    find_alerts,
    find_alerts_by_status,
    get_alert,
    get_alert_history,
    insert_alert,
    save_alert,
)
from fleet_alerts.services.rule_evaluation import (
    evaluate_and_escalate_if_needed,
    evaluate_auto_close_if_needed,
)

logger = get_logger(__name__)


class AlertNotFoundError(Exception):
    """Raised when no alert exists with the given id."""

    def __init__(self, alert_id: uuid.UUID):
        self.alert_id = alert_id
        super().__init__(f"Alert not found: {alert_id}")


class AlertValidationError(Exception):
    """Raised when create input is not a valid alert."""


async def _reload(db: AsyncSession, alert: Alert) -> Alert:
    # Savepoint rollbacks expire instances; load everything back eagerly
    await db.refresh(alert)
    return alert


async def create_alert(
    db: AsyncSession,
    request: AlertCreateRequest,
) -> Alert:
    """Persist a new OPEN alert and run escalation rules for it.

    The alert is committed even if rule evaluation fails.

    Raises:
        AlertValidationError: If the timestamp carries no timezone.
    """
    if request.timestamp is not None and request.timestamp.tzinfo is None:
        raise AlertValidationError("Alert timestamp must be timezone-aware")

    alert = Alert(
        alert_type=request.alert_type,
        severity=request.severity,
        status=AlertStatus.OPEN,
        timestamp=request.timestamp or datetime.now(UTC),
        driver_id=request.driver_id,
        vehicle_id=request.vehicle_id,
        route_id=request.route_id,
        metadata_=dict(request.metadata),
    )
    await insert_alert(db, alert)
    await append_history(db, AlertHistory.for_creation(alert.id))

    logger.info(
        "Created alert",
        alert_id=str(alert.id),
        alert_type=alert.alert_type.value,
        severity=alert.severity.value,
        driver_id=alert.driver_id,
    )

    await evaluate_and_escalate_if_needed(db, alert)

    await db.commit()
    return await _reload(db, alert)


async def get_alert_or_raise(db: AsyncSession, alert_id: uuid.UUID) -> Alert:
    """Fetch an alert by id.

    Raises:
        AlertNotFoundError: If the alert does not exist.
    """
    alert = await get_alert(db, alert_id)
    if alert is None:
        raise AlertNotFoundError(alert_id)
    return alert


async def list_alerts(
    db: AsyncSession,
    status: AlertStatus | None = None,
    driver_id: str | None = None,
    alert_type: AlertType | None = None,
    limit: int | None = None,
) -> list[Alert]:
    """List alerts, newest first, with optional filters."""
    return await find_alerts(
        db,
        status=status,
        driver_id=driver_id,
        alert_type=alert_type,
        limit=limit,
    )


async def list_active_alerts(db: AsyncSession) -> list[Alert]:
    """All OPEN and ESCALATED alerts, oldest first."""
    return await find_alerts_by_status(db, ACTIVE_STATUSES)


async def count_alerts_by_status(db: AsyncSession) -> dict[AlertStatus, int]:
    """Number of alerts per status; every status is present."""
    result = await db.execute(
        select(Alert.status, func.count(Alert.id)).group_by(Alert.status)
    )
    counts = {status: 0 for status in AlertStatus}
    for status, count in result.all():
        counts[status] = count
    return counts


async def resolve_alert(
    db: AsyncSession,
    alert_id: uuid.UUID,
    actor_id: str,
    reason: str,
) -> Alert:
    """Close an alert on behalf of an operator.

    Resolving an already closed alert returns it unchanged.

    Raises:
        AlertNotFoundError: If the alert does not exist.
        sqlalchemy.orm.exc.StaleDataError: If the alert changed concurrently.
    """
    alert = await get_alert_or_raise(db, alert_id)

    if alert.status.is_closed:
        logger.info(
            "Alert already closed, resolve ignored",
            alert_id=str(alert_id),
            status=alert.status.value,
        )
        return alert

    previous_status = alert.status
    alert.resolve(actor_id, reason)
    await save_alert(db, alert)
    await append_history(
        db,
        AlertHistory.for_resolution(alert.id, previous_status, actor_id, reason),
    )
    await db.commit()

    logger.info(
        "Resolved alert",
        alert_id=str(alert_id),
        actor_id=actor_id,
        previous_status=previous_status.value,
    )
    return await _reload(db, alert)


async def escalate_alert_manually(
    db: AsyncSession,
    alert_id: uuid.UUID,
    severity: AlertSeverity,
    reason: str,
    actor_id: str,
) -> Alert:
    """Escalate an alert on behalf of an operator.

    Raises:
        AlertNotFoundError: If the alert does not exist.
        InvalidStateTransitionError: If the alert is already closed.
        sqlalchemy.orm.exc.StaleDataError: If the alert changed concurrently.
    """
    alert = await get_alert_or_raise(db, alert_id)

    previous_status = alert.status
    alert.escalate(severity, reason)
    await save_alert(db, alert)
    await append_history(
        db,
        AlertHistory.for_escalation(
            alert.id, previous_status, reason, changed_by=actor_id
        ),
    )
    await db.commit()

    logger.info(
        "Manually escalated alert",
        alert_id=str(alert_id),
        actor_id=actor_id,
        severity=alert.severity.value,
    )
    return await _reload(db, alert)


async def update_alert_condition(
    db: AsyncSession,
    alert_id: uuid.UUID,
    condition: str,
) -> Alert:
    """Record the alert's current condition and run auto-close rules.

    The condition update is committed even if rule evaluation fails.

    Raises:
        AlertNotFoundError: If the alert does not exist.
        sqlalchemy.orm.exc.StaleDataError: If the alert changed concurrently.
    """
    alert = await get_alert_or_raise(db, alert_id)

    alert.set_metadata(CONDITION_METADATA_KEY, condition)
    await save_alert(db, alert)

    logger.info(
        "Updated alert condition",
        alert_id=str(alert_id),
        condition=condition,
    )

    await evaluate_auto_close_if_needed(db, alert_id)

    await db.commit()
    return await _reload(db, alert)


async def get_history(db: AsyncSession, alert_id: uuid.UUID) -> list[AlertHistory]:
    """Audit trail of an alert, oldest first.

    Raises:
        AlertNotFoundError: If the alert does not exist.
    """
    await get_alert_or_raise(db, alert_id)
    return await get_alert_history(db, alert_id)
