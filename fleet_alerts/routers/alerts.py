"""Alert endpoints.

Thin HTTP layer over the alert service. Operators identify themselves
with ``actor_id`` in the request body.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from fleet_alerts.database import get_db
from fleet_alerts.logging_config import get_logger
from fleet_alerts.models.alert import AlertStatus, AlertType, InvalidStateTransitionError
from fleet_alerts.schemas.alert import (
    AlertCreateRequest,
    AlertHistoryListResponse,
    AlertHistoryResponse,
    AlertListResponse,
    AlertResponse,
    ConditionUpdateRequest,
    EscalateRequest,
    ResolveRequest,
)
from fleet_alerts.services.alert_service import (
    AlertNotFoundError,
    AlertValidationError,
    count_alerts_by_status,
    create_alert,
    escalate_alert_manually,
    get_alert_or_raise,
    get_history,
    list_active_alerts,
    list_alerts,
    resolve_alert,
    update_alert_condition,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


def _not_found(exc: AlertNotFoundError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=str(exc),
    )


async def _conflict(db: AsyncSession, alert_id: uuid.UUID) -> HTTPException:
    await db.rollback()
    logger.warning("Concurrent modification of alert", alert_id=str(alert_id))
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Alert was modified concurrently, retry the request",
    )


def _list_response(alerts) -> AlertListResponse:
    return AlertListResponse(
        alerts=[AlertResponse.from_alert(a) for a in alerts],
        count=len(alerts),
    )


@router.post(
    "",
    response_model=AlertResponse,
    status_code=status.HTTP_201_CREATED,
)
async def post_alert(
    data: AlertCreateRequest,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    """Ingest a new alert and apply escalation rules to it."""
    try:
        alert = await create_alert(db, data)
    except AlertValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        ) from exc

    return AlertResponse.from_alert(alert)


@router.get("", response_model=AlertListResponse)
async def get_alerts(
    status_filter: AlertStatus | None = Query(default=None, alias="status"),
    driver_id: str | None = Query(default=None, max_length=100),
    alert_type: AlertType | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> AlertListResponse:
    """List alerts, newest first."""
    alerts = await list_alerts(
        db,
        status=status_filter,
        driver_id=driver_id,
        alert_type=alert_type,
        limit=limit,
    )
    return _list_response(alerts)


@router.get("/active", response_model=AlertListResponse)
async def get_active_alerts(
    db: AsyncSession = Depends(get_db),
) -> AlertListResponse:
    """List OPEN and ESCALATED alerts, oldest first."""
    return _list_response(await list_active_alerts(db))


@router.get("/stats")
async def get_alert_stats(
    db: AsyncSession = Depends(get_db),
) -> dict[str, int]:
    """Number of alerts per status."""
    counts = await count_alerts_by_status(db)
    return {alert_status.value: count for alert_status, count in counts.items()}


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert_by_id(
    alert_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    """Get one alert."""
    try:
        alert = await get_alert_or_raise(db, alert_id)
    except AlertNotFoundError as exc:
        raise _not_found(exc) from exc

    return AlertResponse.from_alert(alert)


@router.post("/{alert_id}/escalate", response_model=AlertResponse)
async def escalate_alert(
    alert_id: uuid.UUID,
    data: EscalateRequest,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    """Escalate an alert manually.

    Returns 409 if the alert is already closed.
    """
    try:
        alert = await escalate_alert_manually(
            db, alert_id, data.severity, data.reason, data.actor_id
        )
    except AlertNotFoundError as exc:
        raise _not_found(exc) from exc
    except InvalidStateTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except StaleDataError as exc:
        raise await _conflict(db, alert_id) from exc

    return AlertResponse.from_alert(alert)


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve(
    alert_id: uuid.UUID,
    data: ResolveRequest,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    """Resolve an alert. Resolving a closed alert returns it unchanged."""
    try:
        alert = await resolve_alert(db, alert_id, data.actor_id, data.reason)
    except AlertNotFoundError as exc:
        raise _not_found(exc) from exc
    except StaleDataError as exc:
        raise await _conflict(db, alert_id) from exc

    return AlertResponse.from_alert(alert)


@router.patch("/{alert_id}/condition", response_model=AlertResponse)
async def update_condition(
    alert_id: uuid.UUID,
    data: ConditionUpdateRequest,
    db: AsyncSession = Depends(get_db),
) -> AlertResponse:
    """Record the alert's current condition and apply auto-close rules."""
    try:
        alert = await update_alert_condition(db, alert_id, data.condition)
    except AlertNotFoundError as exc:
        raise _not_found(exc) from exc
    except StaleDataError as exc:
        raise await _conflict(db, alert_id) from exc

    return AlertResponse.from_alert(alert)


@router.get("/{alert_id}/history", response_model=AlertHistoryListResponse)
async def get_alert_history(
    alert_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
) -> AlertHistoryListResponse:
    """Audit trail of an alert, oldest first."""
    try:
        entries = await get_history(db, alert_id)
    except AlertNotFoundError as exc:
        raise _not_found(exc) from exc

    return AlertHistoryListResponse(
        history=[AlertHistoryResponse.model_validate(e) for e in entries],
        count=len(entries),
    )
