"""Alert schemas.

Request and response bodies of the alert and admin APIs.
"""

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fleet_alerts.models.alert import AlertSeverity, AlertStatus, AlertType
from fleet_alerts.models.alert_history import HistoryEventType


class AlertCreateRequest(BaseModel):
    """Incoming alert from an upstream monitoring module."""

    alert_type: AlertType
    severity: AlertSeverity
    timestamp: datetime | None = Field(
        default=None,
        description="Event time; defaults to the time of ingestion",
    )
    driver_id: str | None = Field(default=None, max_length=100)
    vehicle_id: str | None = Field(default=None, max_length=100)
    route_id: str | None = Field(default=None, max_length=100)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_aware(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            raise ValueError("timestamp must include a timezone offset")
        return v


class EscalateRequest(BaseModel):
    """Manual escalation by an operator."""

    severity: AlertSeverity
    reason: str = Field(..., min_length=1, max_length=500)
    actor_id: str = Field(..., min_length=1, max_length=100)


class ResolveRequest(BaseModel):
    """Manual resolution by an operator."""

    actor_id: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(default="Resolved by operator", max_length=500)


class ConditionUpdateRequest(BaseModel):
    """New value of the alert's ``condition`` metadata entry."""

    condition: str = Field(..., min_length=1, max_length=200)


class AlertResponse(BaseModel):
    """Single alert response."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    alert_type: AlertType
    source_module: str
    severity: AlertSeverity
    status: AlertStatus
    timestamp: datetime
    driver_id: str | None
    vehicle_id: str | None
    route_id: str | None
    metadata: dict[str, Any]
    escalated_at: datetime | None
    escalation_reason: str | None
    closed_at: datetime | None
    closure_reason: str | None
    closed_by: str | None
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_alert(cls, alert: Any) -> "AlertResponse":
        return cls(
            id=alert.id,
            alert_type=alert.alert_type,
            source_module=alert.alert_type.source_module,
            severity=alert.severity,
            status=alert.status,
            timestamp=alert.timestamp,
            driver_id=alert.driver_id,
            vehicle_id=alert.vehicle_id,
            route_id=alert.route_id,
            metadata=dict(alert.metadata_ or {}),
            escalated_at=alert.escalated_at,
            escalation_reason=alert.escalation_reason,
            closed_at=alert.closed_at,
            closure_reason=alert.closure_reason,
            closed_by=alert.closed_by,
            version=alert.version,
            created_at=alert.created_at,
            updated_at=alert.updated_at,
        )


class AlertListResponse(BaseModel):
    """Response for listing alerts."""

    alerts: list[AlertResponse]
    count: int


class AlertHistoryResponse(BaseModel):
    """One audit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    alert_id: uuid.UUID
    from_status: AlertStatus | None
    to_status: AlertStatus
    timestamp: datetime
    reason: str | None
    changed_by: str
    event_type: HistoryEventType


class AlertHistoryListResponse(BaseModel):
    """Audit trail of one alert, oldest first."""

    history: list[AlertHistoryResponse]
    count: int


class SweepResponse(BaseModel):
    """Outcome of one auto-close sweep."""

    processed: int
    closed: int
    failed_batches: int
    duration_ms: int
    skipped: bool
