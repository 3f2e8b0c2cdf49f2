"""Alert entity and its lifecycle state machine.

An alert is one ingested incident from an upstream monitoring module.
Status only moves forward:

    OPEN -> ESCALATED -> AUTO_CLOSED | RESOLVED
    OPEN -> AUTO_CLOSED | RESOLVED

AUTO_CLOSED and RESOLVED are terminal. The state-machine methods mutate the
in-memory entity only; persisting the change and writing the audit entry is
the caller's job.
"""

import enum
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import JSON, Enum, Index, Integer, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from fleet_alerts.models.base import Base, TimestampMixin, UTCDateTime

SYSTEM_ACTOR = "SYSTEM"

# Reserved metadata key used by condition-based auto-close
CONDITION_METADATA_KEY = "condition"


class AlertType(str, enum.Enum):
    """Type of alert, grouped by the module that raises it."""

    # Safety
    OVERSPEEDING = "OVERSPEEDING"
    HARSH_BRAKING = "HARSH_BRAKING"
    HARSH_ACCELERATION = "HARSH_ACCELERATION"
    ROUTE_DEVIATION = "ROUTE_DEVIATION"

    # Compliance
    COMPLIANCE_DOCUMENT_EXPIRY = "COMPLIANCE_DOCUMENT_EXPIRY"
    COMPLIANCE_LICENSE_INVALID = "COMPLIANCE_LICENSE_INVALID"
    COMPLIANCE_INSURANCE_EXPIRY = "COMPLIANCE_INSURANCE_EXPIRY"

    # Feedback
    FEEDBACK_NEGATIVE = "FEEDBACK_NEGATIVE"
    FEEDBACK_COMPLAINT = "FEEDBACK_COMPLAINT"

    # Maintenance
    MAINTENANCE_OVERDUE = "MAINTENANCE_OVERDUE"
    FUEL_THEFT = "FUEL_THEFT"

    @property
    def source_module(self) -> str:
        return _SOURCE_MODULES[self]

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]


_SOURCE_MODULES = {
    AlertType.OVERSPEEDING: "Safety",
    AlertType.HARSH_BRAKING: "Safety",
    AlertType.HARSH_ACCELERATION: "Safety",
    AlertType.ROUTE_DEVIATION: "Safety",
    AlertType.COMPLIANCE_DOCUMENT_EXPIRY: "Compliance",
    AlertType.COMPLIANCE_LICENSE_INVALID: "Compliance",
    AlertType.COMPLIANCE_INSURANCE_EXPIRY: "Compliance",
    AlertType.FEEDBACK_NEGATIVE: "Feedback",
    AlertType.FEEDBACK_COMPLAINT: "Feedback",
    AlertType.MAINTENANCE_OVERDUE: "Maintenance",
    AlertType.FUEL_THEFT: "Maintenance",
}

_DESCRIPTIONS = {
    AlertType.OVERSPEEDING: "Vehicle exceeded speed limit",
    AlertType.HARSH_BRAKING: "Harsh braking detected",
    AlertType.HARSH_ACCELERATION: "Harsh acceleration detected",
    AlertType.ROUTE_DEVIATION: "Vehicle deviated from route",
    AlertType.COMPLIANCE_DOCUMENT_EXPIRY: "Document expiring or expired",
    AlertType.COMPLIANCE_LICENSE_INVALID: "Invalid or expired license",
    AlertType.COMPLIANCE_INSURANCE_EXPIRY: "Insurance expiring",
    AlertType.FEEDBACK_NEGATIVE: "Negative feedback received",
    AlertType.FEEDBACK_COMPLAINT: "Complaint filed",
    AlertType.MAINTENANCE_OVERDUE: "Maintenance overdue",
    AlertType.FUEL_THEFT: "Potential fuel theft detected",
}


class AlertSeverity(str, enum.Enum):
    """Severity level, ordered INFO < WARNING < CRITICAL."""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANKS[self]

    def is_more_severe_than(self, other: "AlertSeverity") -> bool:
        return self.rank > other.rank


_SEVERITY_RANKS = {
    AlertSeverity.INFO: 1,
    AlertSeverity.WARNING: 2,
    AlertSeverity.CRITICAL: 3,
}


class AlertStatus(str, enum.Enum):
    """Lifecycle state of an alert."""

    OPEN = "OPEN"
    ESCALATED = "ESCALATED"
    AUTO_CLOSED = "AUTO_CLOSED"
    RESOLVED = "RESOLVED"

    @property
    def is_active(self) -> bool:
        return self in (AlertStatus.OPEN, AlertStatus.ESCALATED)

    @property
    def is_closed(self) -> bool:
        return self in (AlertStatus.AUTO_CLOSED, AlertStatus.RESOLVED)


ACTIVE_STATUSES = (AlertStatus.OPEN, AlertStatus.ESCALATED)


class InvalidStateTransitionError(Exception):
    """Raised when a lifecycle operation is not legal from the current status."""

    def __init__(self, alert_id: Any, current_status: AlertStatus, action: str):
        self.alert_id = alert_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} alert {alert_id} in status {current_status.value}"
        )


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda e: [member.value for member in e],
    )


class Alert(TimestampMixin, Base):
    """Stores ingested alerts and their lifecycle state.

    The ``version`` column is SQLAlchemy's version counter: every UPDATE
    bumps it and fails with ``StaleDataError`` when the row was changed by
    someone else since it was loaded.
    """

    __tablename__ = "alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    alert_type: Mapped[AlertType] = mapped_column(
        _enum_column(AlertType, "alerttype"),
        nullable=False,
    )

    severity: Mapped[AlertSeverity] = mapped_column(
        _enum_column(AlertSeverity, "alertseverity"),
        nullable=False,
    )

    status: Mapped[AlertStatus] = mapped_column(
        _enum_column(AlertStatus, "alertstatus"),
        nullable=False,
        default=AlertStatus.OPEN,
    )

    # Event time; defaults to creation time
    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    # Correlation keys
    driver_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    vehicle_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    route_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    escalated_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    escalation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    closure_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # Operator identity, or SYSTEM for auto-close
    closed_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_alerts_status", "status"),
        Index("ix_alerts_alert_type", "alert_type"),
        Index("ix_alerts_driver_id", "driver_id"),
        Index("ix_alerts_timestamp", "timestamp"),
        Index("ix_alerts_severity", "severity"),
    )

    def escalate(
        self,
        new_severity: AlertSeverity,
        reason: str,
        now: datetime | None = None,
    ) -> None:
        """Move the alert to ESCALATED.

        Re-escalating an ESCALATED alert is legal. Severity never goes down
        through this path, and ``escalated_at`` keeps the first escalation time.

        Raises:
            InvalidStateTransitionError: If the alert is closed.
        """
        if not self.status.is_active:
            raise InvalidStateTransitionError(self.id, self.status, "escalate")

        self.status = AlertStatus.ESCALATED
        if self.severity is None or new_severity.is_more_severe_than(self.severity):
            self.severity = new_severity
        if self.escalated_at is None:
            self.escalated_at = now or datetime.now(UTC)
        self.escalation_reason = reason

    def auto_close(self, reason: str, now: datetime | None = None) -> None:
        """Close the alert on behalf of the system. No-op if already closed."""
        self._close(AlertStatus.AUTO_CLOSED, SYSTEM_ACTOR, reason, now, "auto-close")

    def resolve(self, actor_id: str, reason: str, now: datetime | None = None) -> None:
        """Close the alert on behalf of an operator. No-op if already closed."""
        self._close(AlertStatus.RESOLVED, actor_id, reason, now, "resolve")

    def _close(
        self,
        target: AlertStatus,
        closed_by: str,
        reason: str,
        now: datetime | None,
        action: str,
    ) -> None:
        if self.status.is_closed:
            return
        if not self.status.is_active:
            raise InvalidStateTransitionError(self.id, self.status, action)

        self.status = target
        self.closed_at = now or datetime.now(UTC)
        self.closure_reason = reason
        self.closed_by = closed_by

    def is_expired(self, window_minutes: int, now: datetime | None = None) -> bool:
        """True once more than ``window_minutes`` have passed since the event."""
        now = now or datetime.now(UTC)
        return now > self.timestamp + timedelta(minutes=window_minutes)

    @property
    def condition(self) -> str | None:
        value = (self.metadata_ or {}).get(CONDITION_METADATA_KEY)
        return None if value is None else str(value)

    def set_metadata(self, key: str, value: Any) -> None:
        # Reassign so the JSON column is flagged dirty
        self.metadata_ = {**(self.metadata_ or {}), key: value}

    def __repr__(self) -> str:
        return (
            f"<Alert(id={self.id}, type={self.alert_type.value}, "
            f"severity={self.severity.value}, status={self.status.value})>"
        )
