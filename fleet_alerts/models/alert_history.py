"""Append-only audit trail of alert status transitions.

One entry is written per transition; entries are never updated. Only the
data retention job deletes them.
"""

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import Enum, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from fleet_alerts.models.alert import SYSTEM_ACTOR, AlertStatus
from fleet_alerts.models.base import Base, UTCDateTime


class HistoryEventType(str, enum.Enum):
    """Kind of lifecycle event recorded in the history."""

    CREATED = "CREATED"
    ESCALATED = "ESCALATED"
    AUTO_CLOSED = "AUTO_CLOSED"
    RESOLVED = "RESOLVED"


def _status_column() -> Enum:
    return Enum(
        AlertStatus,
        name="alertstatus",
        native_enum=False,
        length=32,
        values_callable=lambda e: [member.value for member in e],
    )


class AlertHistory(Base):
    """Records a single status transition of an alert."""

    __tablename__ = "alert_history"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )

    alert_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("alerts.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Null only for the creation entry
    from_status: Mapped[AlertStatus | None] = mapped_column(
        _status_column(),
        nullable=True,
    )

    to_status: Mapped[AlertStatus] = mapped_column(
        _status_column(),
        nullable=False,
    )

    timestamp: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    changed_by: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default=SYSTEM_ACTOR,
    )

    event_type: Mapped[HistoryEventType] = mapped_column(
        Enum(
            HistoryEventType,
            name="historyeventtype",
            native_enum=False,
            length=32,
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_alert_history_alert_id", "alert_id"),
        Index("ix_alert_history_timestamp", "timestamp"),
    )

    @classmethod
    def for_creation(cls, alert_id: uuid.UUID) -> "AlertHistory":
        return cls(
            alert_id=alert_id,
            from_status=None,
            to_status=AlertStatus.OPEN,
            timestamp=datetime.now(UTC),
            reason="Alert created",
            changed_by=SYSTEM_ACTOR,
            event_type=HistoryEventType.CREATED,
        )

    @classmethod
    def for_escalation(
        cls,
        alert_id: uuid.UUID,
        from_status: AlertStatus,
        reason: str,
        changed_by: str = SYSTEM_ACTOR,
    ) -> "AlertHistory":
        return cls(
            alert_id=alert_id,
            from_status=from_status,
            to_status=AlertStatus.ESCALATED,
            timestamp=datetime.now(UTC),
            reason=reason,
            changed_by=changed_by,
            event_type=HistoryEventType.ESCALATED,
        )

    @classmethod
    def for_auto_closure(
        cls,
        alert_id: uuid.UUID,
        from_status: AlertStatus,
        reason: str,
    ) -> "AlertHistory":
        return cls(
            alert_id=alert_id,
            from_status=from_status,
            to_status=AlertStatus.AUTO_CLOSED,
            timestamp=datetime.now(UTC),
            reason=reason,
            changed_by=SYSTEM_ACTOR,
            event_type=HistoryEventType.AUTO_CLOSED,
        )

    @classmethod
    def for_resolution(
        cls,
        alert_id: uuid.UUID,
        from_status: AlertStatus,
        actor_id: str,
        reason: str,
    ) -> "AlertHistory":
        return cls(
            alert_id=alert_id,
            from_status=from_status,
            to_status=AlertStatus.RESOLVED,
            timestamp=datetime.now(UTC),
            reason=reason,
            changed_by=actor_id,
            event_type=HistoryEventType.RESOLVED,
        )

    def __repr__(self) -> str:
        return (
            f"<AlertHistory(alert={self.alert_id}, "
            f"event={self.event_type.value}, to={self.to_status.value})>"
        )
