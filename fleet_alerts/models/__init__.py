# Database Models
from fleet_alerts.models.alert import (
    ACTIVE_STATUSES,
    SYSTEM_ACTOR,
    Alert,
    AlertSeverity,
    AlertStatus,
    AlertType,
    InvalidStateTransitionError,
)
from fleet_alerts.models.alert_history import AlertHistory, HistoryEventType
from fleet_alerts.models.base import Base, TimestampMixin, UTCDateTime

__all__ = [
    "ACTIVE_STATUSES",
    "Alert",
    "AlertHistory",
    "AlertSeverity",
    "AlertStatus",
    "AlertType",
    "Base",
    "HistoryEventType",
    "InvalidStateTransitionError",
    "SYSTEM_ACTOR",
    "TimestampMixin",
    "UTCDateTime",
]
