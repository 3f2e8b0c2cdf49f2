# Business Logic Services
from fleet_alerts.services.alert_service import (
    AlertNotFoundError,
    AlertValidationError,
    create_alert,
    escalate_alert_manually,
    resolve_alert,
    update_alert_condition,
)
from fleet_alerts.services.rule_loader import (
    RuleConfigError,
    get_active_rules,
    get_rule_registry,
)
from fleet_alerts.services.scheduler import (
    AutoCloseSweep,
    SweepResult,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "AlertNotFoundError",
    "AlertValidationError",
    "create_alert",
    "escalate_alert_manually",
    "resolve_alert",
    "update_alert_condition",
    "RuleConfigError",
    "get_active_rules",
    "get_rule_registry",
    "AutoCloseSweep",
    "SweepResult",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
