"""Rule engine: stateless escalation and auto-close decisions.

Both entry points are pure functions of the rule snapshot, the alert (or
alert type), the candidate alerts supplied by the caller and the current
time. They never touch the database and never raise for unknown types.

All time arithmetic is done on alert timestamps, never on list order, so
decisions do not depend on how the candidates were fetched.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fleet_alerts.logging_config import get_logger
from fleet_alerts.models.alert import Alert, AlertSeverity, AlertType
from fleet_alerts.services.rule_loader import RuleSet, get_active_rules

logger = get_logger(__name__)


@dataclass(frozen=True)
class EscalationDecision:
    """Decision about whether to escalate a group of alerts."""

    should_escalate: bool
    new_severity: AlertSeverity | None
    reason: str

    @classmethod
    def escalate(cls, severity: AlertSeverity, reason: str) -> "EscalationDecision":
        return cls(should_escalate=True, new_severity=severity, reason=reason)

    @classmethod
    def no_escalation(cls, reason: str) -> "EscalationDecision":
        return cls(should_escalate=False, new_severity=None, reason=reason)


@dataclass(frozen=True)
class AutoCloseDecision:
    """Decision about whether to auto-close one alert."""

    should_close: bool
    reason: str

    @classmethod
    def close(cls, reason: str) -> "AutoCloseDecision":
        return cls(should_close=True, reason=reason)

    @classmethod
    def no_close(cls, reason: str) -> "AutoCloseDecision":
        return cls(should_close=False, reason=reason)


def _minutes_between(earlier: datetime, later: datetime) -> int:
    """Whole minutes elapsed from ``earlier`` to ``later``."""
    return int((later - earlier).total_seconds() // 60)


def evaluate_escalation(
    alert_type: AlertType,
    recent_alerts: Sequence[Alert],
    rules: RuleSet | None = None,
    now: datetime | None = None,
) -> EscalationDecision:
    """Decide whether a burst of same-type alerts should escalate.

    Args:
        alert_type: Type shared by all candidates.
        recent_alerts: Same-type, same-driver alerts, in any order.
        rules: Rule snapshot; defaults to the active one.
        now: Evaluation time; defaults to the current UTC time.

    Returns:
        EscalationDecision. The reason of a positive decision states the
        count, the type, the observed span and the configured threshold.
    """
    rules = rules if rules is not None else get_active_rules()
    now = now or datetime.now(UTC)

    rule = rules.get(alert_type)
    if rule is None:
        logger.debug("No rule configured", alert_type=alert_type.value)
        return EscalationDecision.no_escalation("No rule configured")

    if not rule.enabled:
        return EscalationDecision.no_escalation("Rule is disabled")

    if not rule.has_escalation_criteria:
        return EscalationDecision.no_escalation("No escalation criteria configured")

    window_minutes = rule.escalation_window_minutes
    window_start = now - timedelta(minutes=window_minutes)
    timestamps = sorted(
        alert.timestamp for alert in recent_alerts if alert.timestamp >= window_start
    )
    alert_count = len(timestamps)

    if alert_count < rule.escalate_if_count:
        return EscalationDecision.no_escalation(
            f"Count {alert_count} below threshold {rule.escalate_if_count}"
        )

    time_difference_minutes = _minutes_between(timestamps[0], timestamps[-1])

    if rule.should_escalate(alert_count, time_difference_minutes):
        reason = (
            f"{alert_count} occurrences of {alert_type.value} within "
            f"{time_difference_minutes} minutes (threshold: "
            f"{rule.escalate_if_count} in {window_minutes} minutes)"
        )
        logger.info(
            "Escalation triggered",
            alert_type=alert_type.value,
            alert_count=alert_count,
            time_difference_minutes=time_difference_minutes,
        )
        return EscalationDecision.escalate(rule.target_severity, reason)

    return EscalationDecision.no_escalation("Conditions not met")


def evaluate_auto_close(
    alert: Alert,
    recent_alerts: Sequence[Alert],
    rules: RuleSet | None = None,
    now: datetime | None = None,
) -> AutoCloseDecision:
    """Decide whether a single alert should be auto-closed.

    The condition path (``metadata["condition"]`` matching the rule's
    ``autoCloseIf``, case-insensitively) is checked first. The time path
    closes the alert once its own window has elapsed with no later alert
    of the same type and driver.

    Args:
        alert: Alert under evaluation.
        recent_alerts: Same-type, same-driver alerts at or after ``alert.timestamp``.
        rules: Rule snapshot; defaults to the active one.
        now: Evaluation time; defaults to the current UTC time.

    Returns:
        AutoCloseDecision with the closure reason.
    """
    rules = rules if rules is not None else get_active_rules()
    now = now or datetime.now(UTC)

    rule = rules.get(alert.alert_type)
    if rule is None:
        return AutoCloseDecision.no_close("No rule configured")

    if not rule.enabled:
        return AutoCloseDecision.no_close("Rule is disabled")

    if rule.should_auto_close_by_condition(alert.condition):
        reason = f"Condition met: {rule.auto_close_if}"
        logger.info(
            "Auto-close triggered by condition",
            alert_id=str(alert.id),
            condition=rule.auto_close_if,
        )
        return AutoCloseDecision.close(reason)

    if not rule.auto_close_if_no_repeat:
        return AutoCloseDecision.no_close("Conditions not met")

    window_minutes = rule.close_window_minutes
    if now - alert.timestamp < timedelta(minutes=window_minutes):
        return AutoCloseDecision.no_close(
            f"Auto-close window still open ({window_minutes} minutes)"
        )

    has_repeat = any(
        alert.timestamp < candidate.timestamp < now for candidate in recent_alerts
    )
    if has_repeat:
        return AutoCloseDecision.no_close("Repeat alert found within window")

    reason = f"No repeat within {window_minutes} minutes (window expired)"
    logger.info(
        "Auto-close triggered by time window",
        alert_id=str(alert.id),
        window_minutes=window_minutes,
    )
    return AutoCloseDecision.close(reason)
