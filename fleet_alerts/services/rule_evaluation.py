"""Evaluation orchestrator: applies rule engine decisions to stored alerts.

Evaluation runs in the caller's session inside a SAVEPOINT. The triggering
write (alert creation, condition update) is therefore always visible to
the evaluation, and a failing evaluation only rolls back its own savepoint.
Every failure is logged and swallowed here; alert ingestion and condition
updates never fail because of rule evaluation.

Each escalated alert gets its own nested savepoint, so an optimistic
concurrency conflict on one alert does not undo the others.
"""

import uuid
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from fleet_alerts.logging_config import get_logger
from fleet_alerts.models.alert import Alert, AlertStatus
from fleet_alerts.models.alert_history import AlertHistory
from fleet_alerts.services.alert_store import (
    append_history,
    find_recent_alerts,
    get_alert,
    save_alert,
)
from fleet_alerts.services.rule_engine import (
    EscalationDecision,
    evaluate_auto_close,
    evaluate_escalation,
)
from fleet_alerts.services.rule_loader import RuleSet, get_active_rules

logger = get_logger(__name__)


async def _escalate_one(
    db: AsyncSession,
    alert_id: uuid.UUID,
    decision: EscalationDecision,
    now: datetime,
) -> bool:
    """Escalate a single alert from a fresh read.

    Returns:
        True if the alert moved to ESCALATED, False if it was skipped.
    """
    log = logger.bind(alert_id=str(alert_id))
    try:
        async with db.begin_nested():
            alert = await get_alert(db, alert_id)
            if alert is None:
                log.warning("Alert not found, skipping escalation")
                return False

            # Already escalated alerts keep their first escalation
            if not alert.status.is_active or alert.status == AlertStatus.ESCALATED:
                return False

            previous_status = alert.status
            alert.escalate(decision.new_severity, decision.reason, now=now)
            await save_alert(db, alert)
            await append_history(
                db,
                AlertHistory.for_escalation(alert.id, previous_status, decision.reason),
            )
    except StaleDataError:
        log.warning("Alert changed concurrently, skipping escalation")
        return False

    log.info(
        "Escalated alert",
        severity=decision.new_severity,
        reason=decision.reason,
    )
    return True


async def evaluate_and_escalate_if_needed(
    db: AsyncSession,
    alert: Alert,
    rules: RuleSet | None = None,
    now: datetime | None = None,
) -> list[uuid.UUID]:
    """Run escalation rules after ``alert`` was created.

    Escalates every still-OPEN alert of the same type and driver inside the
    rule window, including the triggering one. Never raises.

    Args:
        db: Session that created the alert (not yet committed is fine).
        alert: The newly created alert.
        rules: Rule snapshot; defaults to the active one.
        now: Evaluation time; defaults to the current UTC time.

    Returns:
        Ids of the alerts that were escalated.
    """
    rules = rules if rules is not None else get_active_rules()
    now = now or datetime.now(UTC)
    alert_id = alert.id
    escalated: list[uuid.UUID] = []

    try:
        async with db.begin_nested():
            current = await get_alert(db, alert_id)
            if current is None:
                logger.warning(
                    "Alert not found, skipping escalation evaluation",
                    alert_id=str(alert_id),
                )
                return []

            rule = rules.get(current.alert_type)
            if rule is None:
                logger.debug(
                    "No rule found for alert type",
                    alert_type=current.alert_type.value,
                )
                return []

            window_start = now - timedelta(minutes=rule.escalation_window_minutes)
            candidates = await find_recent_alerts(
                db, current.alert_type, current.driver_id, window_start
            )
            if not any(candidate.id == alert_id for candidate in candidates):
                candidates.append(current)

            decision = evaluate_escalation(
                current.alert_type, candidates, rules=rules, now=now
            )
            if not decision.should_escalate:
                logger.debug(
                    "No escalation needed",
                    alert_id=str(alert_id),
                    reason=decision.reason,
                )
                return []

            candidate_ids = [candidate.id for candidate in candidates]
            for candidate_id in candidate_ids:
                if await _escalate_one(db, candidate_id, decision, now):
                    escalated.append(candidate_id)

        if escalated:
            logger.info(
                "Escalation applied",
                alert_id=str(alert_id),
                escalated_count=len(escalated),
                candidate_count=len(candidate_ids),
            )
        return escalated

    except Exception as e:
        logger.exception(
            "Error evaluating escalation for alert",
            alert_id=str(alert_id),
            error=str(e),
        )
        return []


async def evaluate_auto_close_if_needed(
    db: AsyncSession,
    alert_id: uuid.UUID,
    rules: RuleSet | None = None,
    now: datetime | None = None,
) -> bool:
    """Auto-close one alert if its rule says so. Never raises.

    The repeat window is anchored to the alert's own timestamp: only alerts
    of the same type and driver at or after it are considered.

    Returns:
        True if the alert was auto-closed by this call.
    """
    rules = rules if rules is not None else get_active_rules()
    now = now or datetime.now(UTC)

    try:
        async with db.begin_nested():
            alert = await get_alert(db, alert_id)
            if alert is None:
                logger.warning(
                    "Alert not found, skipping auto-close evaluation",
                    alert_id=str(alert_id),
                )
                return False

            if alert.status.is_closed:
                logger.debug("Alert is already closed", alert_id=str(alert_id))
                return False

            if rules.get(alert.alert_type) is None:
                return False

            candidates = await find_recent_alerts(
                db, alert.alert_type, alert.driver_id, alert.timestamp
            )
            decision = evaluate_auto_close(alert, candidates, rules=rules, now=now)
            if not decision.should_close:
                logger.debug(
                    "No auto-close needed",
                    alert_id=str(alert_id),
                    reason=decision.reason,
                )
                return False

            previous_status = alert.status
            alert.auto_close(decision.reason, now=now)
            await save_alert(db, alert)
            await append_history(
                db,
                AlertHistory.for_auto_closure(alert.id, previous_status, decision.reason),
            )

        logger.info(
            "Auto-closed alert",
            alert_id=str(alert_id),
            reason=decision.reason,
        )
        return True

    except Exception as e:
        logger.exception(
            "Error evaluating auto-close for alert",
            alert_id=str(alert_id),
            error=str(e),
        )
        return False


async def batch_evaluate_auto_close(
    db: AsyncSession,
    alerts: Sequence[Alert],
    rules: RuleSet | None = None,
    now: datetime | None = None,
) -> int:
    """Run the auto-close check over a batch of alerts and commit.

    A failure on one alert is logged and the rest of the batch still runs.
    Safe to repeat: closed alerts are skipped.

    Args:
        db: Session dedicated to this batch.
        alerts: Alerts to evaluate; only their id and status are read.
        rules: Rule snapshot; defaults to the active one.
        now: Evaluation time; defaults to the current UTC time.

    Returns:
        Number of alerts closed in this batch.
    """
    rules = rules if rules is not None else get_active_rules()
    logger.info("Batch evaluating auto-close", alert_count=len(alerts))

    # A rolled-back savepoint may expire instances loaded in this session
    items = [(alert.id, alert.status) for alert in alerts]

    closed_count = 0
    for alert_id, status_before in items:
        try:
            await evaluate_auto_close_if_needed(db, alert_id, rules=rules, now=now)

            refreshed = await get_alert(db, alert_id)
            if (
                refreshed is not None
                and status_before.is_active
                and refreshed.status.is_closed
            ):
                closed_count += 1
        except Exception as e:
            logger.error(
                "Error in batch auto-close for alert",
                alert_id=str(alert_id),
                error=str(e),
            )

    await db.commit()

    logger.info(
        "Batch auto-close completed",
        closed_count=closed_count,
        evaluated_count=len(alerts),
    )
    return closed_count
