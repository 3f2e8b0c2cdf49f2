"""Operator endpoints for rules, the auto-close sweep and the audit log."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from fleet_alerts.database import get_db
from fleet_alerts.logging_config import get_logger
from fleet_alerts.schemas.alert import (
    AlertHistoryListResponse,
    AlertHistoryResponse,
    SweepResponse,
)
from fleet_alerts.schemas.escalation_rule import (
    EscalationRule,
    EscalationRuleResponse,
    RuleSetResponse,
)
from fleet_alerts.services.alert_store import get_recent_history
from fleet_alerts.services.rule_loader import (
    RuleConfigError,
    RuleSet,
    get_rule_registry,
)
from fleet_alerts.services.scheduler import get_auto_close_sweep

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _rule_response(rule: EscalationRule) -> EscalationRuleResponse:
    return EscalationRuleResponse(
        alert_type=rule.alert_type.value,
        source_module=rule.alert_type.source_module,
        escalate_if_count=rule.escalate_if_count,
        window_minutes=rule.window_minutes,
        escalation_severity=(
            rule.escalation_severity.value if rule.escalation_severity else None
        ),
        auto_close_if_no_repeat=rule.auto_close_if_no_repeat,
        auto_close_if=rule.auto_close_if,
        auto_close_window_minutes=rule.auto_close_window_minutes,
        enabled=rule.enabled,
        priority=rule.priority,
    )


def _rule_set_response(rules: RuleSet) -> RuleSetResponse:
    return RuleSetResponse(
        rules=[_rule_response(rule) for rule in rules],
        count=len(rules),
        source=rules.source,
        loaded_at=rules.loaded_at,
    )


@router.get("/rules", response_model=RuleSetResponse)
async def list_rules() -> RuleSetResponse:
    """Currently active escalation rules."""
    return _rule_set_response(get_rule_registry().current)


@router.post("/rules/reload", response_model=RuleSetResponse)
async def reload_rules() -> RuleSetResponse:
    """Re-read the rule file. The previous rules stay active on failure."""
    try:
        rules = get_rule_registry().reload()
    except RuleConfigError as exc:
        logger.error("Manual rule reload failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc

    return _rule_set_response(rules)


@router.post("/auto-close/run", response_model=SweepResponse)
async def run_auto_close() -> SweepResponse:
    """Run the auto-close sweep now.

    Returns ``skipped=true`` if a sweep is already in progress.
    """
    result = await get_auto_close_sweep().run()
    return SweepResponse(
        processed=result.processed,
        closed=result.closed,
        failed_batches=result.failed_batches,
        duration_ms=result.duration_ms,
        skipped=result.skipped,
    )


@router.get("/history", response_model=AlertHistoryListResponse)
async def recent_history(
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> AlertHistoryListResponse:
    """Most recent audit entries across all alerts, newest first."""
    entries = await get_recent_history(db, limit=limit)
    return AlertHistoryListResponse(
        history=[AlertHistoryResponse.model_validate(e) for e in entries],
        count=len(entries),
    )
