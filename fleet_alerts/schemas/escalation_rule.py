"""Escalation rule schema.

Mirrors one entry of the ``rules`` array in the rule configuration file.
Field aliases are camelCase to match the file format exactly.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleet_alerts.models.alert import AlertSeverity, AlertType

DEFAULT_ESCALATION_WINDOW_MINUTES = 60
DEFAULT_AUTO_CLOSE_WINDOW_MINUTES = 120


class EscalationRule(BaseModel):
    """Per-alert-type escalation and auto-close configuration."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )

    alert_type: AlertType

    # Escalation criteria
    escalate_if_count: int | None = Field(default=None, ge=1)
    window_minutes: int | None = Field(default=None, ge=0)
    escalation_severity: AlertSeverity | None = None

    # Auto-close criteria
    auto_close_if_no_repeat: bool = False
    auto_close_if: str | None = None
    auto_close_window_minutes: int | None = Field(default=None, ge=0)

    enabled: bool = True
    priority: int = 0

    @property
    def escalation_window_minutes(self) -> int:
        if self.window_minutes is None:
            return DEFAULT_ESCALATION_WINDOW_MINUTES
        return self.window_minutes

    @property
    def close_window_minutes(self) -> int:
        if self.auto_close_window_minutes is None:
            return DEFAULT_AUTO_CLOSE_WINDOW_MINUTES
        return self.auto_close_window_minutes

    @property
    def target_severity(self) -> AlertSeverity:
        return self.escalation_severity or AlertSeverity.WARNING

    @property
    def has_escalation_criteria(self) -> bool:
        return self.escalate_if_count is not None

    def should_escalate(self, alert_count: int, time_difference_minutes: int) -> bool:
        if not self.enabled or self.escalate_if_count is None:
            return False
        return (
            alert_count >= self.escalate_if_count
            and time_difference_minutes <= self.escalation_window_minutes
        )

    def should_auto_close_by_condition(self, condition: str | None) -> bool:
        if not self.enabled or not self.auto_close_if or condition is None:
            return False
        return self.auto_close_if.casefold() == condition.casefold()


class EscalationRuleResponse(BaseModel):
    """Rule as exposed by the admin API."""

    model_config = ConfigDict(from_attributes=True)

    alert_type: str
    source_module: str
    escalate_if_count: int | None
    window_minutes: int | None
    escalation_severity: str | None
    auto_close_if_no_repeat: bool
    auto_close_if: str | None
    auto_close_window_minutes: int | None
    enabled: bool
    priority: int


class RuleSetResponse(BaseModel):
    """Currently active rule snapshot."""

    rules: list[EscalationRuleResponse]
    count: int
    source: str | None
    loaded_at: datetime | None
