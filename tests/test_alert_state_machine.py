"""Tests for the alert lifecycle state machine."""

from datetime import UTC, datetime, timedelta

import pytest

from fleet_alerts.models.alert import (
    SYSTEM_ACTOR,
    AlertSeverity,
    AlertStatus,
    AlertType,
    InvalidStateTransitionError,
)
from tests.factories import make_alert

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestEscalate:
    def test_open_alert_escalates(self):
        alert = make_alert(now=NOW)

        alert.escalate(AlertSeverity.CRITICAL, "3 occurrences", now=NOW)

        assert alert.status == AlertStatus.ESCALATED
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.escalated_at == NOW
        assert alert.escalation_reason == "3 occurrences"

    def test_re_escalation_raises_severity(self):
        alert = make_alert(now=NOW)
        alert.escalate(AlertSeverity.WARNING, "first", now=NOW)

        later = NOW + timedelta(minutes=5)
        alert.escalate(AlertSeverity.CRITICAL, "second", now=later)

        assert alert.status == AlertStatus.ESCALATED
        assert alert.severity == AlertSeverity.CRITICAL
        assert alert.escalation_reason == "second"
        # First escalation time is kept
        assert alert.escalated_at == NOW

    def test_severity_never_decreases(self):
        alert = make_alert(now=NOW, severity=AlertSeverity.CRITICAL)

        alert.escalate(AlertSeverity.WARNING, "lower", now=NOW)

        assert alert.status == AlertStatus.ESCALATED
        assert alert.severity == AlertSeverity.CRITICAL

    @pytest.mark.parametrize(
        "closed_status", [AlertStatus.AUTO_CLOSED, AlertStatus.RESOLVED]
    )
    def test_closed_alert_rejects_escalation(self, closed_status):
        alert = make_alert(now=NOW, status=closed_status)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            alert.escalate(AlertSeverity.CRITICAL, "too late")

        assert exc_info.value.current_status == closed_status
        assert exc_info.value.action == "escalate"
        assert alert.status == closed_status


class TestClose:
    def test_auto_close_sets_system_actor(self):
        alert = make_alert(now=NOW)

        alert.auto_close("No repeat", now=NOW)

        assert alert.status == AlertStatus.AUTO_CLOSED
        assert alert.closed_by == SYSTEM_ACTOR
        assert alert.closed_at == NOW
        assert alert.closure_reason == "No repeat"

    def test_escalated_alert_can_be_resolved(self):
        alert = make_alert(now=NOW)
        alert.escalate(AlertSeverity.CRITICAL, "burst", now=NOW)

        alert.resolve("operator-7", "Driver coached", now=NOW)

        assert alert.status == AlertStatus.RESOLVED
        assert alert.closed_by == "operator-7"
        assert alert.closure_reason == "Driver coached"

    @pytest.mark.parametrize(
        "first_close",
        [
            lambda a: a.auto_close("auto", now=NOW),
            lambda a: a.resolve("op", "manual", now=NOW),
        ],
    )
    def test_closing_twice_is_a_no_op(self, first_close):
        alert = make_alert(now=NOW)
        first_close(alert)
        snapshot = (alert.status, alert.closed_at, alert.closure_reason, alert.closed_by)

        later = NOW + timedelta(hours=1)
        alert.auto_close("again", now=later)
        alert.resolve("someone-else", "again", now=later)

        assert (
            alert.status,
            alert.closed_at,
            alert.closure_reason,
            alert.closed_by,
        ) == snapshot


class TestIsExpired:
    def test_not_expired_inside_window(self):
        alert = make_alert(now=NOW, minutes_ago=30)
        assert alert.is_expired(60, now=NOW) is False

    def test_not_expired_exactly_at_boundary(self):
        alert = make_alert(now=NOW, minutes_ago=60)
        assert alert.is_expired(60, now=NOW) is False

    def test_expired_after_window(self):
        alert = make_alert(now=NOW, minutes_ago=61)
        assert alert.is_expired(60, now=NOW) is True


class TestEnums:
    def test_every_alert_type_has_a_source_module(self):
        modules = {t.source_module for t in AlertType}
        assert modules == {"Safety", "Compliance", "Feedback", "Maintenance"}

    def test_severity_order(self):
        assert AlertSeverity.CRITICAL.is_more_severe_than(AlertSeverity.WARNING)
        assert AlertSeverity.WARNING.is_more_severe_than(AlertSeverity.INFO)
        assert not AlertSeverity.INFO.is_more_severe_than(AlertSeverity.INFO)

    def test_status_partition(self):
        assert {s for s in AlertStatus if s.is_active} == {
            AlertStatus.OPEN,
            AlertStatus.ESCALATED,
        }
        assert {s for s in AlertStatus if s.is_closed} == {
            AlertStatus.AUTO_CLOSED,
            AlertStatus.RESOLVED,
        }

    def test_condition_reads_metadata(self):
        alert = make_alert(now=NOW, metadata={"condition": "DOCUMENT_RENEWED"})
        assert alert.condition == "DOCUMENT_RENEWED"

        alert.set_metadata("condition", "other")
        assert alert.condition == "other"
        assert alert.metadata_ == {"condition": "other"}
