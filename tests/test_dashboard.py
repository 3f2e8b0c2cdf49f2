"""Tests for dashboard aggregations and the /api/dashboard endpoints."""

from datetime import UTC, datetime, timedelta

import pytest

from fleet_alerts.models.alert import AlertSeverity, AlertStatus, AlertType
from fleet_alerts.models.alert_history import AlertHistory, HistoryEventType
from fleet_alerts.services.alert_store import append_history
from fleet_alerts.services.dashboard import (
    get_alert_statistics,
    get_dashboard_overview,
    get_recently_auto_closed_alerts,
    get_severity_counts,
    get_top_drivers,
    get_trend_data,
)
from tests.factories import store_alert

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


async def record_event(db, alert, event_type, at):
    """Append an audit entry of ``event_type`` recorded at ``at``."""
    if event_type == HistoryEventType.CREATED:
        entry = AlertHistory.for_creation(alert.id)
    elif event_type == HistoryEventType.ESCALATED:
        entry = AlertHistory.for_escalation(alert.id, AlertStatus.OPEN, "burst")
    else:
        entry = AlertHistory.for_auto_closure(alert.id, AlertStatus.OPEN, "quiet")
    entry.timestamp = at
    await append_history(db, entry)
    await db.commit()


async def auto_closed_alert(db, driver_id, closed_hours_ago):
    alert = await store_alert(
        db, driver_id=driver_id, minutes_ago=closed_hours_ago * 60 + 180, now=NOW
    )
    alert.auto_close("No repeat", now=NOW - timedelta(hours=closed_hours_ago))
    await db.commit()
    return alert


class TestSeverityCounts:
    @pytest.mark.asyncio
    async def test_every_severity_is_reported(self, db_session):
        await store_alert(db_session, severity=AlertSeverity.CRITICAL)

        counts = await get_severity_counts(db_session)

        assert counts == {
            AlertSeverity.INFO: 0,
            AlertSeverity.WARNING: 0,
            AlertSeverity.CRITICAL: 1,
        }

    @pytest.mark.asyncio
    async def test_only_requested_statuses_are_counted(self, db_session):
        await store_alert(db_session, severity=AlertSeverity.WARNING)
        await store_alert(
            db_session, severity=AlertSeverity.WARNING, status=AlertStatus.ESCALATED
        )
        await store_alert(
            db_session, severity=AlertSeverity.WARNING, status=AlertStatus.RESOLVED
        )

        active = await get_severity_counts(db_session)
        resolved = await get_severity_counts(db_session, [AlertStatus.RESOLVED])

        assert active[AlertSeverity.WARNING] == 2
        assert resolved[AlertSeverity.WARNING] == 1


class TestTopDrivers:
    @pytest.mark.asyncio
    async def test_ranked_by_alert_count_with_breakdown(self, db_session):
        severities = (AlertSeverity.INFO, AlertSeverity.CRITICAL, AlertSeverity.CRITICAL)
        for severity in severities:
            await store_alert(db_session, driver_id="D7", severity=severity)
        await store_alert(db_session, driver_id="D2")
        await store_alert(db_session, driver_id="D2")
        await store_alert(db_session, driver_id="D5")

        drivers = await get_top_drivers(db_session, limit=2)

        ranking = [(d.driver_id, d.total_alerts) for d in drivers]
        assert ranking == [("D7", 3), ("D2", 2)]
        assert drivers[0].severity_breakdown == {
            AlertSeverity.INFO: 1,
            AlertSeverity.CRITICAL: 2,
        }

    @pytest.mark.asyncio
    async def test_closed_and_driverless_alerts_are_ignored(self, db_session):
        await store_alert(db_session, driver_id=None)
        await store_alert(db_session, driver_id=None)
        await store_alert(db_session, driver_id="D3", status=AlertStatus.RESOLVED)
        await store_alert(db_session, driver_id="D4")

        drivers = await get_top_drivers(db_session)

        assert [d.driver_id for d in drivers] == ["D4"]

    @pytest.mark.asyncio
    async def test_ties_are_ordered_by_driver_id(self, db_session):
        for driver_id in ("D9", "D1", "D5"):
            await store_alert(db_session, driver_id=driver_id)

        drivers = await get_top_drivers(db_session)

        assert [d.driver_id for d in drivers] == ["D1", "D5", "D9"]


class TestRecentlyAutoClosed:
    @pytest.mark.asyncio
    async def test_only_closures_inside_the_window(self, db_session):
        older = await auto_closed_alert(db_session, "D1", closed_hours_ago=20)
        newer = await auto_closed_alert(db_session, "D2", closed_hours_ago=1)
        await auto_closed_alert(db_session, "D3", closed_hours_ago=30)
        resolved = await store_alert(db_session, driver_id="D4", now=NOW)
        resolved.resolve("op-1", "handled", now=NOW - timedelta(hours=1))
        await db_session.commit()

        alerts = await get_recently_auto_closed_alerts(db_session, hours=24, now=NOW)

        assert [a.id for a in alerts] == [newer.id, older.id]


class TestTrendData:
    @pytest.mark.asyncio
    async def test_events_grouped_per_day_oldest_first(self, db_session):
        alert = await store_alert(db_session, now=NOW)
        day_one = datetime(2026, 3, 8, 9, 0, tzinfo=UTC)
        day_two = datetime(2026, 3, 9, 23, 30, tzinfo=UTC)
        await record_event(db_session, alert, HistoryEventType.CREATED, day_two)
        await record_event(db_session, alert, HistoryEventType.CREATED, day_one)
        await record_event(db_session, alert, HistoryEventType.ESCALATED, day_one)
        await record_event(db_session, alert, HistoryEventType.CREATED, day_one)

        trends = await get_trend_data(db_session, days=7, now=NOW)

        assert [t.date for t in trends] == ["2026-03-08", "2026-03-09"]
        assert trends[0].event_counts == {"CREATED": 2, "ESCALATED": 1}
        assert trends[1].event_counts == {"CREATED": 1}

    @pytest.mark.asyncio
    async def test_events_before_the_window_are_left_out(self, db_session):
        alert = await store_alert(db_session, now=NOW)
        await record_event(
            db_session, alert, HistoryEventType.CREATED, NOW - timedelta(days=8)
        )

        assert await get_trend_data(db_session, days=7, now=NOW) == []


class TestAlertStatistics:
    @pytest.mark.asyncio
    async def test_totals_and_recent_activity(self, db_session):
        opened = await store_alert(db_session, severity=AlertSeverity.WARNING)
        await store_alert(
            db_session, severity=AlertSeverity.CRITICAL, status=AlertStatus.ESCALATED
        )
        await store_alert(db_session, status=AlertStatus.RESOLVED)
        await record_event(
            db_session, opened, HistoryEventType.CREATED, NOW - timedelta(hours=2)
        )
        await record_event(
            db_session, opened, HistoryEventType.ESCALATED, NOW - timedelta(hours=30)
        )

        stats = await get_alert_statistics(db_session, now=NOW)

        assert stats.status_counts[AlertStatus.OPEN] == 1
        assert stats.status_counts[AlertStatus.ESCALATED] == 1
        assert stats.status_counts[AlertStatus.RESOLVED] == 1
        assert stats.status_counts[AlertStatus.AUTO_CLOSED] == 0
        assert stats.active_count == 2
        assert stats.severity_distribution[AlertSeverity.WARNING] == 1
        assert stats.severity_distribution[AlertSeverity.CRITICAL] == 1
        assert stats.last_24_hours_activity == {"CREATED": 1}
        assert stats.generated_at == NOW


class TestDashboardOverview:
    @pytest.mark.asyncio
    async def test_overview_combines_all_sections(self, db_session):
        alert = await store_alert(db_session, driver_id="D1", now=NOW)
        await record_event(db_session, alert, HistoryEventType.CREATED, NOW)
        closed = await auto_closed_alert(db_session, "D2", closed_hours_ago=3)

        overview = await get_dashboard_overview(db_session, now=NOW)

        assert overview.severity_counts[AlertSeverity.INFO] == 1
        assert [d.driver_id for d in overview.top_drivers] == ["D1"]
        assert [a.id for a in overview.recently_auto_closed] == [closed.id]
        assert overview.status_counts[AlertStatus.AUTO_CLOSED] == 1
        assert len(overview.recent_events) == 1
        assert overview.generated_at == NOW


class TestDashboardApi:
    @pytest.mark.asyncio
    async def test_overview(self, client):
        payload = {
            "alert_type": AlertType.FUEL_THEFT.value,
            "severity": "CRITICAL",
            "driver_id": "D1",
        }
        await client.post("/api/alerts", json=payload)

        response = await client.get("/api/dashboard")

        assert response.status_code == 200
        data = response.json()
        assert data["severity_counts"] == {"INFO": 0, "WARNING": 0, "CRITICAL": 1}
        assert data["top_drivers"][0]["driver_id"] == "D1"
        assert data["top_drivers"][0]["severity_breakdown"] == {"CRITICAL": 1}
        assert data["total_open_alerts"] == 1
        assert data["total_resolved_alerts"] == 0
        assert data["recent_events"][0]["event_type"] == "CREATED"

    @pytest.mark.asyncio
    async def test_severity_for_requested_statuses(self, client, db_session):
        await store_alert(db_session, severity=AlertSeverity.WARNING)
        await store_alert(
            db_session, severity=AlertSeverity.CRITICAL, status=AlertStatus.RESOLVED
        )

        response = await client.get(
            "/api/dashboard/severity", params=[("status", "RESOLVED")]
        )

        assert response.status_code == 200
        data = response.json()
        assert data["statuses"] == ["RESOLVED"]
        assert data["counts"] == {"INFO": 0, "WARNING": 0, "CRITICAL": 1}

    @pytest.mark.asyncio
    async def test_top_drivers_limit(self, client, db_session):
        await store_alert(db_session, driver_id="D1")
        await store_alert(db_session, driver_id="D1")
        await store_alert(db_session, driver_id="D2")

        response = await client.get("/api/dashboard/top-drivers", params={"limit": 1})

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert response.json()["drivers"][0] == {
            "driver_id": "D1",
            "total_alerts": 2,
            "severity_breakdown": {"INFO": 2},
        }

    @pytest.mark.asyncio
    async def test_top_drivers_rejects_zero_limit(self, client):
        response = await client.get("/api/dashboard/top-drivers", params={"limit": 0})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_auto_closed_and_trends(self, client, db_session):
        alert = await store_alert(db_session, driver_id="D1", minutes_ago=300)
        alert.auto_close("No repeat")
        await db_session.commit()
        await append_history(db_session, AlertHistory.for_creation(alert.id))
        await db_session.commit()

        closed = await client.get("/api/dashboard/auto-closed", params={"hours": 1})
        trends = await client.get("/api/dashboard/trends", params={"days": 1})

        assert closed.status_code == 200
        assert closed.json()["count"] == 1
        assert closed.json()["alerts"][0]["status"] == "AUTO_CLOSED"
        assert trends.status_code == 200
        assert trends.json()["days"] == 1
        assert trends.json()["trends"][0]["event_counts"] == {"CREATED": 1}

    @pytest.mark.asyncio
    async def test_statistics(self, client, db_session):
        await store_alert(db_session)
        await store_alert(db_session, status=AlertStatus.AUTO_CLOSED)

        response = await client.get("/api/dashboard/statistics")

        assert response.status_code == 200
        data = response.json()
        assert data["status_counts"]["OPEN"] == 1
        assert data["status_counts"]["AUTO_CLOSED"] == 1
        assert data["active_count"] == 1
        assert data["severity_distribution"]["INFO"] == 1
