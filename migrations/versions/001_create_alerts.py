"""Create alerts and alert_history tables.

Revision ID: 001_create_alerts
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_create_alerts"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str, *values: str) -> sa.Enum:
    # Stored as VARCHAR with a CHECK constraint, matching the ORM models
    return sa.Enum(*values, name=name, native_enum=False, length=32)


ALERT_STATUSES = ("OPEN", "ESCALATED", "AUTO_CLOSED", "RESOLVED")


def upgrade() -> None:
    op.create_table(
        "alerts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "alert_type",
            _enum(
                "alerttype",
                "OVERSPEEDING",
                "HARSH_BRAKING",
                "HARSH_ACCELERATION",
                "ROUTE_DEVIATION",
                "COMPLIANCE_DOCUMENT_EXPIRY",
                "COMPLIANCE_LICENSE_INVALID",
                "COMPLIANCE_INSURANCE_EXPIRY",
                "FEEDBACK_NEGATIVE",
                "FEEDBACK_COMPLAINT",
                "MAINTENANCE_OVERDUE",
                "FUEL_THEFT",
            ),
            nullable=False,
        ),
        sa.Column(
            "severity",
            _enum("alertseverity", "INFO", "WARNING", "CRITICAL"),
            nullable=False,
        ),
        sa.Column(
            "status",
            _enum("alertstatus", *ALERT_STATUSES),
            nullable=False,
            server_default="OPEN",
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("driver_id", sa.String(100), nullable=True),
        sa.Column("vehicle_id", sa.String(100), nullable=True),
        sa.Column("route_id", sa.String(100), nullable=True),
        sa.Column(
            "metadata",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalation_reason", sa.String(500), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closure_reason", sa.String(500), nullable=True),
        sa.Column("closed_by", sa.String(100), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_alerts_status", "alerts", ["status"])
    op.create_index("ix_alerts_alert_type", "alerts", ["alert_type"])
    op.create_index("ix_alerts_driver_id", "alerts", ["driver_id"])
    op.create_index("ix_alerts_timestamp", "alerts", ["timestamp"])
    op.create_index("ix_alerts_severity", "alerts", ["severity"])

    op.create_table(
        "alert_history",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "alert_id",
            sa.Uuid(),
            sa.ForeignKey("alerts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("from_status", _enum("alertstatus", *ALERT_STATUSES), nullable=True),
        sa.Column("to_status", _enum("alertstatus", *ALERT_STATUSES), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("reason", sa.String(1000), nullable=True),
        sa.Column(
            "changed_by",
            sa.String(100),
            nullable=False,
            server_default="SYSTEM",
        ),
        sa.Column(
            "event_type",
            _enum("historyeventtype", "CREATED", "ESCALATED", "AUTO_CLOSED", "RESOLVED"),
            nullable=False,
        ),
    )
    op.create_index("ix_alert_history_alert_id", "alert_history", ["alert_id"])
    op.create_index("ix_alert_history_timestamp", "alert_history", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_alert_history_timestamp", table_name="alert_history")
    op.drop_index("ix_alert_history_alert_id", table_name="alert_history")
    op.drop_table("alert_history")

    op.drop_index("ix_alerts_severity", table_name="alerts")
    op.drop_index("ix_alerts_timestamp", table_name="alerts")
    op.drop_index("ix_alerts_driver_id", table_name="alerts")
    op.drop_index("ix_alerts_alert_type", table_name="alerts")
    op.drop_index("ix_alerts_status", table_name="alerts")
    op.drop_table("alerts")
