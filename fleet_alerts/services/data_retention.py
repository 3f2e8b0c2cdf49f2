"""Data retention enforcement.

Deletes alerts and audit entries older than the retention period,
whatever their status.
"""

from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from fleet_alerts.logging_config import get_logger
from fleet_alerts.services.alert_store import (
    delete_alerts_older_than,
    delete_history_of_alerts_older_than,
    delete_history_older_than,
)

logger = get_logger(__name__)


async def enforce_data_retention(
    db: AsyncSession,
    retention_days: int,
    now: datetime | None = None,
) -> dict[str, int]:
    """Delete records older than ``retention_days`` and commit.

    Args:
        db: Database session.
        retention_days: Retention period in days.
        now: Reference time; defaults to the current UTC time.

    Returns:
        Dict with count of deleted records per category.
    """
    now = now or datetime.now(UTC)
    threshold = now - timedelta(days=retention_days)

    logger.info(
        "Deleting alerts and history older than threshold",
        threshold=threshold.isoformat(),
        retention_days=retention_days,
    )

    deleted = {}
    deleted["alert_history"] = await delete_history_of_alerts_older_than(
        db, threshold
    )
    deleted["alert_history"] += await delete_history_older_than(db, threshold)
    deleted["alerts"] = await delete_alerts_older_than(db, threshold)

    await db.commit()

    logger.info(
        "Data retention enforced",
        retention_days=retention_days,
        **deleted,
    )
    return deleted
