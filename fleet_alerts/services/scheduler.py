"""Background job scheduler.

APScheduler-based background tasks: the auto-close sweep over active
alerts, the optional rule reload and data retention enforcement.

The sweep's single-flight guard only protects one process. Running more
than one process needs an external lease before the sweep job may run in
each of them.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fleet_alerts.config import settings
from fleet_alerts.database import get_session_maker
from fleet_alerts.logging_config import get_logger
from fleet_alerts.models.alert import ACTIVE_STATUSES
from fleet_alerts.services.alert_store import find_alerts_by_status
from fleet_alerts.services.data_retention import enforce_data_retention
from fleet_alerts.services.rule_evaluation import batch_evaluate_auto_close
from fleet_alerts.services.rule_loader import RuleConfigError, get_rule_registry

logger = get_logger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


@dataclass(frozen=True)
class SweepResult:
    """Totals of one auto-close sweep."""

    processed: int = 0
    closed: int = 0
    failed_batches: int = 0
    duration_ms: int = 0
    skipped: bool = False


class AutoCloseSweep:
    """Periodic auto-close pass over every OPEN and ESCALATED alert.

    At most one ``run()`` is in progress at a time; a call made while
    another is running returns immediately with ``skipped=True``.
    Each batch gets its own session, so a failing batch only loses its
    own uncommitted work.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        batch_size: int | None = None,
    ):
        self._session_maker = session_maker
        self.batch_size = batch_size or settings.auto_close_batch_size
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def _sessions(self) -> async_sessionmaker[AsyncSession]:
        return self._session_maker or get_session_maker()

    async def run(self) -> SweepResult:
        """Run one sweep unless another one is in progress."""
        # No await between the check and the acquire
        if self._lock.locked():
            logger.info("Auto-close sweep already running, skipping this tick")
            return SweepResult(skipped=True)

        async with self._lock:
            return await self._sweep()

    async def _sweep(self) -> SweepResult:
        started = time.monotonic()
        logger.info("Starting auto-close sweep")

        processed = 0
        closed = 0
        failed_batches = 0

        try:
            async with self._sessions()() as db:
                active_alerts = await find_alerts_by_status(db, ACTIVE_STATUSES)
        except Exception as e:
            logger.error("Failed to fetch active alerts", error=str(e))
            return SweepResult(
                failed_batches=1,
                duration_ms=int((time.monotonic() - started) * 1000),
            )

        if not active_alerts:
            logger.info("No active alerts to evaluate")

        for offset in range(0, len(active_alerts), self.batch_size):
            batch = active_alerts[offset : offset + self.batch_size]
            batch_number = offset // self.batch_size + 1
            try:
                async with self._sessions()() as batch_db:
                    closed += await batch_evaluate_auto_close(batch_db, batch)
                processed += len(batch)
            except Exception as e:
                logger.error(
                    "Auto-close batch failed",
                    batch_number=batch_number,
                    batch_size=len(batch),
                    error=str(e),
                )
                failed_batches += 1

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Auto-close sweep completed",
            processed=processed,
            closed=closed,
            failed_batches=failed_batches,
            duration_ms=duration_ms,
        )
        return SweepResult(
            processed=processed,
            closed=closed,
            failed_batches=failed_batches,
            duration_ms=duration_ms,
        )


# Global sweep instance
_auto_close_sweep: AutoCloseSweep | None = None


def get_auto_close_sweep() -> AutoCloseSweep:
    """Get or create the process-wide auto-close sweep."""
    global _auto_close_sweep
    if _auto_close_sweep is None:
        _auto_close_sweep = AutoCloseSweep()
    return _auto_close_sweep


async def run_auto_close_sweep() -> SweepResult:
    """Scheduled entry point of the auto-close sweep."""
    return await get_auto_close_sweep().run()


async def reload_rules_job() -> None:
    """Reload escalation rules; keep the current ones if the file is broken."""
    try:
        await asyncio.to_thread(get_rule_registry().reload)
    except RuleConfigError as e:
        logger.error("Rule reload failed, keeping previous rules", error=str(e))


async def enforce_data_retention_job() -> None:
    """Delete alerts and history older than the retention period."""
    logger.info("Starting scheduled data retention enforcement")

    try:
        async with get_session_maker()() as db:
            deleted = await enforce_data_retention(db, settings.data_retention_days)
    except Exception as e:
        logger.error("Data retention enforcement failed", error=str(e))
        return

    logger.info(
        "Scheduled data retention enforcement completed",
        total_records_deleted=sum(deleted.values()),
    )


def start_scheduler() -> AsyncIOScheduler:
    """Start the background job scheduler.

    Returns:
        The started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler()

    if settings.auto_close_enabled:
        scheduler.add_job(
            run_auto_close_sweep,
            trigger=IntervalTrigger(minutes=settings.auto_close_interval_minutes),
            id="auto_close_sweep",
            name="Alert Auto-Close Sweep",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(
            "Scheduled auto-close sweep job",
            interval_minutes=settings.auto_close_interval_minutes,
            batch_size=settings.auto_close_batch_size,
        )

    if settings.rules_auto_reload:
        scheduler.add_job(
            reload_rules_job,
            trigger=IntervalTrigger(minutes=settings.rules_reload_interval_minutes),
            id="rule_reload",
            name="Escalation Rule Reload",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(
            "Scheduled rule reload job",
            interval_minutes=settings.rules_reload_interval_minutes,
        )

    if settings.data_retention_enabled:
        scheduler.add_job(
            enforce_data_retention_job,
            trigger=IntervalTrigger(hours=settings.data_retention_check_interval_hours),
            id="data_retention",
            name="Data Retention Enforcement",
            replace_existing=True,
            max_instances=1,
        )
        logger.info(
            "Scheduled data retention enforcement job",
            interval_hours=settings.data_retention_check_interval_hours,
            retention_days=settings.data_retention_days,
        )

    scheduler.start()
    logger.info("Background scheduler started")

    return scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance.

    Returns:
        The scheduler instance or None if not started
    """
    return scheduler


@asynccontextmanager
async def scheduler_lifespan() -> AsyncGenerator[None, None]:
    """Async context manager for scheduler lifecycle.

    Use this in FastAPI lifespan to manage scheduler start/stop.
    """
    start_scheduler()
    try:
        yield
    finally:
        stop_scheduler()
