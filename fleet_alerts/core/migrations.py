"""Database migration utilities."""

from pathlib import Path

from alembic import command
from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import text

from fleet_alerts.database import get_engine
from fleet_alerts.logging_config import get_logger

logger = get_logger(__name__)

# alembic.ini and migrations/ live at the project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def get_alembic_config() -> Config:
    """Get Alembic configuration."""
    alembic_ini = PROJECT_ROOT / "alembic.ini"

    if not alembic_ini.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(PROJECT_ROOT / "migrations"))

    return config


def run_migrations() -> None:
    """
    Run all pending database migrations synchronously.

    Must not be called from a running event loop: the migration
    environment drives its own async engine with ``asyncio.run``.
    """
    logger.info("Running database migrations...")

    try:
        config = get_alembic_config()
        command.upgrade(config, "head")
        logger.info("Database migrations completed successfully")
    except Exception as e:
        logger.error("Database migration failed", error=str(e))
        raise


def get_head_revision() -> str | None:
    """Latest revision shipped with the code."""
    try:
        script = ScriptDirectory.from_config(get_alembic_config())
        return script.get_current_head()
    except Exception as e:
        logger.warning("Could not read migration scripts", error=str(e))
        return None


async def get_current_revision() -> str | None:
    """Revision the database is currently at, or None if unversioned."""
    try:
        async with get_engine().connect() as conn:
            result = await conn.execute(
                text("SELECT version_num FROM alembic_version LIMIT 1")
            )
            row = result.fetchone()
            return row[0] if row else None
    except Exception:
        return None


async def check_migrations_current() -> bool:
    """
    Check if all migrations have been applied.

    Returns:
        True if the database is at the latest shipped revision.
    """
    current = await get_current_revision()
    return current is not None and current == get_head_revision()
