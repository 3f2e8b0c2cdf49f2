"""Pytest configuration and shared fixtures.

Tests run against a throwaway SQLite file. The schema is created from the
ORM metadata before each test that needs the database and dropped after.
"""

import os
import tempfile
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Point the app at a scratch database BEFORE importing it
_TEST_DB_DIR = tempfile.mkdtemp(prefix="fleet-alerts-tests-")
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
)

from fleet_alerts.config import settings

# Override settings for testing
settings.testing = True

from fleet_alerts import database
from fleet_alerts.main import app
from fleet_alerts.services import scheduler as scheduler_module
from fleet_alerts.services.rule_loader import EMPTY_RULE_SET, get_rule_registry


@pytest.fixture(autouse=True)
def reset_global_state():
    """Start every test with no rules and a fresh sweep guard."""
    get_rule_registry().replace(EMPTY_RULE_SET)
    scheduler_module._auto_close_sweep = None
    yield
    get_rule_registry().replace(EMPTY_RULE_SET)
    scheduler_module._auto_close_sweep = None


@pytest_asyncio.fixture
async def db_engine():
    """Fresh engine and schema for one test."""
    await database.reset_database()
    await database.init_models()
    yield database.get_engine()
    await database.drop_models()
    await database.reset_database()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for each test."""
    session_maker = database.get_session_maker()
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def client(db_engine) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
