"""Tests for database module."""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import inspect, text

from fleet_alerts import database
from fleet_alerts.database import check_database_connection


class TestDatabaseConnection:
    @pytest.mark.asyncio
    async def test_returns_true_when_connected(self, db_engine):
        assert await check_database_connection() is True

    @pytest.mark.asyncio
    async def test_returns_false_on_exception(self):
        with patch("fleet_alerts.database.get_engine") as mock_get_engine:
            mock_engine = MagicMock()
            mock_engine.connect.side_effect = Exception("Connection refused")
            mock_get_engine.return_value = mock_engine

            assert await check_database_connection() is False


class TestSchemaHelpers:
    @pytest.mark.asyncio
    async def test_init_models_creates_tables(self, db_engine):
        async with db_engine.connect() as conn:
            tables = await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).get_table_names()
            )

        assert {"alerts", "alert_history"} <= set(tables)

    @pytest.mark.asyncio
    async def test_savepoint_rollback_keeps_outer_work(self, db_session):
        await db_session.execute(text("CREATE TABLE scratch (value INTEGER)"))
        await db_session.execute(text("INSERT INTO scratch VALUES (1)"))

        with pytest.raises(RuntimeError):
            async with db_session.begin_nested():
                await db_session.execute(text("INSERT INTO scratch VALUES (2)"))
                raise RuntimeError("inner failure")

        values = (await db_session.execute(text("SELECT value FROM scratch"))).all()
        assert [row[0] for row in values] == [1]


class TestEngineLifecycle:
    @pytest.mark.asyncio
    async def test_reset_database_drops_cached_engine(self):
        await database.reset_database()
        first = database.get_engine()

        await database.reset_database()
        second = database.get_engine()

        assert first is not second
        await database.reset_database()

    @pytest.mark.asyncio
    async def test_get_db_yields_session(self, db_engine):
        generator = database.get_db()
        session = await generator.__anext__()
        try:
            assert (await session.execute(text("SELECT 1"))).scalar_one() == 1
        finally:
            await generator.aclose()

    def test_sqlite_engine_uses_null_pool(self):
        from sqlalchemy.pool import NullPool

        assert isinstance(database.get_engine().pool, NullPool)
