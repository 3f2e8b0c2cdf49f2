"""Database connection and session management.

Uses lazy initialization to ensure the engine is created within
the correct event loop context, avoiding asyncpg event loop issues.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from fleet_alerts.config import settings

# Engine and session maker - lazily initialized
_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy own BEGIN on SQLite so SAVEPOINT works.

    The evaluation workflows run inside nested transactions; the sqlite
    drivers otherwise emit their own BEGIN/COMMIT and break them.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine() -> AsyncEngine:
    """Get or create the database engine.

    Creates the engine lazily to ensure it's created within
    the correct event loop context.

    When testing=True, uses NullPool to avoid event loop issues
    with connection pooling across different test event loops.
    """
    global _engine
    if _engine is None:
        is_sqlite = settings.database_url.startswith("sqlite")
        if settings.testing or is_sqlite:
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.log_format == "text",
                poolclass=NullPool,
            )
        else:
            # Use connection pooling for production
            _engine = create_async_engine(
                settings.database_url,
                echo=settings.log_format == "text",
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
            )
        if is_sqlite:
            _enable_sqlite_savepoints(_engine)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Get or create the session maker."""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for getting database sessions."""
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database sessions."""
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def check_database_connection() -> bool:
    """
    Check if the database is reachable.

    Returns:
        True if database is connected, False otherwise.
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True
    except Exception:
        return False


async def init_models() -> None:
    """Create all tables from the ORM metadata.

    Production schemas are managed by Alembic; this is for tests and
    throwaway local databases.
    """
    from fleet_alerts.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_models() -> None:
    """Drop all tables known to the ORM metadata."""
    from fleet_alerts.models import Base

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def close_database() -> None:
    """Close the database engine and all connections."""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None


async def reset_database() -> None:
    """Reset the database engine for testing.

    This disposes the current engine and clears the references,
    allowing a new engine to be created in a different event loop.
    """
    await close_database()
