"""
Database session management with async SQLAlchemy 2.0.
Builds the engine and sessionmaker for the embedded SQLite file.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from promobase.core.logging import get_logger

logger = get_logger(__name__)


def _is_memory_url(database_url: str) -> bool:
    return ":memory:" in database_url or database_url.rstrip("/").endswith("sqlite+aiosqlite:")


def create_engine(database_url: str) -> AsyncEngine:
    """
    Create the async SQLAlchemy engine for a SQLite database.

    Every new DBAPI connection gets foreign keys enabled; file databases also
    switch to WAL journaling.
    """
    memory = _is_memory_url(database_url)
    options = {"echo": False}
    if memory:
        # One shared connection, otherwise each checkout sees an empty database
        options["poolclass"] = StaticPool
        options["connect_args"] = {"check_same_thread": False}

    engine = create_async_engine(database_url, **options)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        if not memory:
            cursor.execute("PRAGMA journal_mode = WAL")
        cursor.close()

    logger.info("Database engine created", extra={"memory": memory})
    return engine


def create_sessionmaker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async sessionmaker."""
    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    logger.info("Sessionmaker created")
    return session_maker


async def close_engine(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")
