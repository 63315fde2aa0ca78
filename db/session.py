"""
db/session.py

SQLAlchemy asyncio engine and session factory.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from db.config import get_bool_env, get_float_env, load_env_files, resolve_database_url


def create_db_engine(database_url: str | None = None) -> AsyncEngine:
    """
    Create an aiosqlite engine shared by the web server and the cron worker.

    The busy timeout makes a second process wait for the write lock instead of
    failing immediately with "database is locked".
    """

    load_env_files()
    url = database_url or resolve_database_url()
    engine = create_async_engine(
        url,
        echo=get_bool_env("SQL_ECHO", default=False),
        connect_args={"timeout": get_float_env("SQLITE_BUSY_TIMEOUT_SECONDS", 15.0)},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


async def init_models(engine: AsyncEngine | None = None) -> None:
    """Create any missing tables."""
    import db.models  # noqa: F401 - registers all ORM models on Base.metadata
    from db.base import Base

    target = engine or get_engine()
    async with target.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
