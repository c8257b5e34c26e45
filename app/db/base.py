"""SQLAlchemy database setup."""

import logging
from pathlib import Path

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


def _set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable WAL so status polling reads do not block worker writes."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_for_path(database_path: str) -> AsyncEngine:
    """Create an async SQLite engine for the given database file.

    Args:
        database_path: Path to the SQLite file (parent directories are created)

    Returns:
        Configured AsyncEngine
    """
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    new_engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        echo=False,  # SQL query logging is too noisy
        pool_pre_ping=True,
        # Several workers write concurrently; wait on the lock instead of failing
        connect_args={"timeout": 30},
    )
    event.listen(new_engine.sync_engine, "connect", _set_sqlite_pragma)
    return new_engine


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``bind``."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for_path(get_settings().database_path)
SessionLocal = create_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create database tables if they do not exist."""
    # Import models so they are registered on Base.metadata
    from app.db import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")
