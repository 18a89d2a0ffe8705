"""
Database connection and session management.

Uses SQLite with aiosqlite for async support.
"""

import os
import logging
from typing import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.db.models import Base
from app.core.config import settings

logger = logging.getLogger(__name__)

# Database path - create data directory if needed
DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), "data")

# SQLite database URL
SQLITE_PATH = settings.sqlite_path or os.path.join(DATA_DIR, "autopilot.db")
DATABASE_URL = settings.database_url or f"sqlite+aiosqlite:///{SQLITE_PATH}"


def create_engine(url: str = DATABASE_URL) -> AsyncEngine:
    """Create an async engine. SQLite requires check_same_thread=False for async."""
    if url.startswith("sqlite"):
        if ":memory:" not in url:
            os.makedirs(os.path.dirname(os.path.abspath(url.split(":///", 1)[-1])), exist_ok=True)
        return create_async_engine(
            url,
            echo=False,  # Set to True for SQL debugging
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,  # Recommended for SQLite
        )
    return create_async_engine(url, echo=False, pool_pre_ping=True)


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


# Create async engine
engine = create_engine()

# Session factory
AsyncSessionLocal = create_session_factory(engine)


async def create_tables(bind: AsyncEngine) -> None:
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """
    Initialize the database - create all tables.
    Called on application startup.
    """
    try:
        await create_tables(engine)
        logger.info(f"Database initialized at: {DATABASE_URL}")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def close_db() -> None:
    """
    Close database connections.
    Called on application shutdown.
    """
    await engine.dispose()
    logger.info("Database connections closed")


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session.
    Commits on success, rolls back on any error.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

