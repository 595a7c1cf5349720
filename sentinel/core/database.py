"""
Database connection and session management.

This module provides SQLAlchemy async database connections and session
management for the Sentinel application.
"""

import logging
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from sentinel.core.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def create_engine_for_url(db_url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for a database URL.

    Async engines use NullPool; SQLite connections are opened without the
    same-thread check so loops running on different tasks can share the file.
    """
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    return create_async_engine(
        db_url,
        echo=echo,
        poolclass=NullPool,
        connect_args=connect_args,
    )


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for_url(settings.effective_database_url, echo=settings.debug)

async_session_maker = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Yields:
        AsyncSession: Database session for the request.
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine | None = None) -> None:
    """
    Initialize the database by creating all tables.

    This should only be used for development. In production,
    use Alembic migrations.
    """
    # Register the models on Base.metadata
    from sentinel.models import Activity, Sentinel  # noqa: F401

    bind = bind or engine
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


async def close_db() -> None:
    """Close the database engine and cleanup connections."""
    await engine.dispose()
    logger.info("Database connections closed")
