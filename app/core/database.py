"""
Database configuration and session management.

Uses SQLAlchemy 2.0 async with the asyncpg driver in production.
Implements connection pooling and proper session handling.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import JSON, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# JSONB on PostgreSQL, plain JSON on other dialects (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _engine_options(url: str) -> dict:
    options = {"echo": settings.debug}
    if url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_pre_ping=True,  # Enable connection health checks
    )
    return options


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency that provides a database session.

    Usage:
        @router.get("/campaigns")
        async def list_campaigns(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for database sessions outside of request context
    (workers, socket handlers, scripts).
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def check_db_connection() -> bool:
    """Run a trivial query against the database."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def init_db() -> None:
    """
    Initialize database tables.

    In production, use Alembic migrations instead.
    This is primarily for testing and initial setup.
    """
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
