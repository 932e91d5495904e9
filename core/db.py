"""
Database connection and session management

Provides an async SQLAlchemy engine with SQLModel metadata
Configured via DATABASE_URL environment variable (see core.config)
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from core import config
import core.models_sql  # noqa: F401  register tables on SQLModel.metadata


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite does not take pool sizing arguments, so those are only passed
    for server databases. USE_PGBOUNCER switches to NullPool.
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, poolclass=NullPool)

    if config.USE_PGBOUNCER:
        return create_async_engine(url, echo=echo, poolclass=NullPool, pool_pre_ping=True)

    return create_async_engine(
        url,
        echo=echo,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before using
    )


engine = build_engine(config.DATABASE_URL, echo=config.DB_ECHO)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI routes to get database session

    Usage:
        @router.get("/jobs")
        async def list_jobs(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Context manager for getting database session outside of FastAPI

    Usage:
        async with get_db_session() as session:
            job = await session.get(Job, job_id)
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: Optional[AsyncEngine] = None) -> None:
    """Create tables; called once during app startup."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()


async def ping_db() -> bool:
    """Return True when a trivial query succeeds."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True
