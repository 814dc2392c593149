"""
Database Session Management - Async SQLAlchemy session factory.

Writes go to the primary; list/lookup endpoints may read from a replica.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from jovitools.config import settings
from jovitools.observability.tracing import instrument_sqlalchemy

_engines: dict[str, AsyncEngine] = {}
_session_factories: dict[str, async_sessionmaker[AsyncSession]] = {}

WRITE = "write"
READ = "read"


def _create_engine(url: str) -> AsyncEngine:
    engine = create_async_engine(
        url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
        echo=settings.log_level == "DEBUG",
    )
    instrument_sqlalchemy(engine)
    return engine


def get_engine(role: str = WRITE) -> AsyncEngine:
    """Get or create the engine for the given role (write = primary, read = replica)."""
    if role not in _engines:
        url = settings.database_url if role == WRITE else settings.read_database_url
        _engines[role] = _create_engine(url)
    return _engines[role]


def get_session_factory(role: str = WRITE) -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory for the given role."""
    if role not in _session_factories:
        _session_factories[role] = async_sessionmaker(
            get_engine(role),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factories[role]


@asynccontextmanager
async def get_write_session() -> AsyncIterator[AsyncSession]:
    """
    Get an async database session outside of a request (scripts, background work).

    Usage:
        async with get_write_session() as session:
            await session.execute(...)
            await session.commit()
    """
    async with get_session_factory(WRITE)() as session:
        yield session


async def get_write_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency for write database session.

    Usage:
        @router.post("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_write_db)):
            ...
    """
    async with get_session_factory(WRITE)() as session:
        yield session


async def get_read_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for read database session (replica when configured)."""
    async with get_session_factory(READ)() as session:
        yield session


async def close_engines() -> None:
    """Close all database engines (for graceful shutdown)."""
    for engine in _engines.values():
        await engine.dispose()
    _engines.clear()
    _session_factories.clear()
