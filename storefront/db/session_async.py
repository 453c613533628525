# storefront/db/session_async.py
"""Async SQLAlchemy session utilities."""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from storefront.core.config import settings

T = TypeVar("T")


def _engine_options() -> dict[str, Any]:
    # One connection per session on SQLite so concurrent writers wait on the
    # database lock (busy timeout) instead of sharing a connection.
    if settings.ASYNC_DATABASE_URL.startswith("sqlite"):
        return {
            "poolclass": NullPool,
            "connect_args": {"timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS},
        }
    return {"pool_pre_ping": True}


async_engine: AsyncEngine = create_async_engine(
    settings.ASYNC_DATABASE_URL,
    **_engine_options(),
)

AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    expire_on_commit=False,
    autoflush=False,
)


async def get_async_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an AsyncSession."""
    async with AsyncSessionLocal() as session:
        yield session


async def commit(session: AsyncSession) -> None:
    """Commit and rollback on failure."""
    try:
        await session.commit()
    except Exception:
        await rollback(session)
        raise


async def rollback(session: AsyncSession) -> None:
    """Rollback active transaction if needed."""
    if session.in_transaction():
        await session.rollback()


async def run_in_transaction(
    operation: Callable[[AsyncSession], Awaitable[T]],
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> T:
    """Execute an async operation within a managed transaction.

    Everything the operation writes is committed together or not at all.
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            result = await operation(session)
            await session.commit()
            return result
        except Exception:
            await session.rollback()
            raise
