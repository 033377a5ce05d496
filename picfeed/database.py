"""
Async SQLAlchemy engine + session factory.

Production runs against TiDB (MySQL wire protocol) through aiomysql; local
development and the test suite use SQLite through aiosqlite. The engine is
created once at import and reused across all requests.
"""
import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from picfeed.config import settings
from picfeed.errors import Unavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "pool_pre_ping": True,
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_timeout": settings.db_pool_timeout_seconds,
        "connect_args": {"connect_timeout": settings.db_connect_timeout_seconds},
        "echo": False,
    }


engine = create_async_engine(settings.db_url, **_engine_kwargs(settings.db_url))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables if they don't exist (idempotent)."""
    # models must be imported so their tables are registered on Base.metadata
    from picfeed import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


async def dispose_db() -> None:
    await engine.dispose()


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def run_with_timeout(awaitable: Awaitable[T], timeout: Optional[float] = None) -> T:
    """
    Await a store-bound operation under a deadline.

    A timeout or a dropped connection surfaces as Unavailable; retrying is
    left to the caller.
    """
    limit = timeout if timeout is not None else settings.db_operation_timeout_seconds
    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as exc:
        logger.warning("Store operation exceeded %.1fs", limit)
        raise Unavailable(f"storage did not respond within {limit:.1f}s") from exc
    except OperationalError as exc:
        logger.warning("Store operation failed: %s", exc.orig)
        raise Unavailable("storage unavailable") from exc
    except DBAPIError as exc:
        if exc.connection_invalidated:
            raise Unavailable("storage connection lost") from exc
        raise
