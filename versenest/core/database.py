"""VerseNest Database Configuration - Async SQLAlchemy."""

import asyncio
import functools
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

from versenest.core.config import settings
from versenest.core.errors import DatabaseError, ServiceUnavailableError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend.

    Pool sizing is configurable via environment variables for server
    databases (DB_POOL_SIZE, DB_MAX_OVERFLOW, DB_POOL_TIMEOUT, DB_POOL_RECYCLE).
    SQLite gets a single shared connection so in-memory databases persist.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
    return create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=True,  # Verify connection before use
        echo=echo,
    )


# Only echo SQL when debug is explicitly enabled
engine = build_engine(
    settings.database_url,
    echo=settings.debug and settings.log_level == "DEBUG",
)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except (Exception, BaseException):
            # Catch both regular exceptions and BaseExceptions (e.g., asyncio.CancelledError)
            # to ensure rollback happens even on cancellation
            await session.rollback()
            raise
        finally:
            await session.close()


async def check_db_connection() -> bool:
    """Check if database is reachable."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except (OSError, ConnectionError) as e:
        logger.debug(f"Database connection check failed: {e}")
        return False
    except Exception as e:
        logger.warning(f"Unexpected error checking database connection: {e}")
        return False


def with_db_timeout(
    func: Callable[P, Awaitable[T]],
) -> Callable[P, Awaitable[T]]:
    """Bound a storage coroutine by DB_OPERATION_TIMEOUT.

    A timeout surfaces as ServiceUnavailableError and any SQLAlchemy failure
    as DatabaseError, so a storage fault can never look like success.
    """

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            async with asyncio.timeout(settings.db_operation_timeout):
                return await func(*args, **kwargs)
        except TimeoutError as e:
            logger.error(f"Storage call {func.__qualname__} timed out")
            raise ServiceUnavailableError("Storage backend did not respond in time") from e
        except SQLAlchemyError as e:
            logger.error(f"Storage call {func.__qualname__} failed: {type(e).__name__}")
            raise DatabaseError("Database operation failed") from e

    return wrapper


def rowcount(result: Any) -> int:
    """Affected row count of a DML result (0 when the driver reports none)."""
    count = getattr(result, "rowcount", None)
    return count if isinstance(count, int) and count > 0 else 0
