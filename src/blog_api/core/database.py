"""Async database engine, session management, and bounded transactions.

Provides async engine creation, session factory, lifecycle helpers and the
unit of work every request runs in, using SQLAlchemy 2.x (asyncpg in
production, aiosqlite in tests).
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from blog_api.core.errors import ConflictError, InternalError

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the current async engine.

    Raises:
        RuntimeError: If the engine has not been initialized.
    """
    if _engine is None:
        msg = "Database engine not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the current session factory.

    Raises:
        RuntimeError: If the engine has not been initialized.
    """
    if _session_factory is None:
        msg = "Session factory not initialized. Call init_engine() first."
        raise RuntimeError(msg)
    return _session_factory


def init_engine(database_url: str, *, schema: str | None = None, **kwargs: object) -> AsyncEngine:
    """Create and store the async engine and session factory.

    Args:
        database_url: Async connection string.
        schema: Optional PostgreSQL schema for isolated environments.
        **kwargs: Additional arguments passed to create_async_engine.

    Returns:
        The created async engine.
    """
    global _engine, _session_factory  # noqa: PLW0603
    if schema is not None:
        connect_args = kwargs.pop("connect_args", {})
        if not isinstance(connect_args, dict):
            msg = "connect_args must be a dict"
            raise TypeError(msg)
        connect_args["server_settings"] = {"search_path": f"{schema},public"}
        kwargs["connect_args"] = connect_args
    uses_static_pool = kwargs.get("poolclass") is StaticPool or "sqlite" in database_url
    if not uses_static_pool:
        kwargs.setdefault("pool_size", 10)
        kwargs.setdefault("max_overflow", 5)
        kwargs.setdefault("pool_pre_ping", True)
    _engine = create_async_engine(database_url, **kwargs)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Dispose of the async engine and release connections."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def dialect_name(session: AsyncSession) -> str:
    """Return the SQL dialect name ("postgresql", "sqlite") the session is bound to."""
    return session.get_bind().dialect.name


@asynccontextmanager
async def bounded_transaction(session: AsyncSession, timeout: float | None) -> AsyncGenerator[AsyncSession]:
    """Run a unit of work that commits on success and rolls back otherwise.

    The whole block, including the commit, must finish within ``timeout``
    seconds. Timeouts, cancellation and any raised exception roll the
    transaction back so no partial state becomes visible.

    Args:
        session: The database session.
        timeout: Deadline in seconds, or None for no deadline.

    Yields:
        The same session.
    """
    try:
        async with asyncio.timeout(timeout):
            yield session
            await session.commit()
    except BaseException:
        await asyncio.shield(session.rollback())
        raise


@asynccontextmanager
async def unit_of_work(session: AsyncSession, timeout: float | None) -> AsyncGenerator[AsyncSession]:
    """Bounded transaction that re-raises store failures as ``AuthError`` kinds.

    Constraint violations become ``ConflictError``. Any other database error
    and a missed deadline become ``InternalError``; the original exception
    stays chained for the server log.

    Args:
        session: The database session.
        timeout: Deadline in seconds, or None for no deadline.

    Yields:
        The same session.
    """
    try:
        async with bounded_transaction(session, timeout):
            yield session
    except IntegrityError as e:
        logger.warning(f"Integrity violation: {e.orig}")
        raise ConflictError from e
    except SQLAlchemyError as e:
        logger.exception("Database error")
        raise InternalError from e
    except TimeoutError as e:
        logger.error(f"Store operation exceeded {timeout}s")
        msg = "Store operation timed out"
        raise InternalError(msg) from e
