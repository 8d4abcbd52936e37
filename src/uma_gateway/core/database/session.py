"""Async database engine and session management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from uma_gateway.config import Settings
from uma_gateway.core.errors import ConflictError, StorageError


logger = structlog.get_logger()


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine for the configured database.

    Args:
        settings: Application settings

    Returns:
        A configured AsyncEngine
    """
    url = settings.async_database_url
    kwargs: dict[str, object] = {"echo": settings.database_echo}
    if not url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True  # Verify connections before use
    return create_async_engine(url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def transaction(
    session_factory: async_sessionmaker[AsyncSession],
    conflict_message: str = "Resource already exists",
) -> AsyncIterator[AsyncSession]:
    """Open a session inside a transaction, committing on success.

    Driver failures are translated to the application taxonomy: an
    ``IntegrityError`` becomes ``ConflictError``, anything else raised by
    SQLAlchemy becomes ``StorageError``. Nothing is retried.

    Args:
        session_factory: Factory from ``build_session_factory``
        conflict_message: Message for the ``ConflictError``

    Yields:
        The session bound to the open transaction
    """
    try:
        async with session_factory() as session, session.begin():
            yield session
    except IntegrityError as exc:
        raise ConflictError(conflict_message) from exc
    except SQLAlchemyError as exc:
        logger.error("storage_operation_failed", error=str(exc))
        raise StorageError(details={"error": type(exc).__name__}) from exc
