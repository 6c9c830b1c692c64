"""Async engine and session factory construction.

Nothing here is created at import time. Callers build an engine from
settings, wrap it in a session factory, and hand that factory to the
AclRepository; the engine is disposed when the owning service closes.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from object_acl.core.database.base import Base

if TYPE_CHECKING:
    from object_acl.core.settings.database import DatabaseSettings

logger = logging.getLogger(__name__)


def create_engine(settings: DatabaseSettings, **overrides: Any) -> AsyncEngine:
    """Create an async engine for the ACL tables.

    Args:
        settings: Database settings (URL and pool configuration).
        **overrides: Extra keyword arguments for create_async_engine.

    Returns:
        AsyncEngine. SQLite engines enforce foreign keys.
    """
    kwargs = {**settings.engine_kwargs(), **overrides}
    engine = create_async_engine(settings.url, **kwargs)

    if settings.is_sqlite:
        _enable_sqlite_foreign_keys(engine)

    logger.info(
        "Database engine created",
        extra={"dialect": engine.dialect.name, "pool": type(engine.pool).__name__},
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by AclRepository.

    ``expire_on_commit=False`` keeps loaded rows readable after commit.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create the ACL tables if they do not exist.

    For development and tests; production schemas are managed by Alembic.
    """
    import object_acl.core.models  # noqa: F401  (registers tables)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_schema(engine: AsyncEngine) -> None:
    import object_acl.core.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, connection_record: Any) -> None:
        _ = connection_record
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


__all__ = ["create_engine", "create_schema", "create_session_factory", "drop_schema"]
