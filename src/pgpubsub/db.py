"""Database engine and session factory creation for async SQLAlchemy.

This module centralizes engine/session creation so the CLI, the store
adapter and the integration tests all build engines the same way. URLs are
normalized for the ``asyncpg`` driver (see ``normalize_database_url``).

How to use:
- Build an engine once per process and hand it to ``PostgresStore``:

    Example:
        >>> from pgpubsub.db import create_engine_from_settings
        >>> engine = create_engine_from_settings(Settings())
        >>> store = PostgresStore(engine)
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pgpubsub.config import Settings


def create_engine_from_settings(settings: Settings | None = None) -> AsyncEngine:
    """Return an async engine for ``settings.database_url``.

    Raises ``ConfigurationError`` when ``DATABASE_URL`` is not set.
    """
    settings = settings or Settings()
    return create_async_engine(settings.require_database_url(), pool_pre_ping=settings.pool_pre_ping)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return a session factory bound to ``engine``.

    Sessions use ``expire_on_commit=False`` so rows read inside a claim stay
    usable after the transaction ends.
    """
    return async_sessionmaker(engine, expire_on_commit=False)
