"""PostgreSQL store adapter: scoped transactions and notification channels.

Everything the engine does against the database goes through
``PostgresStore``. It owns the error boundary: any ``SQLAlchemyError``
raised inside ``transaction()`` is re-raised as ``StoreError`` with the
original exception chained, and the transaction is rolled back.

How to use:

    Example:
        >>> store = PostgresStore(create_engine_from_settings())
        >>> async with store.transaction() as session:
        ...     await session.execute(select(Topic))
        >>> async with store.listen("new_message") as listener:
        ...     payload = await listener.get()
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from pgpubsub.config import Settings
from pgpubsub.db import create_engine_from_settings, create_session_factory
from pgpubsub.errors import StoreError
from pgpubsub.listener import NotificationListener


class PostgresStore:
    """Transactional access to the pub/sub tables plus LISTEN/NOTIFY.

    Properties:
        - engine: the underlying ``AsyncEngine``
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine
        self._session_factory = create_session_factory(engine)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "PostgresStore":
        return cls(create_engine_from_settings(settings))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session inside a transaction.

        Commits when the block exits cleanly and rolls back when it raises.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as exc:
            raise StoreError(str(exc)) from exc

    def listen(self, channel: str) -> NotificationListener:
        """Return a listener for ``channel``; use it as an async context manager."""
        return NotificationListener(self.engine, channel)

    async def dispose(self) -> None:
        """Close all pooled connections."""
        await self.engine.dispose()
