"""Topic registry: create, remove and look up named topics.

Topic mutations are single statements, so a failure never leaves a
partially written registry behind.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import IntegrityError

from pgpubsub.errors import DuplicateTopicError
from pgpubsub.orm_models import Topic

logger = logging.getLogger(__name__)


class TopicRegistry:
    """Topic rows stored through a ``PostgresStore``."""

    def __init__(self, store) -> None:
        self._store = store

    async def create(self, name: str) -> Topic:
        """Insert a topic named ``name``.

        Raises ``DuplicateTopicError`` when the name is taken; the existing
        row is left untouched.
        """
        async with self._store.transaction() as session:
            try:
                result = await session.execute(
                    insert(Topic).values(name=name).returning(Topic.id)
                )
            except IntegrityError as exc:
                raise DuplicateTopicError(name) from exc
            topic_id = result.scalar_one()
        logger.info("created topic %s (id=%s)", name, topic_id)
        return Topic(id=topic_id, name=name)

    async def remove(self, name: str) -> int:
        """Delete the topic named ``name`` and return the number of rows removed.

        Removing a missing topic is a no-op and returns ``0``.
        """
        async with self._store.transaction() as session:
            result = await session.execute(delete(Topic).where(Topic.name == name))
        removed = result.rowcount or 0
        logger.info("removed topic %s (%d row(s))", name, removed)
        return removed

    async def get(self, name: str) -> Topic | None:
        async with self._store.transaction() as session:
            result = await session.execute(select(Topic).where(Topic.name == name))
            return result.scalar_one_or_none()

    async def list_all(self) -> list[Topic]:
        async with self._store.transaction() as session:
            result = await session.execute(select(Topic).order_by(Topic.name))
            return list(result.scalars().all())
