"""Message queue: publish path and the row-level claim used for delivery.

Messages move forward only: ``new`` -> ``processed``. A message is claimed
with ``SELECT ... FOR UPDATE SKIP LOCKED`` so that when several
subscribers race for the same row, exactly one gets it and the others
move on without waiting.

Key entrypoints:
 - ``push``: insert a ``new`` message for a topic name
 - ``topic_id``: resolve a topic name, ``None`` when it does not exist
 - ``pending_ids``: the backlog, oldest first
 - ``claim`` / ``mark_processed``: used inside one delivery transaction
"""

from __future__ import annotations

import logging

from sqlalchemy import LargeBinary, Select, func, insert, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pgpubsub.constants import STATUS_NEW, STATUS_PROCESSED
from pgpubsub.errors import UnknownTopicError
from pgpubsub.orm_models import Message, Topic

logger = logging.getLogger(__name__)


def _topic_id(topic: str):
    return select(Topic.id).where(Topic.name == topic).scalar_subquery()


def backlog_query(topic: str) -> Select:
    """Ids of ``new`` messages for ``topic`` in publish order.

    Rows published in the same transaction share ``published_at``; the id
    breaks the tie in insert order.
    """
    return (
        select(Message.id)
        .join(Topic, Message.topic_id == Topic.id)
        .where(Topic.name == topic, Message.status == STATUS_NEW)
        .order_by(Message.published_at.asc(), Message.id.asc())
    )


def claim_query(message_id: int, topic: str) -> Select:
    """Lock a single ``new`` message of ``topic``, skipping rows locked elsewhere."""
    return (
        select(Message.content)
        .where(
            Message.id == message_id,
            Message.topic_id == _topic_id(topic),
            Message.status == STATUS_NEW,
        )
        .with_for_update(skip_locked=True)
    )


class MessageQueue:
    """Durable message rows stored through a ``PostgresStore``."""

    def __init__(self, store) -> None:
        self._store = store

    async def push(self, topic: str, content: bytes) -> int:
        """Publish ``content`` to ``topic`` and return the new message id.

        The insert trigger emits the id on the notification channel when the
        transaction commits. Raises ``UnknownTopicError`` when no topic is
        named ``topic``.
        """
        stmt = (
            insert(Message)
            .from_select(
                ["topic_id", "content"],
                select(Topic.id, literal(bytes(content), LargeBinary)).where(Topic.name == topic),
            )
            .returning(Message.id)
        )
        async with self._store.transaction() as session:
            result = await session.execute(stmt)
            message_id = result.scalar_one_or_none()
        if message_id is None:
            raise UnknownTopicError(topic)
        logger.debug("pushed message %s to %s (%d bytes)", message_id, topic, len(content))
        return message_id

    async def topic_id(self, topic: str) -> int | None:
        """Return the id of the topic named ``topic``, or ``None``."""
        async with self._store.transaction() as session:
            result = await session.execute(select(Topic.id).where(Topic.name == topic))
            return result.scalar_one_or_none()

    async def pending_ids(self, topic: str) -> list[int]:
        """Return the ids of all ``new`` messages for ``topic``, oldest first."""
        async with self._store.transaction() as session:
            result = await session.execute(backlog_query(topic))
            return list(result.scalars().all())

    async def claim(self, session: AsyncSession, message_id: int, topic: str) -> bytes | None:
        """Lock message ``message_id`` for this transaction and return its content.

        Returns ``None`` when the row is locked by another claimant, is no
        longer ``new``, or belongs to a different topic.
        """
        result = await session.execute(claim_query(message_id, topic))
        content = result.scalar_one_or_none()
        return bytes(content) if content is not None else None

    async def mark_processed(self, session: AsyncSession, message_id: int) -> None:
        await session.execute(
            update(Message).where(Message.id == message_id).values(status=STATUS_PROCESSED)
        )

    async def status_counts(self, topic: str) -> dict[str, int]:
        """Return ``{status: count}`` for the messages of ``topic``."""
        stmt = (
            select(Message.status, func.count(Message.id))
            .join(Topic, Message.topic_id == Topic.id)
            .where(Topic.name == topic)
            .group_by(Message.status)
        )
        async with self._store.transaction() as session:
            result = await session.execute(stmt)
            return {status: count for status, count in result.all()}
