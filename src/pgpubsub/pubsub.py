"""Public handle for topic management, publishing and subscribing.

``PubSub`` ties the topic registry, the message queue, the delivery engine
and a shutdown signal to one store.

Why this exists:
- Callers need one object to publish, subscribe and stop subscriptions
- Cloned handles share the shutdown signal, so one ``shutdown()`` stops
  every subscription started from any clone

How to use:
- Prefer ``async with`` so subscriptions cannot outlive the handle:

    Example:
        >>> async with PubSub.from_settings() as pubsub:
        ...     await pubsub.create_topic("orders")
        ...     await pubsub.push("orders", b"hello")
        ...     await pubsub.subscribe("orders", handle)  # until shutdown()

- Without ``async with``, call ``shutdown()`` in a ``finally`` block.
- Dropping the last reference to a handle also sets the shared signal, but
  finalizer timing is up to the interpreter; do not rely on it.
"""

from __future__ import annotations

import logging
from typing import Optional

from pgpubsub.config import Settings
from pgpubsub.delivery import Callback, DeliveryEngine
from pgpubsub.messages import MessageQueue
from pgpubsub.metrics import MESSAGES_PUBLISHED_TOTAL
from pgpubsub.orm_models import Topic
from pgpubsub.shutdown import ShutdownSignal
from pgpubsub.store import PostgresStore
from pgpubsub.topics import TopicRegistry

logger = logging.getLogger(__name__)


class PubSub:
    """Pub/sub handle over a store.

    Properties:
        - store: the store adapter (``PostgresStore`` in production)
        - settings: ``Settings`` used for the channel and notification policy
        - shutdown_signal: the ``ShutdownSignal`` shared with clones
    """

    def __init__(
        self,
        store,
        *,
        settings: Optional[Settings] = None,
        shutdown: Optional[ShutdownSignal] = None,
        topics: Optional[TopicRegistry] = None,
        queue: Optional[MessageQueue] = None,
    ) -> None:
        self.store = store
        self.settings = settings or Settings()
        self.shutdown_signal = shutdown or ShutdownSignal()
        self._topics = topics or TopicRegistry(store)
        self._queue = queue or MessageQueue(store)
        self._engine = DeliveryEngine(store, self._queue, self.shutdown_signal, self.settings)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "PubSub":
        """Build a handle with its own engine from ``DATABASE_URL``."""
        settings = settings or Settings()
        return cls(PostgresStore.from_settings(settings), settings=settings)

    def clone(self) -> "PubSub":
        """Return a handle sharing this handle's store and shutdown signal."""
        return PubSub(
            self.store,
            settings=self.settings,
            shutdown=self.shutdown_signal,
            topics=self._topics,
            queue=self._queue,
        )

    def __del__(self) -> None:
        # A discarded handle stops the subscriptions sharing its signal, clones included.
        signal = getattr(self, "shutdown_signal", None)
        if signal is not None:
            signal.set()

    async def __aenter__(self) -> "PubSub":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    def shutdown(self) -> None:
        """Ask every subscription sharing this handle's signal to stop.

        Idempotent. Returns immediately; in-flight deliveries finish first.
        """
        if not self.shutdown_signal.is_set():
            logger.info("shutdown requested")
        self.shutdown_signal.set()

    async def close(self) -> None:
        """Shut down and release the store's pooled connections."""
        self.shutdown()
        await self.store.dispose()

    async def create_topic(self, name: str) -> Topic:
        return await self._topics.create(name)

    async def remove_topic(self, name: str) -> int:
        return await self._topics.remove(name)

    async def list_topics(self) -> list[Topic]:
        return await self._topics.list_all()

    async def push(self, topic: str, content: bytes) -> int:
        """Publish ``content`` to ``topic`` and return the message id."""
        message_id = await self._queue.push(topic, content)
        MESSAGES_PUBLISHED_TOTAL.labels(topic=topic).inc()
        return message_id

    async def subscribe(self, topic: str, callback: Callback) -> None:
        """Deliver messages of ``topic`` to ``callback`` until ``shutdown()``."""
        await self._engine.subscribe(topic, callback)

    async def stats(self, topic: str) -> dict[str, int]:
        return await self._queue.status_counts(topic)
