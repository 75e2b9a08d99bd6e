"""
Subscription loop: backlog drain followed by live LISTEN/NOTIFY delivery.

- Starts listening on the notification channel before reading the backlog
- Delivers backlog messages oldest first, then notified messages in arrival order
- Claims every message in its own transaction with FOR UPDATE SKIP LOCKED
- Marks a message processed only after the callback succeeds
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from typing import Awaitable, Callable, Optional, Union

from pgpubsub.config import Settings
from pgpubsub.constants import SOURCE_BACKLOG, SOURCE_NOTIFICATION
from pgpubsub.errors import CallbackError, MalformedNotificationError, UnknownTopicError
from pgpubsub.listener import parse_notification
from pgpubsub.messages import MessageQueue
from pgpubsub.metrics import (
    ACTIVE_SUBSCRIPTIONS,
    CALLBACK_FAILURES_TOTAL,
    CLAIMS_SKIPPED_TOTAL,
    DELIVERY_LATENCY_SECONDS,
    MALFORMED_NOTIFICATIONS_TOTAL,
    MESSAGES_DELIVERED_TOTAL,
)
from pgpubsub.shutdown import ShutdownSignal
from pgpubsub.tracing import get_tracer

logger = logging.getLogger(__name__)


Callback = Callable[[bytes], Union[Awaitable[None], None]]


async def _invoke(callback: Callback, content: bytes) -> None:
    result = callback(content)
    if inspect.isawaitable(result):
        await result


class DeliveryEngine:
    """Runs subscription loops for a store, a message queue and a shutdown signal.

    Ordering:
    - Backlog messages are delivered in publish order (``published_at``, then id)
    - Live messages are delivered in notification arrival order, which is the
      commit order of the publishing transactions
    - No global order is promised across subscribers racing on one topic

    Concurrency model:
    - One subscription is one task; it runs one claim/callback/commit cycle at
      a time, so a callback is never invoked concurrently with itself
    - The row lock is the only mutual exclusion between subscriptions. A row
      locked by another subscriber is skipped, not waited for
    - The claim transaction stays open while the callback runs

    Failure semantics:
    - A callback that raises rolls its transaction back; the message stays
      ``new`` and the loop continues
    - Store errors end ``subscribe`` with ``StoreError``; resubscribing drains
      whatever is still ``new``
    - Malformed notification payloads raise ``MalformedNotificationError``
      unless ``malformed_notifications`` is ``skip``

    Example:
    ```python
    engine = DeliveryEngine(store, MessageQueue(store), ShutdownSignal())
    await engine.subscribe("orders", handle_order)
    ```
    """

    def __init__(
        self,
        store,
        queue: MessageQueue,
        shutdown: ShutdownSignal,
        settings: Optional[Settings] = None,
    ) -> None:
        self._store = store
        self._queue = queue
        self._shutdown = shutdown
        self._settings = settings or Settings()
        self._tracer = get_tracer()

    async def subscribe(self, topic: str, callback: Callback) -> None:
        """Deliver every ``new`` message of ``topic`` to ``callback`` until shutdown.

        Returns when the shutdown signal is set. Raises ``UnknownTopicError``
        when no topic is named ``topic`` and ``StoreError`` on any database
        failure.
        """
        channel = self._settings.notify_channel
        ACTIVE_SUBSCRIPTIONS.labels(topic=topic).inc()
        try:
            # Listen first so nothing published during the drain is missed.
            async with self._store.listen(channel) as listener:
                if await self._queue.topic_id(topic) is None:
                    raise UnknownTopicError(topic)
                logger.info("subscribed to %s (channel %s)", topic, channel)
                await self._drain_backlog(topic, callback)
                await self._run_live(topic, callback, listener)
        finally:
            ACTIVE_SUBSCRIPTIONS.labels(topic=topic).dec()
        logger.info("subscription to %s stopped", topic)

    async def _drain_backlog(self, topic: str, callback: Callback) -> None:
        message_ids = await self._queue.pending_ids(topic)
        logger.info("draining %d backlog message(s) for %s", len(message_ids), topic)
        for message_id in message_ids:
            if self._shutdown.is_set():
                return
            await self._deliver(topic, message_id, callback, SOURCE_BACKLOG)

    async def _run_live(self, topic: str, callback: Callback, listener) -> None:
        while not self._shutdown.is_set():
            payload = await self._next_notification(listener)
            if payload is None:
                break
            try:
                message_id = parse_notification(payload)
            except MalformedNotificationError:
                MALFORMED_NOTIFICATIONS_TOTAL.inc()
                if self._settings.malformed_notifications == "skip":
                    logger.warning("skipping malformed notification %r on %s", payload, topic)
                    continue
                raise
            await self._deliver(topic, message_id, callback, SOURCE_NOTIFICATION)

    async def _next_notification(self, listener) -> Optional[str]:
        """Wait for a notification payload, or return ``None`` on shutdown."""
        receive = asyncio.ensure_future(listener.get())
        stop = asyncio.ensure_future(self._shutdown.wait())
        try:
            await asyncio.wait({receive, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (receive, stop):
                if not task.done():
                    task.cancel()
        if stop.done():
            # Shutdown wins a tie; an unread notification is only a hint.
            if receive.done() and not receive.cancelled():
                receive.exception()
            return None
        return receive.result()

    async def _deliver(self, topic: str, message_id: int, callback: Callback, source: str) -> bool:
        """Claim, process and commit one message. Return True when delivered."""
        start = time.perf_counter()
        with self._tracer.start_as_current_span("deliver") as span:
            span.set_attribute("topic", topic)
            span.set_attribute("message_id", message_id)
            span.set_attribute("source", source)
            try:
                async with self._store.transaction() as session:
                    content = await self._queue.claim(session, message_id, topic)
                    if content is None:
                        CLAIMS_SKIPPED_TOTAL.labels(topic=topic, source=source).inc()
                        logger.debug("message %s not claimable on %s, skipping", message_id, topic)
                        return False
                    try:
                        await _invoke(callback, content)
                    except Exception as exc:
                        raise CallbackError(message_id, exc) from exc
                    await self._queue.mark_processed(session, message_id)
            except CallbackError as exc:
                CALLBACK_FAILURES_TOTAL.labels(topic=topic).inc()
                span.record_exception(exc.original)
                logger.warning(
                    "callback failed for message %s on %s, left as new: %r",
                    message_id,
                    topic,
                    exc.original,
                )
                return False
        MESSAGES_DELIVERED_TOTAL.labels(topic=topic, source=source).inc()
        DELIVERY_LATENCY_SECONDS.observe(time.perf_counter() - start)
        logger.debug("delivered message %s on %s via %s", message_id, topic, source)
        return True
