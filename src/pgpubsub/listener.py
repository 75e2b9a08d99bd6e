"""LISTEN/NOTIFY support on top of a dedicated asyncpg connection.

The delivery engine needs notifications queued from the moment it starts
listening, before it reads the backlog. ``NotificationListener`` checks a
connection out of the SQLAlchemy pool, registers an asyncpg listener on
enter, and buffers every payload in an ``asyncio.Queue`` until ``get()`` is
called. Leaving the context unregisters the listener and returns the
connection to the pool.

If the server closes the listening connection, the next ``get()`` raises
``StoreError`` instead of waiting forever.

Example:
    >>> async with NotificationListener(engine, "new_message") as listener:
    ...     payload = await listener.get()
    ...     message_id = parse_notification(payload)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from pgpubsub.errors import MalformedNotificationError, StoreError

logger = logging.getLogger(__name__)

_TERMINATED = object()


def parse_notification(payload: str) -> int:
    """Return the message id carried by a notification payload.

    The trigger sends the id as a decimal string. Anything else raises
    ``MalformedNotificationError``.

    Example:
        >>> parse_notification("42")
        42
    """
    text = payload.strip()
    if not (text.isascii() and text.isdigit()):
        raise MalformedNotificationError(payload)
    return int(text)


class NotificationListener:
    """Buffered subscription to one notification channel.

    Properties:
        - channel: the LISTEN channel name
        - pending: number of buffered, unread payloads
    """

    def __init__(self, engine: AsyncEngine, channel: str) -> None:
        self.channel = channel
        self._engine = engine
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._conn: AsyncConnection | None = None
        self._driver: Any = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def __aenter__(self) -> "NotificationListener":
        try:
            self._conn = await self._engine.connect()
            raw = await self._conn.get_raw_connection()
            self._driver = raw.driver_connection
            await self._driver.add_listener(self.channel, self._on_notification)
        except SQLAlchemyError as exc:
            await self._release()
            raise StoreError(f"could not listen on {self.channel!r}: {exc}") from exc
        except Exception:
            await self._release()
            raise
        self._driver.add_termination_listener(self._on_termination)
        logger.debug("listening on channel %s", self.channel)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._driver is not None and not self._driver.is_closed():
            self._driver.remove_termination_listener(self._on_termination)
            await self._driver.remove_listener(self.channel, self._on_notification)
        await self._release()
        logger.debug("stopped listening on channel %s", self.channel)

    async def _release(self) -> None:
        if self._conn is not None:
            await self._conn.close()
        self._conn = None
        self._driver = None

    def _on_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        if channel == self.channel:
            self._queue.put_nowait(payload)

    def _on_termination(self, connection: Any) -> None:
        self._queue.put_nowait(_TERMINATED)

    async def get(self) -> str:
        """Wait for the next payload on the channel."""
        item = await self._queue.get()
        if item is _TERMINATED:
            raise StoreError(f"listener connection for {self.channel!r} was closed")
        return item
