"""Cooperative cancellation shared between pub/sub handles.

A ``ShutdownSignal`` is set once and observed by any number of waiters.
Cloned ``PubSub`` handles hold the same instance, so shutting down any of
them stops every subscription started from any of them.
"""

from __future__ import annotations

import asyncio


class ShutdownSignal:
    """Settable-once flag with an awaitable ``wait()``.

    Example:
        >>> signal = ShutdownSignal()
        >>> signal.set()
        >>> signal.set()  # no-op
        >>> signal.is_set()
        True
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Return once the signal has been set."""
        await self._event.wait()
