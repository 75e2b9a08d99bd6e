"""Publish a structured payload and read it back within a time limit.

pgpubsub stores and delivers opaque bytes; callers choose the encoding.
Here the payload is a pydantic model serialized as JSON. A payload that
fails to decode raises inside the callback, so the message stays ``new``.

``subscribe`` only returns on shutdown, so callers that want a bounded run
wrap it with a timeout and call ``shutdown()`` when the time is up.

Environment variables:
- DATABASE_URL: PostgreSQL connection string (required)
- TOPIC: topic to publish to and read from (default: my_topic)
- TIMEOUT_SECONDS: how long to subscribe for (default: 1)

Usage:
  python -m scripts.structured_payload
"""

from __future__ import annotations

import asyncio
import os

from pydantic import BaseModel

from pgpubsub import DuplicateTopicError, PubSub, Settings, run_migrations
from pgpubsub.delivery import Callback


class MyData(BaseModel):
    field1: str
    field2: int


def encode(data: MyData) -> bytes:
    return data.model_dump_json().encode("utf-8")


def decode(content: bytes) -> MyData:
    return MyData.model_validate_json(content)


async def subscribe_for(pubsub: PubSub, topic: str, callback: Callback, timeout: float) -> None:
    """Run a subscription for at most ``timeout`` seconds, then shut it down."""
    task = asyncio.create_task(pubsub.subscribe(topic, callback))
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout)
    except asyncio.TimeoutError:
        pubsub.shutdown()
        await task


async def _run() -> list[MyData]:
    settings = Settings()
    topic = os.getenv("TOPIC", "my_topic")
    timeout = float(os.getenv("TIMEOUT_SECONDS", "1"))
    received: list[MyData] = []

    pubsub = PubSub.from_settings(settings)
    try:
        await run_migrations(pubsub.store.engine, channel=settings.notify_channel)
        try:
            await pubsub.create_topic(topic)
        except DuplicateTopicError:
            pass
        await pubsub.push(topic, encode(MyData(field1="Hello", field2=42)))
        await subscribe_for(pubsub, topic, lambda content: received.append(decode(content)), timeout)
    finally:
        await pubsub.close()
    return received


def main() -> None:
    for data in asyncio.run(_run()):
        print(data.model_dump_json())


if __name__ == "__main__":
    main()
