"""In-memory stand-ins for the PostgreSQL store used by the unit tests.

``FakeBackend`` holds topics, messages and row locks. ``FakeStore`` gives
each transaction a ``FakeSession`` that stages status updates and row locks,
applying them on commit and dropping them on rollback. ``FakeQueue.claim``
skips rows locked by another open transaction, like ``SKIP LOCKED``, and
``push`` notifies every armed listener, like the insert trigger.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager

import pytest

from pgpubsub.config import Settings
from pgpubsub.constants import STATUS_NEW, STATUS_PROCESSED
from pgpubsub.errors import DuplicateTopicError, UnknownTopicError
from pgpubsub.orm_models import Topic
from pgpubsub.pubsub import PubSub

CHANNEL = "new_message"


class FakeBackend:
    def __init__(self):
        self.topics: dict[str, int] = {}
        self.messages: dict[int, dict] = {}
        self.locks: set[int] = set()
        self.listeners: list["FakeListener"] = []
        self.calls: list[str] = []
        self._topic_ids = itertools.count(1)
        self._message_ids = itertools.count(1)

    def add_topic(self, name: str) -> int:
        topic_id = next(self._topic_ids)
        self.topics[name] = topic_id
        return topic_id

    def insert_message(self, topic: str, content: bytes) -> int:
        message_id = next(self._message_ids)
        self.messages[message_id] = {"topic": topic, "content": content, "status": STATUS_NEW}
        for listener in list(self.listeners):
            if listener.channel == CHANNEL:
                listener.notify(str(message_id))
        return message_id

    def status(self, message_id: int) -> str:
        return self.messages[message_id]["status"]


class FakeSession:
    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.locked: set[int] = set()
        self.updates: dict[int, str] = {}

    def commit(self):
        for message_id, status in self.updates.items():
            self.backend.messages[message_id]["status"] = status
        self._release()

    def rollback(self):
        self._release()

    def _release(self):
        self.backend.locks -= self.locked
        self.locked.clear()
        self.updates.clear()


class FakeListener:
    def __init__(self, backend: FakeBackend, channel: str):
        self.backend = backend
        self.channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self):
        self.backend.listeners.append(self)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.backend.listeners.remove(self)

    def notify(self, item):
        self._queue.put_nowait(item)

    async def get(self) -> str:
        item = await self._queue.get()
        if isinstance(item, Exception):
            raise item
        return item


class FakeStore:
    def __init__(self, backend: FakeBackend):
        self.backend = backend
        self.engine = object()
        self.disposed = False

    @asynccontextmanager
    async def transaction(self):
        session = FakeSession(self.backend)
        try:
            yield session
        except BaseException:
            session.rollback()
            raise
        session.commit()

    def listen(self, channel: str) -> FakeListener:
        self.backend.calls.append("listen")
        return FakeListener(self.backend, channel)

    async def dispose(self):
        self.disposed = True


class FakeTopics:
    def __init__(self, backend: FakeBackend):
        self.backend = backend

    async def create(self, name: str) -> Topic:
        if name in self.backend.topics:
            raise DuplicateTopicError(name)
        return Topic(id=self.backend.add_topic(name), name=name)

    async def remove(self, name: str) -> int:
        return 1 if self.backend.topics.pop(name, None) is not None else 0

    async def get(self, name: str):
        if name not in self.backend.topics:
            return None
        return Topic(id=self.backend.topics[name], name=name)

    async def list_all(self):
        return [Topic(id=i, name=n) for n, i in sorted(self.backend.topics.items())]


class FakeQueue:
    def __init__(self, backend: FakeBackend):
        self.backend = backend

    async def push(self, topic: str, content: bytes) -> int:
        if topic not in self.backend.topics:
            raise UnknownTopicError(topic)
        return self.backend.insert_message(topic, bytes(content))

    async def topic_id(self, topic: str):
        self.backend.calls.append("topic_id")
        return self.backend.topics.get(topic)

    async def pending_ids(self, topic: str) -> list[int]:
        self.backend.calls.append("pending_ids")
        return sorted(
            message_id
            for message_id, row in self.backend.messages.items()
            if row["topic"] == topic and row["status"] == STATUS_NEW
        )

    async def claim(self, session: FakeSession, message_id: int, topic: str):
        row = self.backend.messages.get(message_id)
        if row is None or row["topic"] != topic or row["status"] != STATUS_NEW:
            return None
        if message_id in self.backend.locks:
            return None
        self.backend.locks.add(message_id)
        session.locked.add(message_id)
        return row["content"]

    async def mark_processed(self, session: FakeSession, message_id: int) -> None:
        session.updates[message_id] = STATUS_PROCESSED

    async def status_counts(self, topic: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for row in self.backend.messages.values():
            if row["topic"] == topic:
                counts[row["status"]] = counts.get(row["status"], 0) + 1
        return counts


def make_pubsub(backend: FakeBackend, **settings_overrides) -> PubSub:
    settings = Settings(notify_channel=CHANNEL, **settings_overrides)
    store = FakeStore(backend)
    return PubSub(
        store,
        settings=settings,
        topics=FakeTopics(backend),
        queue=FakeQueue(backend),
    )


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll ``predicate`` until it is true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def pubsub(backend):
    return make_pubsub(backend)
