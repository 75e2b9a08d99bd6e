"""
pgpubsub

Durable publish/subscribe on PostgreSQL: topics, ordered backlog delivery,
live delivery through LISTEN/NOTIFY, and skip-locked claims so concurrent
subscribers never deliver the same message twice.
"""

__version__ = "0.1.0"

from .config import Settings
from .delivery import Callback, DeliveryEngine
from .errors import (
    ConfigurationError,
    DuplicateTopicError,
    MalformedNotificationError,
    PubSubError,
    StoreError,
    UnknownTopicError,
)
from .messages import MessageQueue
from .migrations import run_migrations
from .pubsub import PubSub
from .shutdown import ShutdownSignal
from .store import PostgresStore
from .topics import TopicRegistry

__all__ = [
    # Handle
    "PubSub",
    # Components
    "DeliveryEngine",
    "MessageQueue",
    "TopicRegistry",
    "ShutdownSignal",
    "PostgresStore",
    "Callback",
    # Setup
    "Settings",
    "run_migrations",
    # Errors
    "PubSubError",
    "DuplicateTopicError",
    "UnknownTopicError",
    "StoreError",
    "MalformedNotificationError",
    "ConfigurationError",
]
