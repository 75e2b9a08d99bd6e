"""
Exception classes for the pub/sub engine.
Each failure kind the engine can surface gets its own class so callers can
decide which ones to ignore (for example a duplicate topic on startup).
"""

from __future__ import annotations


class PubSubError(Exception):
    """Base exception for all pub/sub errors."""


class DuplicateTopicError(PubSubError):
    """Raised when creating a topic whose name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Topic '{name}' already exists")


class UnknownTopicError(PubSubError):
    """Raised when publishing to a topic that does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Topic '{name}' does not exist")


class StoreError(PubSubError):
    """Raised for database, connection and transaction failures.

    The underlying driver or SQLAlchemy exception is kept as ``__cause__``.
    """


class MalformedNotificationError(PubSubError):
    """Raised when a notification payload is not a decimal message id."""

    def __init__(self, payload: str):
        self.payload = payload
        super().__init__(f"Notification payload {payload!r} is not a message id")


class ConfigurationError(PubSubError):
    """Raised when a required setting is missing."""

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"Missing required setting: {setting}")


class CallbackError(PubSubError):
    """Wraps an exception raised by a subscriber callback.

    Used inside the delivery engine to abandon the claim transaction; it is
    logged and never escapes ``subscribe``.
    """

    def __init__(self, message_id: int, original: BaseException):
        self.message_id = message_id
        self.original = original
        super().__init__(f"Callback failed for message {message_id}: {original!r}")
