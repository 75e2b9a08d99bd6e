"""SQLAlchemy ORM models for topics and messages.

These declarative models mirror the PostgreSQL schema the delivery engine
relies on. ``run_migrations`` creates them; every query in the package is
built from them so column names live in one place.

Models provided:
- ``Topic``: Named destination, unique by name
- ``Message``: Opaque payload with a forward-only delivery status
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, LargeBinary, String, func, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pgpubsub.constants import MESSAGE_STATUSES, STATUS_NEW


class Base(DeclarativeBase):
    """Base class for all ORM models."""


MessageStatus = Enum(*MESSAGE_STATUSES, name="message_status")


class Topic(Base):
    """Named destination for messages.

    Fields:
        - id: Surrogate primary key
        - name: Unique topic name
    """
    __tablename__ = "topics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"Topic(id={self.id!r}, name={self.name!r})"


class Message(Base):
    """A published message.

    Fields:
        - id: Monotonically increasing primary key, assigned at insert
        - topic_id: Owning topic
        - content: Opaque payload bytes
        - status: ``new`` -> ``processing`` -> ``processed``, never backwards
        - published_at: Insert time, used for backlog ordering only
    """
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    topic_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("topics.id"), index=True)
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    status: Mapped[str] = mapped_column(MessageStatus, server_default=text(f"'{STATUS_NEW}'"))
    published_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.current_timestamp()
    )
