"""Schema setup for the pub/sub tables and the insert notification trigger.

``run_migrations`` is safe to run on every startup: tables and the enum
type are created only when missing, and the trigger function is replaced
in place.

The trigger is what makes live delivery work. ``pg_notify`` is
transactional, so the notification carrying ``NEW.id`` is delivered to
listeners only when the publishing transaction commits.

Example:
    >>> engine = create_engine_from_settings(Settings())
    >>> await run_migrations(engine, channel="new_message")
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from pgpubsub.constants import DEFAULT_NOTIFY_CHANNEL
from pgpubsub.errors import StoreError
from pgpubsub.orm_models import Base

logger = logging.getLogger(__name__)

TRIGGER_NAME = "new_message_notify"
FUNCTION_NAME = "notify_new_message"


def trigger_statements(channel: str = DEFAULT_NOTIFY_CHANNEL) -> list[str]:
    """Return the DDL that installs the ``messages`` insert trigger for ``channel``."""
    return [
        f"""
        CREATE OR REPLACE FUNCTION {FUNCTION_NAME}() RETURNS TRIGGER AS $$
        BEGIN
            PERFORM pg_notify('{channel}', NEW.id::text);
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql
        """,
        f"DROP TRIGGER IF EXISTS {TRIGGER_NAME} ON messages",
        f"""
        CREATE TRIGGER {TRIGGER_NAME}
            AFTER INSERT ON messages
            FOR EACH ROW EXECUTE PROCEDURE {FUNCTION_NAME}()
        """,
    ]


async def run_migrations(engine: AsyncEngine, channel: str = DEFAULT_NOTIFY_CHANNEL) -> None:
    """Create tables, the ``message_status`` enum and the notify trigger.

    All statements run in one transaction. Failures are raised as
    ``StoreError``.
    """
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            for statement in trigger_statements(channel):
                await conn.execute(text(statement))
    except SQLAlchemyError as exc:
        raise StoreError(f"migration failed: {exc}") from exc
    logger.info("migrations applied (notify channel %s)", channel)
