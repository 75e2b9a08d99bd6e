"""
Command-line interface for pgpubsub.

Environment:
  - DATABASE_URL (required)
  - PUBSUB_NOTIFY_CHANNEL (default new_message)
  - LOG_LEVEL (default INFO)

Usage:
  pgpubsub migrate
  pgpubsub add-topic orders
  echo -n hello | pgpubsub publish orders
  pgpubsub subscribe orders --count 1
"""

import asyncio
import signal
from typing import BinaryIO, Optional

import click
from click.core import ParameterSource

from .config import Settings
from .constants import MESSAGE_STATUSES
from .errors import PubSubError
from .metrics import start_metrics_server
from .migrations import run_migrations
from .pubsub import PubSub
from .tracing import start_tracing
from .utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _build_pubsub(settings: Settings) -> PubSub:
    return PubSub.from_settings(settings)


def _run(settings: Settings, action):
    """Run ``action(pubsub)`` on a fresh handle and map errors to exit codes."""

    async def runner():
        pubsub = _build_pubsub(settings)
        try:
            return await action(pubsub)
        finally:
            await pubsub.close()

    try:
        return asyncio.run(runner())
    except PubSubError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.version_option(package_name="pgpubsub")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """Durable pub/sub on PostgreSQL"""
    try:
        settings = Settings()
    except ValueError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}") from exc
    setup_logging(level="DEBUG" if verbose else settings.log_level)
    ctx.obj = settings


@main.command()
@click.pass_obj
def migrate(settings: Settings):
    """Create tables and install the notification trigger."""

    async def action(pubsub: PubSub):
        await run_migrations(pubsub.store.engine, channel=settings.notify_channel)

    _run(settings, action)
    click.echo("Migrations completed successfully")


@main.command("add-topic")
@click.argument("topic_name")
@click.pass_obj
def add_topic(settings: Settings, topic_name: str):
    """Create a topic."""
    _run(settings, lambda pubsub: pubsub.create_topic(topic_name))
    click.echo(f"Topic '{topic_name}' created successfully")


@main.command("remove-topic")
@click.argument("topic_name")
@click.pass_obj
def remove_topic(settings: Settings, topic_name: str):
    """Remove a topic (no-op if it does not exist)."""
    _run(settings, lambda pubsub: pubsub.remove_topic(topic_name))
    click.echo(f"Topic '{topic_name}' removed successfully")


@main.command("topics")
@click.pass_obj
def list_topics(settings: Settings):
    """List topic names."""
    for topic in _run(settings, lambda pubsub: pubsub.list_topics()):
        click.echo(topic.name)


@main.command()
@click.argument("topic_name")
@click.argument("data", required=False)
@click.option(
    "--file",
    "source",
    type=click.File("rb"),
    default="-",
    help="Read the payload from a file (default: stdin) instead of DATA",
)
@click.pass_context
def publish(ctx: click.Context, topic_name: str, data: Optional[str], source: BinaryIO):
    """Publish DATA (or --file, or stdin) to a topic."""
    settings: Settings = ctx.obj
    if data is not None:
        if ctx.get_parameter_source("source") is not ParameterSource.DEFAULT:
            raise click.UsageError("Pass either DATA or --file, not both")
        content = data.encode("utf-8")
    else:
        content = source.read()

    message_id = _run(settings, lambda pubsub: pubsub.push(topic_name, content))
    click.echo(f"Published message {message_id} to '{topic_name}'")


@main.command()
@click.argument("topic_name")
@click.option("--count", type=int, help="Exit after this many messages")
@click.option("--hex", "as_hex", is_flag=True, help="Print payloads as hex")
@click.option("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
@click.option("--trace", is_flag=True, help="Print OpenTelemetry spans to the console")
@click.pass_obj
def subscribe(
    settings: Settings,
    topic_name: str,
    count: Optional[int],
    as_hex: bool,
    metrics_port: Optional[int],
    trace: bool,
):
    """Print every message of a topic until interrupted."""
    if metrics_port is not None:
        start_metrics_server(metrics_port)
        logger.info("metrics server listening on :%d /metrics", metrics_port)
    if trace:
        start_tracing()

    async def action(pubsub: PubSub):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, pubsub.shutdown)
        received = 0

        def on_message(content: bytes) -> None:
            nonlocal received
            click.echo(content.hex() if as_hex else content.decode("utf-8", errors="backslashreplace"))
            received += 1
            if count is not None and received >= count:
                pubsub.shutdown()

        try:
            await pubsub.subscribe(topic_name, on_message)
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)

    _run(settings, action)


@main.command()
@click.argument("topic_name")
@click.pass_obj
def stats(settings: Settings, topic_name: str):
    """Show message counts per status for a topic."""
    counts = _run(settings, lambda pubsub: pubsub.stats(topic_name))
    for status in MESSAGE_STATUSES:
        click.echo(f"{status}: {counts.get(status, 0)}")


if __name__ == "__main__":
    main()
