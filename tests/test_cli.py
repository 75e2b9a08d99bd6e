import logging

import pytest
from click.testing import CliRunner

from conftest import make_pubsub
from pgpubsub import cli


@pytest.fixture
def runner(backend, monkeypatch):
    monkeypatch.setattr(cli, "_build_pubsub", lambda settings: make_pubsub(backend))
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield CliRunner()
    root.handlers, root.level = handlers, level


def test_add_and_remove_topic(runner, backend):
    result = runner.invoke(cli.main, ["add-topic", "orders"])
    assert result.exit_code == 0, result.output
    assert "Topic 'orders' created successfully" in result.output
    assert "orders" in backend.topics

    result = runner.invoke(cli.main, ["remove-topic", "orders"])
    assert result.exit_code == 0, result.output
    assert "Topic 'orders' removed successfully" in result.output
    assert backend.topics == {}


def test_duplicate_topic_fails(runner):
    runner.invoke(cli.main, ["add-topic", "orders"])

    result = runner.invoke(cli.main, ["add-topic", "orders"])

    assert result.exit_code == 1
    assert "already exists" in result.output


def test_publish_argument_and_stdin(runner, backend):
    runner.invoke(cli.main, ["add-topic", "orders"])

    result = runner.invoke(cli.main, ["publish", "orders", "hello"])
    assert result.exit_code == 0, result.output
    assert "Published message 1 to 'orders'" in result.output

    result = runner.invoke(cli.main, ["publish", "orders"], input=b"\x00\x01")
    assert result.exit_code == 0, result.output
    assert [row["content"] for row in backend.messages.values()] == [b"hello", b"\x00\x01"]


def test_publish_to_unknown_topic_fails(runner):
    result = runner.invoke(cli.main, ["publish", "missing", "hello"])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_subscribe_prints_backlog_and_stops_after_count(runner, backend):
    runner.invoke(cli.main, ["add-topic", "orders"])
    runner.invoke(cli.main, ["publish", "orders", "one"])
    runner.invoke(cli.main, ["publish", "orders", "two"])

    result = runner.invoke(cli.main, ["subscribe", "orders", "--count", "2"])

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["one", "two"]


def test_stats_counts_statuses(runner):
    runner.invoke(cli.main, ["add-topic", "orders"])
    runner.invoke(cli.main, ["publish", "orders", "one"])
    runner.invoke(cli.main, ["publish", "orders", "two"])
    runner.invoke(cli.main, ["subscribe", "orders", "--count", "1"])

    result = runner.invoke(cli.main, ["stats", "orders"])

    assert result.exit_code == 0, result.output
    assert result.output.splitlines() == ["new: 1", "processing: 0", "processed: 1"]


def test_migrate_uses_configured_channel(runner, monkeypatch):
    calls = []

    async def fake_run_migrations(engine, channel):
        calls.append(channel)

    monkeypatch.setattr(cli, "run_migrations", fake_run_migrations)
    monkeypatch.setenv("PUBSUB_NOTIFY_CHANNEL", "events")

    result = runner.invoke(cli.main, ["migrate"])

    assert result.exit_code == 0, result.output
    assert calls == ["events"]
    assert "Migrations completed successfully" in result.output


def test_publish_reads_stdin_without_deprecated_stream_helper(runner, backend, recwarn):
    runner.invoke(cli.main, ["add-topic", "orders"])

    result = runner.invoke(cli.main, ["publish", "orders"], input=b"raw bytes")

    assert result.exit_code == 0, result.output
    assert [row["content"] for row in backend.messages.values()] == [b"raw bytes"]
    assert not [w for w in recwarn if issubclass(w.category, DeprecationWarning) and "Click" in str(w.message)]


def test_publish_from_file(runner, backend, tmp_path):
    payload = tmp_path / "payload.bin"
    payload.write_bytes(b"\xff\x00file")
    runner.invoke(cli.main, ["add-topic", "orders"])

    result = runner.invoke(cli.main, ["publish", "orders", "--file", str(payload)])

    assert result.exit_code == 0, result.output
    assert [row["content"] for row in backend.messages.values()] == [b"\xff\x00file"]


def test_publish_rejects_data_and_file_together(runner, backend, tmp_path):
    payload = tmp_path / "payload.bin"
    payload.write_bytes(b"x")
    runner.invoke(cli.main, ["add-topic", "orders"])

    result = runner.invoke(cli.main, ["publish", "orders", "inline", "--file", str(payload)])

    assert result.exit_code == 2
    assert "either DATA or --file" in result.output
    assert backend.messages == {}
