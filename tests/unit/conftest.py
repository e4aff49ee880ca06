"""Unit test configuration and shared fixtures."""

from __future__ import annotations

import itertools
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from slack_discord_migrator.core.config import MigrationConfig
from slack_discord_migrator.core.context import MigrationContext
from slack_discord_migrator.core.database import MEMORY_DATABASE, MigrationDatabase
from slack_discord_migrator.services.discord_client import DiscordClient
from slack_discord_migrator.types import (
    DiscordChannel,
    DiscordChannelId,
    HostedFile,
    Message,
    MessageId,
    PostedMessage,
    SlackTimestamp,
    ThreadId,
)

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@pytest.fixture()
def database():
    """An in-memory migration database with the schema applied."""
    db = MigrationDatabase(MEMORY_DATABASE)
    yield db
    db.close()


# ---------------------------------------------------------------------------
# Discord client double
# ---------------------------------------------------------------------------


def _build_fake_client(first_id: int = 1000) -> MagicMock:
    """Build a MagicMock that behaves like DiscordClient.

    Message ids count up from ``first_id`` across posts and replies. A thread opened
    on message ``N`` gets the id ``TN``.
    """
    client = MagicMock(spec=DiscordClient)
    ids = itertools.count(first_id)

    def post_message(channel_id, content, files=()):
        return PostedMessage(MessageId(str(next(ids))), channel_id)

    def post_thread_reply(thread_id, content, files=()):
        return MessageId(str(next(ids)))

    def start_thread(channel_id, message_id, name):
        return ThreadId(f"T{message_id}")

    def get_channel(channel_id):
        return DiscordChannel(DiscordChannelId(str(channel_id)), "slack thread", 11)

    client.post_message.side_effect = post_message
    client.post_thread_reply.side_effect = post_thread_reply
    client.start_thread.side_effect = start_thread
    client.get_channel.side_effect = get_channel
    return client


@pytest.fixture()
def fake_client():
    return _build_fake_client()


@pytest.fixture()
def make_fake_client():
    return _build_fake_client


# ---------------------------------------------------------------------------
# Context and message builders
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_context():
    """Factory fixture for a MigrationContext.

    Keyword arguments matching ``MigrationConfig`` fields go to the config;
    ``dry_run``, ``database_path``, ``export_path`` and ``output_dir`` go to
    the context.
    """

    def _make(**kwargs: Any) -> MigrationContext:
        context_keys = {"dry_run", "database_path", "export_path", "output_dir"}
        context_args = {k: kwargs.pop(k) for k in list(kwargs) if k in context_keys}
        return MigrationContext(
            export_path=Path(context_args.get("export_path", "export")),
            database_path=context_args.get("database_path", MEMORY_DATABASE),
            dry_run=context_args.get("dry_run", False),
            verbose=False,
            debug_api=False,
            config=MigrationConfig(**kwargs),
            output_dir=context_args.get("output_dir"),
        )

    return _make


def _make_message(ts: str, author: str = "U001", text: str = "", **kwargs: Any) -> Message:
    """Build a Message; ``thread_ts`` may be given as a string."""
    thread_ts = kwargs.pop("thread_ts", None)
    return Message(
        ts=SlackTimestamp.parse(ts),
        author=author,
        text=text,
        thread_ts=SlackTimestamp.parse(thread_ts) if thread_ts else None,
        **kwargs,
    )


def _make_hosted_file(name: str, url: str | None = None) -> HostedFile:
    return HostedFile(name=name, title=f"{name} title", url=url or f"https://files.slack.com/{name}")


def _make_message_dict(ts: str = "1700000000.000001", **kwargs: Any) -> dict[str, Any]:
    """Build a raw export message dict with sensible defaults."""
    message = {"type": "message", "ts": ts, "user": "U001", "text": "hello"}
    message.update(kwargs)
    return message


@pytest.fixture()
def make_message():
    return _make_message


@pytest.fixture()
def make_hosted_file():
    return _make_hosted_file


@pytest.fixture()
def make_message_dict():
    return _make_message_dict
