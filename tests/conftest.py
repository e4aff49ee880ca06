"""Shared test fixtures for the slack_discord_migrator test suite."""

import json
import zipfile

import pytest


@pytest.fixture()
def sample_users():
    """Return a list of sample Slack user dicts."""
    return [
        {
            "id": "U001",
            "name": "alice",
            "real_name": "Alice Smith",
            "profile": {"display_name": "Alice", "real_name": "Alice Smith"},
            "is_bot": False,
            "deleted": False,
        },
        {
            "id": "U002",
            "name": "bob",
            "real_name": "Bob Jones",
            "profile": {"display_name": "", "real_name": "Bob Jones"},
            "is_bot": False,
            "deleted": False,
        },
        {
            "id": "B001",
            "name": "testbot",
            "real_name": "Test Bot",
            "profile": {},
            "is_bot": True,
            "deleted": False,
        },
    ]


@pytest.fixture()
def sample_channels():
    """Return a list of sample Slack channel dicts."""
    return [
        {"id": "C001", "name": "general", "created": 1600000000},
        {"id": "C002", "name": "random", "created": 1600000001},
    ]


@pytest.fixture()
def thread_messages():
    """A thread root with one reply, as found in a channel export file."""
    return [
        {
            "type": "message",
            "ts": "1.0",
            "user": "U001",
            "text": "hello",
            "thread_ts": "1.0",
            "reply_count": 1,
        },
        {
            "type": "message",
            "ts": "2.0",
            "user": "U002",
            "text": "hi back",
            "thread_ts": "1.0",
        },
    ]


@pytest.fixture()
def write_export(tmp_path, sample_users, sample_channels):
    """Factory that writes a Slack export and returns its path.

    Call with ``{channel_name: {file_name: [message dicts]}}``. Pass
    ``channels=`` to override ``channels.json`` and ``as_zip=True`` to get
    a zip archive instead of a directory.
    """

    def _write(files_by_channel, channels=None, as_zip=False):
        root = tmp_path / "export"
        root.mkdir()
        (root / "users.json").write_text(json.dumps(sample_users))
        (root / "channels.json").write_text(
            json.dumps(sample_channels if channels is None else channels)
        )
        for channel, files in files_by_channel.items():
            channel_dir = root / channel
            channel_dir.mkdir(exist_ok=True)
            for file_name, messages in files.items():
                (channel_dir / file_name).write_text(json.dumps(messages))

        if not as_zip:
            return root

        archive_path = tmp_path / "export.zip"
        with zipfile.ZipFile(archive_path, "w") as archive:
            for path in sorted(root.rglob("*")):
                archive.write(path, path.relative_to(root).as_posix())
        return archive_path

    return _write
