"""Reader for Slack workspace exports.

An export is either the ``.zip`` file Slack produces or the directory it
unpacks to. Both contain ``channels.json``, ``users.json`` and one folder per
channel holding a JSON file of messages per day.
"""

from __future__ import annotations

import json
import logging
import zipfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from slack_discord_migrator.constants import (
    CHANNELS_FILE,
    HOSTED_FILE_MODE,
    MESSAGE_TYPE,
    UNKNOWN_AUTHOR,
    USERS_FILE,
)
from slack_discord_migrator.exceptions import ExportError
from slack_discord_migrator.types import (
    Attachment,
    HostedFile,
    Message,
    NonHostedFile,
    SlackChannel,
    SlackChannelRecord,
    SlackFileRecord,
    SlackMessageRecord,
    SlackTimestamp,
    SlackUser,
    SlackUserRecord,
)
from slack_discord_migrator.utils.logging import log_with_context


def parse_file(record: SlackFileRecord) -> Attachment:
    """Turn a file record into a hosted or non-hosted attachment."""
    mode = record.get("mode", "")
    name = record.get("name") or record.get("id") or "file"
    url = record.get("url_private_download")
    if mode == HOSTED_FILE_MODE and url:
        return HostedFile(name=name, title=record.get("title") or name, url=url)
    return NonHostedFile(mode=mode, name=name)


def parse_message(record: SlackMessageRecord) -> Message:
    """Turn a ``type == "message"`` record into a Message.

    Raises:
        ExportError: If the timestamp or reply count is malformed.
    """
    if "ts" not in record:
        raise ExportError(f"message without ts: {record!r}")

    thread_ts = record.get("thread_ts")
    reply_count = record.get("reply_count")
    if reply_count is not None and not isinstance(reply_count, int):
        raise ExportError(f"reply_count must be an integer, got {reply_count!r}")

    return Message(
        ts=SlackTimestamp.parse(record["ts"]),
        author=(
            record.get("user")
            or record.get("bot_id")
            or record.get("username")
            or UNKNOWN_AUTHOR
        ),
        text=record.get("text") or "",
        files=tuple(parse_file(f) for f in record.get("files") or []),
        reply_count=reply_count,
        thread_ts=SlackTimestamp.parse(thread_ts) if thread_ts is not None else None,
        subtype=record.get("subtype"),
    )


def parse_user(record: SlackUserRecord) -> SlackUser:
    """Turn a ``users.json`` record into a SlackUser."""
    try:
        user_id = record["id"]
    except KeyError as e:
        raise ExportError(f"user without id: {record!r}") from e
    profile = record.get("profile") or {}
    return SlackUser(
        id=user_id,
        handle=record.get("name") or user_id,
        display_name=profile.get("display_name") or "",
    )


def sort_messages(messages: list[Message], channel: str) -> list[Message]:
    """Sort by timestamp and drop repeated timestamps, keeping the first."""
    ordered = sorted(messages, key=lambda m: m.ts)
    deduped: list[Message] = []
    for message in ordered:
        if deduped and deduped[-1].ts == message.ts:
            log_with_context(
                logging.DEBUG,
                f"Skipping duplicate message with timestamp {message.ts}",
                channel=channel,
                ts=str(message.ts),
            )
            continue
        deduped.append(message)
    return deduped


class SlackArchive:
    """Read channels, users and messages out of a Slack export."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        if not self.path.exists():
            raise ExportError(f"Export not found: {self.path}")
        if self.path.is_file() and not zipfile.is_zipfile(self.path):
            raise ExportError(f"Export {self.path} is neither a directory nor a zip file")

    # -- raw entry access -----------------------------------------------------

    def _entry_names(self) -> list[str]:
        if self.path.is_dir():
            return sorted(
                p.relative_to(self.path).as_posix()
                for p in self.path.rglob("*")
                if p.is_file()
            )
        with zipfile.ZipFile(self.path) as archive:
            return archive.namelist()

    def _read_json(self, name: str) -> Any:
        try:
            if self.path.is_dir():
                raw = (self.path / name).read_bytes()
            else:
                with zipfile.ZipFile(self.path) as archive:
                    raw = archive.read(name)
        except (OSError, KeyError) as e:
            raise ExportError(f"read {name}: {e}") from e
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ExportError(f"parse {name}: {e}") from e

    def _iter_channel_entries(self) -> Iterator[tuple[str, str]]:
        """Yield ``(channel_name, entry_name)`` for every ``<channel>/<file>`` entry."""
        for entry_name in self._entry_names():
            parts = entry_name.split("/")
            if len(parts) != 2:
                log_with_context(logging.DEBUG, f"skip entry {entry_name}")
                continue
            channel_name, file_name = parts
            if not file_name:
                log_with_context(logging.DEBUG, f"skip dir {entry_name}")
                continue
            if not file_name.endswith(".json"):
                log_with_context(logging.DEBUG, f"skip non-JSON entry {entry_name}")
                continue
            yield channel_name, entry_name

    # -- public API -----------------------------------------------------------

    def list_channels(self) -> list[SlackChannelRecord]:
        channels = self._read_json(CHANNELS_FILE)
        if not isinstance(channels, list):
            raise ExportError(f"{CHANNELS_FILE} must contain a list")
        for record in channels:
            if not isinstance(record, dict) or "id" not in record or "name" not in record:
                raise ExportError(f"{CHANNELS_FILE} entry without id/name: {record!r}")
        return channels

    def list_users(self) -> list[SlackUser]:
        users = self._read_json(USERS_FILE)
        if not isinstance(users, list):
            raise ExportError(f"{USERS_FILE} must contain a list")
        return [parse_user(record) for record in users]

    def load_channels(self) -> list[SlackChannel]:
        """Load every channel listed in ``channels.json`` with its sorted messages.

        Raises:
            ExportError: If a message file belongs to a channel missing from
                ``channels.json`` or any file cannot be parsed.
        """
        channels = {
            record["name"]: SlackChannel(id=record["id"], name=record["name"])
            for record in self.list_channels()
        }

        for channel_name, entry_name in self._iter_channel_entries():
            channel = channels.get(channel_name)
            if channel is None:
                raise ExportError(f"{entry_name} not found in {CHANNELS_FILE}")
            records = self._read_json(entry_name)
            if not isinstance(records, list):
                raise ExportError(f"{entry_name} must contain a list of messages")
            for record in records:
                if not isinstance(record, dict) or record.get("type") != MESSAGE_TYPE:
                    log_with_context(
                        logging.DEBUG,
                        f"skip non-message record in {entry_name}",
                        channel=channel_name,
                    )
                    continue
                try:
                    channel.messages.append(parse_message(record))
                except ExportError as e:
                    raise ExportError(f"parse {entry_name}: {e}") from e

        for channel in channels.values():
            channel.messages = sort_messages(channel.messages, channel.name)
            log_with_context(
                logging.DEBUG,
                f"channel {channel.name} has {len(channel.messages)} messages",
                channel=channel.name,
            )
        return list(channels.values())

    def messages_for(self, channel_name: str) -> list[Message]:
        """Return the sorted messages of one channel."""
        for channel in self.load_channels():
            if channel.name == channel_name:
                return channel.messages
        raise ExportError(f"channel {channel_name} not found in {CHANNELS_FILE}")
