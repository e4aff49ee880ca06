"""Shared type definitions for the Slack to Discord migration tool.

Provides TypedDicts for the raw Slack export JSON shapes, strong id types for
Discord entities, and the immutable records that flow through the replay
pipeline.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Dict, TypedDict, Union

from slack_discord_migrator.exceptions import ExportError

# ---------------------------------------------------------------------------
# Slack export types (from users.json, channels.json, <channel>/*.json)
# ---------------------------------------------------------------------------


class SlackUserProfile(TypedDict, total=False):
    """Profile block nested inside a Slack user record."""

    display_name: str
    real_name: str


class SlackUserRecord(TypedDict, total=False):
    """A user record from the Slack export ``users.json``."""

    id: str
    name: str
    real_name: str
    deleted: bool
    is_bot: bool
    profile: SlackUserProfile


class SlackFileRecord(TypedDict, total=False):
    """A file attachment inside a Slack message."""

    id: str
    mode: str
    name: str
    title: str
    mimetype: str
    url_private_download: str


class SlackMessageRecord(TypedDict, total=False):
    """A message record from a Slack channel export JSON file."""

    type: str
    subtype: str
    ts: str
    user: str
    bot_id: str
    username: str
    text: str
    thread_ts: str
    reply_count: int
    files: list[SlackFileRecord]


class SlackChannelRecord(TypedDict, total=False):
    """A channel record from the Slack export ``channels.json``."""

    id: str
    name: str
    created: int


class MigrationSummary(TypedDict):
    """Aggregate migration counters."""

    channels_processed: list[str]
    channels_skipped: list[str]
    messages_posted: int
    messages_already_migrated: int
    messages_skipped: int
    threads_opened: int
    files_uploaded: int


# ---------------------------------------------------------------------------
# Discord ids
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiscordChannelId:
    """Id of a Discord guild channel or category."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class MessageId:
    """Id of a Discord message."""

    value: str

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ThreadId:
    """Id of a Discord thread (a channel that hangs off a message)."""

    value: str

    def __str__(self) -> str:
        return self.value


# ---------------------------------------------------------------------------
# Slack timestamps
# ---------------------------------------------------------------------------

_TS_PATTERN = re.compile(r"(\d+)(?:\.(\d{0,6}))?", re.ASCII)
# Leaves a day of headroom so any UTC offset still lands inside datetime's range.
_MAX_TS_SECONDS = int(datetime(9999, 12, 30, tzinfo=timezone.utc).timestamp())


@dataclass(frozen=True, order=True)
class SlackTimestamp:
    """A Slack ``ts`` value: seconds plus microseconds since the epoch.

    Slack uses the timestamp as the message key within a channel, so two
    spellings of the same instant (``"1.0"`` and ``"1.000000"``) compare and
    hash equal. ``str()`` returns the canonical six-digit form that is stored
    in the ledger.
    """

    seconds: int
    micros: int = 0

    @classmethod
    def parse(cls, raw: object) -> SlackTimestamp:
        """Parse ``"<secs>.<fraction>"`` into a timestamp.

        Raises:
            ExportError: If the value is not a string of that shape.
        """
        if not isinstance(raw, str):
            raise ExportError(f"timestamp must be a string, got {raw!r}")
        match = _TS_PATTERN.fullmatch(raw.strip())
        if match is None:
            raise ExportError(f"malformed timestamp {raw!r}")
        fraction = match.group(2) or ""
        seconds = int(match.group(1))
        if seconds > _MAX_TS_SECONDS:
            raise ExportError(f"timestamp {raw!r} is out of range")
        return cls(seconds, int(fraction.ljust(6, "0")))

    def to_datetime(self, tz: tzinfo) -> datetime:
        return datetime.fromtimestamp(self.seconds, tz).replace(microsecond=self.micros)

    def __str__(self) -> str:
        return f"{self.seconds}.{self.micros:06d}"


# ---------------------------------------------------------------------------
# Parsed export records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HostedFile:
    """A file stored by Slack that can be downloaded and re-uploaded."""

    name: str
    title: str
    url: str


@dataclass(frozen=True)
class NonHostedFile:
    """A tombstoned, external or snippet file; carries no retrievable bytes."""

    mode: str
    name: str = ""


Attachment = Union[HostedFile, NonHostedFile]


@dataclass(frozen=True)
class Message:
    """One message from a channel export."""

    ts: SlackTimestamp
    author: str
    text: str = ""
    files: tuple[Attachment, ...] = ()
    reply_count: int | None = None
    thread_ts: SlackTimestamp | None = None
    subtype: str | None = None

    @property
    def is_thread_root(self) -> bool:
        return self.reply_count is not None

    @property
    def is_thread_reply(self) -> bool:
        # Slack marks roots with thread_ts == ts; a message never replies to itself.
        return (
            self.thread_ts is not None
            and self.reply_count is None
            and self.thread_ts != self.ts
        )

    @property
    def hosted_files(self) -> list[HostedFile]:
        return [f for f in self.files if isinstance(f, HostedFile)]


@dataclass
class SlackChannel:
    """A source channel and its messages in ascending timestamp order."""

    id: str
    name: str
    messages: list[Message] = field(default_factory=list)


@dataclass(frozen=True)
class SlackUser:
    """A user from ``users.json``."""

    id: str
    handle: str
    display_name: str = ""

    @property
    def readable_name(self) -> str:
        return self.display_name or self.handle


# ---------------------------------------------------------------------------
# Destination records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiscordChannel:
    """A Discord guild channel as returned by the API."""

    id: DiscordChannelId
    name: str
    channel_type: int
    parent_id: DiscordChannelId | None = None


ChannelMapping = Dict[str, DiscordChannel]


@dataclass(frozen=True)
class PostedMessage:
    """A message created in Discord."""

    message_id: MessageId
    channel_id: DiscordChannelId


@dataclass(frozen=True)
class FilePayload:
    """One attachment ready for upload."""

    name: str
    title: str
    body: bytes
    mime: str


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntry:
    """Mapping of one migrated Slack message to its Discord counterpart."""

    slack_channel_id: str
    slack_ts: SlackTimestamp
    message_id: MessageId
    channel_id: DiscordChannelId
    thread_id: ThreadId | None = None


@dataclass(frozen=True)
class CachedFile:
    """An attachment downloaded once and kept for later runs."""

    url: str
    body: bytes
    mime: str
