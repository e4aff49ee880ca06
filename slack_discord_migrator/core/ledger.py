"""Durable record of migrated messages.

The ledger maps ``(slack channel id, slack ts)`` to the Discord message that
was created for it. It is the idempotency boundary between runs: the channel
processor looks a message up before posting and records it right after, so a
rerun after any failure never posts the same Slack message twice.
"""

from __future__ import annotations

import logging
import sqlite3

from slack_discord_migrator.core.database import MigrationDatabase
from slack_discord_migrator.exceptions import DuplicateKey, LedgerError
from slack_discord_migrator.types import (
    DiscordChannelId,
    LedgerEntry,
    MessageId,
    SlackTimestamp,
    ThreadId,
)
from slack_discord_migrator.utils.logging import log_with_context

_SELECT = (
    "SELECT message_id, slack_channel_id, channel_id, slack_ts, thread_id "
    "FROM posts WHERE slack_channel_id = ? AND slack_ts = ?"
)


def _entry_from_row(row: sqlite3.Row) -> LedgerEntry:
    thread_id = row["thread_id"]
    return LedgerEntry(
        slack_channel_id=row["slack_channel_id"],
        slack_ts=SlackTimestamp.parse(row["slack_ts"]),
        message_id=MessageId(row["message_id"]),
        channel_id=DiscordChannelId(row["channel_id"]),
        thread_id=ThreadId(thread_id) if thread_id is not None else None,
    )


class Ledger:
    """Repository over the ``posts`` table."""

    def __init__(self, database: MigrationDatabase) -> None:
        self.database = database

    def lookup(self, slack_channel_id: str, ts: SlackTimestamp) -> LedgerEntry | None:
        """Return the entry for a Slack message, or None if it was never migrated."""
        try:
            row = self.database.query_one(_SELECT, (slack_channel_id, str(ts)))
        except sqlite3.Error as e:
            raise LedgerError(f"failed to look up {slack_channel_id}/{ts}: {e}") from e
        return _entry_from_row(row) if row is not None else None

    def record(
        self,
        slack_channel_id: str,
        ts: SlackTimestamp,
        message_id: MessageId,
        channel_id: DiscordChannelId,
        thread_id: ThreadId | None = None,
    ) -> LedgerEntry:
        """Append the entry for a freshly posted message.

        Raises:
            DuplicateKey: If the Slack message or the Discord message id is
                already recorded.
        """
        try:
            with self.database.transaction() as conn:
                conn.execute(
                    "INSERT INTO posts "
                    "(message_id, slack_channel_id, channel_id, slack_ts, thread_id) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        str(message_id),
                        slack_channel_id,
                        str(channel_id),
                        str(ts),
                        str(thread_id) if thread_id is not None else None,
                    ),
                )
        except sqlite3.IntegrityError as e:
            raise DuplicateKey(
                f"message {slack_channel_id}/{ts} is already in the ledger: {e}"
            ) from e
        except sqlite3.Error as e:
            raise LedgerError(f"failed to record {slack_channel_id}/{ts}: {e}") from e

        log_with_context(
            logging.DEBUG,
            f"Recorded {slack_channel_id}/{ts} -> message {message_id}",
            ts=str(ts),
        )
        return LedgerEntry(slack_channel_id, ts, message_id, channel_id, thread_id)

    def attach_thread(
        self, slack_channel_id: str, ts: SlackTimestamp, thread_id: ThreadId
    ) -> LedgerEntry:
        """Set the thread of an entry that was recorded without one.

        This is the only update the ledger allows: a thread root is recorded
        as soon as it is posted, and its thread id is filled in once the
        thread has been opened.

        Raises:
            LedgerError: If the entry is missing or already has a thread.
        """
        try:
            with self.database.transaction() as conn:
                cursor = conn.execute(
                    "UPDATE posts SET thread_id = ? "
                    "WHERE slack_channel_id = ? AND slack_ts = ? AND thread_id IS NULL",
                    (str(thread_id), slack_channel_id, str(ts)),
                )
                updated = cursor.rowcount
        except sqlite3.Error as e:
            raise LedgerError(
                f"failed to attach thread to {slack_channel_id}/{ts}: {e}"
            ) from e

        if updated != 1:
            raise LedgerError(
                f"cannot attach thread {thread_id} to {slack_channel_id}/{ts}: "
                "entry missing or already threaded"
            )

        entry = self.lookup(slack_channel_id, ts)
        if entry is None:
            raise LedgerError(f"entry {slack_channel_id}/{ts} vanished after update")
        return entry

    def count(self, slack_channel_id: str) -> int:
        """Return how many messages of a channel have been migrated."""
        try:
            row = self.database.query_one(
                "SELECT COUNT(*) FROM posts WHERE slack_channel_id = ?",
                (slack_channel_id,),
            )
        except sqlite3.Error as e:
            raise LedgerError(f"failed to count {slack_channel_id}: {e}") from e
        return int(row[0]) if row is not None else 0
