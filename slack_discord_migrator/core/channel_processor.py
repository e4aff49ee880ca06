"""Channel-level replay: posts one Slack channel's history into Discord."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import requests
from tqdm import tqdm

if TYPE_CHECKING:
    from slack_discord_migrator.core.context import MigrationContext
    from slack_discord_migrator.core.ledger import Ledger
    from slack_discord_migrator.core.state import ChannelStats, MigrationState
    from slack_discord_migrator.services.content_cache import ContentCache
    from slack_discord_migrator.services.discord_client import DiscordClient

from slack_discord_migrator.exceptions import (
    APIError,
    ChannelReplayError,
    MigratorError,
    MissingThread,
    OrphanReply,
    SchemaError,
)
from slack_discord_migrator.types import (
    DiscordChannel,
    FilePayload,
    LedgerEntry,
    Message,
    MessageId,
    SlackChannel,
    ThreadId,
)
from slack_discord_migrator.utils.formatting import format_message
from slack_discord_migrator.utils.logging import log_with_context


class ChannelProcessor:
    """Replays the messages of a channel in timestamp order, exactly once each.

    Every message is looked up in the ledger first. Messages already there
    are skipped; the rest are rendered, their attachments fetched, posted,
    and recorded in the ledger right after the post returns.
    """

    def __init__(
        self,
        ctx: MigrationContext,
        state: MigrationState,
        client: DiscordClient | None,
        ledger: Ledger,
        content_cache: ContentCache,
        display_names: dict[str, str],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ctx = ctx
        self.state = state
        self.client = client
        self.ledger = ledger
        self.content_cache = content_cache
        self.display_names = display_names
        self.sleep = sleep

    @property
    def discord(self) -> DiscordClient:
        if self.client is None:
            raise RuntimeError("Discord client not initialized")
        return self.client

    def replay_channel(
        self, channel: SlackChannel, destination: DiscordChannel
    ) -> ChannelStats:
        """Replay every message of ``channel`` into ``destination``.

        Args:
            channel: The Slack channel with its messages in ascending order.
            destination: The Discord channel the history is posted into.

        Returns:
            The counters for this channel.

        Raises:
            ChannelReplayError: On the first message that cannot be replayed.
                Messages before it stay recorded in the ledger.
        """
        stats = self.state.stats_for(channel.name)
        self.state.current_channel = channel.name

        log_with_context(
            logging.INFO,
            f"{self.ctx.log_prefix}Replaying {len(channel.messages)} messages "
            f"of #{channel.name} into {destination.id}",
            channel=channel.name,
        )

        pbar = tqdm(channel.messages, desc=f"{self.ctx.log_prefix}#{channel.name}")
        for message in pbar:
            try:
                called_api = self._replay_message(channel, destination, message, stats)
            except (MigratorError, requests.exceptions.RequestException) as e:
                log_with_context(
                    logging.ERROR,
                    f"Stopping #{channel.name} at ts={message.ts}: {e}",
                    channel=channel.name,
                    ts=str(message.ts),
                    exc_info=True,
                )
                raise ChannelReplayError(channel.name, str(message.ts), str(e)) from e

            if called_api:
                self.sleep(self.ctx.config.post_interval)

        if self.ctx.dry_run:
            log_with_context(
                logging.INFO,
                f"{self.ctx.log_prefix}#{channel.name}: {stats.pending} messages "
                f"({stats.pending_files} files) would be posted, "
                f"{stats.already_migrated} already migrated",
                channel=channel.name,
            )
        else:
            log_with_context(
                logging.INFO,
                f"#{channel.name}: posted {stats.posted}, "
                f"already migrated {stats.already_migrated}, skipped {stats.skipped}",
                channel=channel.name,
            )
        return stats

    def _replay_message(
        self,
        channel: SlackChannel,
        destination: DiscordChannel,
        message: Message,
        stats: ChannelStats,
    ) -> bool:
        """Replay one message. Returns True if any Discord call was made."""
        entry = self.ledger.lookup(channel.id, message.ts)
        if entry is not None:
            stats.already_migrated += 1
            return self._handle_migrated(channel, destination, message, entry, stats)

        if message.subtype and message.subtype in self.ctx.config.skip_subtypes:
            log_with_context(
                logging.DEBUG,
                f"Skipping {message.subtype} message",
                channel=channel.name,
                ts=str(message.ts),
            )
            stats.skipped += 1
            return False

        if self.ctx.dry_run:
            stats.pending += 1
            stats.pending_files += len(message.hosted_files)
            return False

        content = format_message(message, self.display_names, self.ctx.timezone)

        if message.is_thread_reply:
            thread_id = self._parent_thread(channel, message)
            files = self._resolve_attachments(channel, message)
            reply_id = self.discord.post_thread_reply(thread_id, content, files)
            self.ledger.record(
                channel.id, message.ts, reply_id, destination.id, thread_id
            )
            stats.posted += 1
            stats.files_uploaded += len(files)
            log_with_context(
                logging.DEBUG,
                f"Posted reply {reply_id} into thread {thread_id}",
                channel=channel.name,
                ts=str(message.ts),
            )
        else:
            files = self._resolve_attachments(channel, message)
            posted = self.discord.post_message(destination.id, content, files)
            self.ledger.record(
                channel.id, message.ts, posted.message_id, posted.channel_id
            )
            stats.posted += 1
            stats.files_uploaded += len(files)
            log_with_context(
                logging.DEBUG,
                f"Posted message {posted.message_id}",
                channel=channel.name,
                ts=str(message.ts),
            )
            if message.reply_count:
                self._open_thread(channel, destination, message, posted.message_id)
                stats.threads_opened += 1

        return True

    def _handle_migrated(
        self,
        channel: SlackChannel,
        destination: DiscordChannel,
        message: Message,
        entry: LedgerEntry,
        stats: ChannelStats,
    ) -> bool:
        """Deal with a message found in the ledger. Returns True on a Discord call."""
        if entry.thread_id is None and message.reply_count:
            # Posted by an earlier run that stopped before the thread was opened.
            if self.ctx.dry_run:
                log_with_context(
                    logging.INFO,
                    f"{self.ctx.log_prefix}Would open missing thread on {entry.message_id}",
                    channel=channel.name,
                    ts=str(message.ts),
                )
                return False
            self._open_thread(channel, destination, message, entry.message_id)
            stats.threads_opened += 1
            return True

        log_with_context(
            logging.DEBUG,
            f"Already migrated as {entry.message_id}",
            channel=channel.name,
            ts=str(message.ts),
        )
        if (
            entry.thread_id is not None
            and message.is_thread_root
            and self.ctx.config.verify_threads
            and not self.ctx.dry_run
        ):
            self._verify_thread(channel, message, entry.thread_id)
        return False

    def _verify_thread(
        self, channel: SlackChannel, message: Message, thread_id: ThreadId
    ) -> None:
        try:
            thread = self.discord.get_channel(thread_id)
        except (APIError, SchemaError) as e:
            log_with_context(
                logging.WARNING,
                f"Could not verify thread {thread_id}: {e}",
                channel=channel.name,
                ts=str(message.ts),
            )
            return
        log_with_context(
            logging.DEBUG,
            f"Thread {thread_id} exists as '{thread.name}'",
            channel=channel.name,
            ts=str(message.ts),
        )

    def _open_thread(
        self,
        channel: SlackChannel,
        destination: DiscordChannel,
        message: Message,
        message_id: MessageId,
    ) -> ThreadId:
        thread_id = self.discord.start_thread(
            destination.id, message_id, self.ctx.config.thread_title
        )
        self.ledger.attach_thread(channel.id, message.ts, thread_id)
        log_with_context(
            logging.DEBUG,
            f"Opened thread {thread_id} for {message.reply_count} replies",
            channel=channel.name,
            ts=str(message.ts),
        )
        return thread_id

    def _parent_thread(self, channel: SlackChannel, message: Message) -> ThreadId:
        """Find the Discord thread a reply belongs in.

        Raises:
            OrphanReply: If the parent message was never migrated.
            MissingThread: If the parent was migrated without a thread.
        """
        parent_ts = message.thread_ts
        if parent_ts is None:
            raise OrphanReply(f"message ts={message.ts} is not a thread reply")
        parent = self.ledger.lookup(channel.id, parent_ts)
        if parent is None:
            raise OrphanReply(
                f"parent ts={message.thread_ts} of reply ts={message.ts} "
                f"in #{channel.name} was never migrated"
            )
        if parent.thread_id is None:
            raise MissingThread(
                f"parent ts={message.thread_ts} of reply ts={message.ts} "
                f"in #{channel.name} has no thread"
            )
        return parent.thread_id

    def _resolve_attachments(
        self, channel: SlackChannel, message: Message
    ) -> list[FilePayload]:
        """Fetch every hosted file of ``message``; any failure fails them all."""
        hosted = message.hosted_files
        dropped = len(message.files) - len(hosted)
        if dropped:
            log_with_context(
                logging.DEBUG,
                f"Dropping {dropped} non-hosted files",
                channel=channel.name,
                ts=str(message.ts),
            )
        if not hosted:
            return []

        workers = min(self.ctx.config.attachment_workers, len(hosted))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            cached = list(pool.map(lambda f: self.content_cache.fetch(f.url), hosted))

        return [
            FilePayload(name=f.name, title=f.title, body=c.body, mime=c.mime)
            for f, c in zip(hosted, cached)
        ]
