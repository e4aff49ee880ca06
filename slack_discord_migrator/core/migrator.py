"""
Main migrator class for the Slack to Discord migration tool.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path

from slack_discord_migrator.core.channel_processor import ChannelProcessor
from slack_discord_migrator.core.config import should_process_channel
from slack_discord_migrator.core.context import MigrationContext
from slack_discord_migrator.core.database import MEMORY_DATABASE, MigrationDatabase
from slack_discord_migrator.core.ledger import Ledger
from slack_discord_migrator.core.state import ChannelFailure, MigrationState
from slack_discord_migrator.exceptions import ChannelReplayError, MigrationAbortedError
from slack_discord_migrator.services.archive import SlackArchive
from slack_discord_migrator.services.channel_provisioner import (
    ChannelProvisioner,
    placeholder_channel,
)
from slack_discord_migrator.services.content_cache import ContentCache
from slack_discord_migrator.services.discord_client import (
    BotToken,
    DiscordClient,
    GuildId,
)
from slack_discord_migrator.services.users import build_display_names
from slack_discord_migrator.types import ChannelMapping
from slack_discord_migrator.utils.logging import (
    get_logger,
    is_debug_api_enabled,
    log_with_context,
    setup_channel_logger,
)


class SlackToDiscordMigrator:
    """Main class for migrating a Slack export into a Discord guild."""

    def __init__(
        self,
        ctx: MigrationContext,
        client: DiscordClient | None = None,
        guild_id: GuildId | None = None,
        database: MigrationDatabase | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the migrator.

        The Discord client and guild id are read from the environment when
        not given, except in a dry run, which never talks to Discord.
        """
        self.ctx = ctx
        self.state = MigrationState()
        self.archive = SlackArchive(ctx.export_path)
        self.client = client
        self.guild_id = guild_id
        self.database = database
        self.sleep = sleep
        self.channel_handlers: dict[str, logging.Handler] = {}

    def _connect(self) -> None:
        if self.ctx.dry_run:
            return
        if self.client is None:
            self.client = DiscordClient(
                BotToken.from_env(), timeout=self.ctx.config.request_timeout
            )
        if self.guild_id is None:
            self.guild_id = GuildId.from_env()

    def _open_database(self) -> MigrationDatabase:
        path = self.ctx.database_path
        if self.ctx.dry_run and path != MEMORY_DATABASE and not Path(path).exists():
            # Nothing migrated yet; avoid creating the file in a dry run.
            log_with_context(
                logging.INFO,
                f"{self.ctx.log_prefix}Database {path} does not exist yet",
            )
            path = MEMORY_DATABASE
        return MigrationDatabase(path, read_only=self.ctx.dry_run)

    def _provision(self, channel_names: list[str]) -> ChannelMapping:
        channel_config = self.ctx.config.channels
        if not self.ctx.dry_run:
            if self.client is None or self.guild_id is None:
                raise RuntimeError("Discord client not initialized")
            provisioner = ChannelProvisioner(self.client, self.guild_id)
            return provisioner.provision(channel_names, channel_config)

        mapping: ChannelMapping = {}
        for name in channel_names:
            if name not in channel_config:
                log_with_context(
                    logging.WARNING, f"unconfigured channel {name}", channel=name
                )
                continue
            mapping[name] = placeholder_channel(name)
        return mapping

    def _setup_channel_logging(self, channel: str) -> None:
        if self.ctx.output_dir is None:
            return
        self.channel_handlers[channel] = setup_channel_logger(
            self.ctx.output_dir, channel, self.ctx.verbose, is_debug_api_enabled()
        )

    def _close_channel_logs(self) -> None:
        logger = get_logger()
        for handler in self.channel_handlers.values():
            logger.removeHandler(handler)
            handler.close()
        self.channel_handlers.clear()

    def migrate(self) -> MigrationState:
        """Replay every configured channel of the export.

        Returns:
            The run state with per-channel counters.

        Raises:
            MigrationAbortedError: When a channel stops at a message that
                cannot be replayed. Everything posted before it stays in the
                ledger, so running again resumes from that message.
        """
        prefix = self.ctx.log_prefix
        log_with_context(
            logging.INFO,
            f"{prefix}Starting migration from {self.ctx.export_path}",
        )

        channels = self.archive.load_channels()
        display_names = build_display_names(self.archive.list_users())
        log_with_context(
            logging.INFO, f"Found {len(channels)} channels in export"
        )

        selected = []
        for channel in channels:
            if should_process_channel(channel.name, self.ctx.config):
                selected.append(channel)
            else:
                log_with_context(
                    logging.INFO,
                    f"Skipping channel {channel.name} based on configuration",
                    channel=channel.name,
                )
                self.state.migration_summary["channels_skipped"].append(channel.name)

        self._connect()
        mapping = self._provision([channel.name for channel in selected])

        database = self.database or self._open_database()
        processor = ChannelProcessor(
            self.ctx,
            self.state,
            self.client,
            Ledger(database),
            ContentCache(database, timeout=self.ctx.config.request_timeout),
            display_names,
            sleep=self.sleep,
        )

        try:
            for channel in selected:
                destination = mapping.get(channel.name)
                if destination is None:
                    log_with_context(
                        logging.INFO,
                        f"Skipping channel {channel.name}: no destination configured",
                        channel=channel.name,
                    )
                    self.state.unconfigured_channels.append(channel.name)
                    self.state.migration_summary["channels_skipped"].append(
                        channel.name
                    )
                    continue

                self._setup_channel_logging(channel.name)
                try:
                    processor.replay_channel(channel, destination)
                except ChannelReplayError as e:
                    self.state.failures.append(
                        ChannelFailure(channel=e.channel, ts=e.ts, error=e.reason)
                    )
                    raise MigrationAbortedError(f"Migration stopped: {e}") from e
                finally:
                    self.state.finish_channel(channel.name)
        finally:
            self.state.current_channel = None
            self._close_channel_logs()
            if self.database is None:
                database.close()

        self._log_summary()
        return self.state

    def _log_summary(self) -> None:
        summary = self.state.migration_summary
        prefix = self.ctx.log_prefix
        log_with_context(
            logging.INFO,
            f"{prefix}Migration finished: {len(summary['channels_processed'])} channels "
            f"replayed, {len(summary['channels_skipped'])} skipped",
        )
        if self.ctx.dry_run:
            pending = sum(s.pending for s in self.state.channel_stats.values())
            log_with_context(
                logging.INFO, f"{prefix}{pending} messages would be posted"
            )
            return
        log_with_context(
            logging.INFO,
            f"Messages posted: {summary['messages_posted']}, "
            f"already migrated: {summary['messages_already_migrated']}, "
            f"threads opened: {summary['threads_opened']}, "
            f"files uploaded: {summary['files_uploaded']}",
        )
