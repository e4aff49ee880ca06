"""
Reconciles Discord categories and text channels with the channel mapping.

Each configured Slack channel gets a Discord text channel of the same name
under the category named in the config. Existing categories and channels are
reused by name, so provisioning is safe to repeat.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from slack_discord_migrator.constants import (
    CHANNEL_TYPE_GUILD_CATEGORY,
    CHANNEL_TYPE_GUILD_TEXT,
)
from slack_discord_migrator.services.discord_client import DiscordClient, GuildId
from slack_discord_migrator.types import (
    ChannelMapping,
    DiscordChannel,
    DiscordChannelId,
)
from slack_discord_migrator.utils.logging import log_with_context

DRY_RUN_ID_PREFIX = "dry-run:"


def placeholder_channel(
    name: str,
    channel_type: int = CHANNEL_TYPE_GUILD_TEXT,
    parent_id: DiscordChannelId | None = None,
) -> DiscordChannel:
    """Return a stand-in handle for a channel that a dry run would create."""
    return DiscordChannel(
        id=DiscordChannelId(f"{DRY_RUN_ID_PREFIX}{name}"),
        name=name,
        channel_type=channel_type,
        parent_id=parent_id,
    )


class ChannelProvisioner:
    """Creates or reuses the destination channels for a migration."""

    def __init__(self, client: DiscordClient, guild_id: GuildId) -> None:
        self.client = client
        self.guild_id = guild_id

    def provision(
        self,
        source_channels: Iterable[str],
        channel_config: Mapping[str, str],
        dry_run: bool = False,
    ) -> ChannelMapping:
        """Make sure every configured source channel has a destination.

        Args:
            source_channels: Slack channel names found in the export
            channel_config: Slack channel name to Discord category name
            dry_run: Only list the guild and log what would be created

        Returns:
            Mapping of configured Slack channel names to Discord channels.
            Unconfigured channels are left out.
        """
        prefix = "[DRY RUN] " if dry_run else ""
        existing = self.client.list_guild_channels(self.guild_id)

        categories = self._reconcile_categories(existing, channel_config, dry_run)

        text_channels: dict[tuple[str, DiscordChannelId | None], DiscordChannel] = {}
        for channel in existing:
            if channel.channel_type == CHANNEL_TYPE_GUILD_TEXT:
                text_channels.setdefault((channel.name, channel.parent_id), channel)

        mapping: ChannelMapping = {}
        for name in source_channels:
            category_name = channel_config.get(name)
            if category_name is None:
                log_with_context(
                    logging.WARNING, f"unconfigured channel {name}", channel=name
                )
                continue

            category = categories[category_name]
            found = text_channels.get((name, category.id))
            if found is not None:
                log_with_context(
                    logging.DEBUG,
                    f"Reusing channel #{name} ({found.id}) in {category_name}",
                    channel=name,
                )
                mapping[name] = found
                continue

            log_with_context(
                logging.INFO,
                f"{prefix}Creating channel #{name} in category {category_name}",
                channel=name,
            )
            if dry_run:
                mapping[name] = placeholder_channel(name, parent_id=category.id)
            else:
                mapping[name] = self.client.create_channel(
                    self.guild_id, name, CHANNEL_TYPE_GUILD_TEXT, parent_id=category.id
                )

        log_with_context(
            logging.INFO, f"{prefix}Provisioned {len(mapping)} channels"
        )
        return mapping

    def _reconcile_categories(
        self,
        existing: list[DiscordChannel],
        channel_config: Mapping[str, str],
        dry_run: bool,
    ) -> dict[str, DiscordChannel]:
        """Return a category for every distinct category name in the config."""
        categories: dict[str, DiscordChannel] = {}
        for channel in existing:
            if channel.channel_type == CHANNEL_TYPE_GUILD_CATEGORY:
                categories.setdefault(channel.name, channel)

        wanted = list(dict.fromkeys(channel_config.values()))
        result: dict[str, DiscordChannel] = {}
        for category_name in wanted:
            if category_name in categories:
                result[category_name] = categories[category_name]
                continue
            log_with_context(
                logging.INFO,
                f"{'[DRY RUN] ' if dry_run else ''}Creating category {category_name}",
            )
            if dry_run:
                result[category_name] = placeholder_channel(
                    category_name, CHANNEL_TYPE_GUILD_CATEGORY
                )
            else:
                result[category_name] = self.client.create_channel(
                    self.guild_id, category_name, CHANNEL_TYPE_GUILD_CATEGORY
                )
        return result
