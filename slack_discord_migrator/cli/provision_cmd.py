"""CLI command handler for channel provisioning."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from slack_discord_migrator.cli.common import cli, common_options, handle_exception
from slack_discord_migrator.core.config import load_config, should_process_channel
from slack_discord_migrator.services.archive import SlackArchive
from slack_discord_migrator.services.channel_provisioner import ChannelProvisioner
from slack_discord_migrator.services.discord_client import (
    BotToken,
    DiscordClient,
    GuildId,
)
from slack_discord_migrator.utils.logging import setup_logger

# ---------------------------------------------------------------------------
# provision subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
def provision(
    export_path: str,
    config: str,
    dry_run: bool,
    verbose: bool,
    debug_api: bool,
) -> None:
    """Create the Discord categories and channels without posting messages.

    Existing categories and channels with matching names are reused, so this
    is safe to run more than once.
    """
    setup_logger(verbose, debug_api)

    try:
        cfg = load_config(Path(config))
        archive = SlackArchive(Path(export_path))
        names = [
            record["name"]
            for record in archive.list_channels()
            if should_process_channel(record["name"], cfg)
        ]
        client = DiscordClient(BotToken.from_env(), timeout=cfg.request_timeout)
        provisioner = ChannelProvisioner(client, GuildId.from_env())
        mapping = provisioner.provision(names, cfg.channels, dry_run=dry_run)
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    for name, channel in mapping.items():
        click.echo(f"#{name} -> {channel.id}")
