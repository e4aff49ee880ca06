#!/usr/bin/env python3
"""
Command-line entry point for the Slack to Discord migration tool.

Importing the subcommand modules registers them on the shared click group.
"""

from slack_discord_migrator.cli import init_cmd, migrate_cmd, provision_cmd  # noqa: F401
from slack_discord_migrator.cli.common import cli


def main() -> None:
    """Run the ``slack-discord-migrator`` command."""
    cli()


if __name__ == "__main__":
    main()
