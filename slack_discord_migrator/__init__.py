#!/usr/bin/env python3
"""
Slack to Discord migration tool
"""

__version__ = "0.1.0"

from slack_discord_migrator.cli.report import generate_report
from slack_discord_migrator.core.config import load_config

# Import the main classes and functions for easier access
from slack_discord_migrator.core.ledger import Ledger
from slack_discord_migrator.core.migrator import SlackToDiscordMigrator
from slack_discord_migrator.services.archive import SlackArchive
from slack_discord_migrator.services.content_cache import ContentCache
from slack_discord_migrator.services.discord_client import DiscordClient
from slack_discord_migrator.utils.formatting import render_content
