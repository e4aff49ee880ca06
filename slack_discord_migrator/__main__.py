#!/usr/bin/env python3
"""
Main execution module for the Slack to Discord migration tool
"""

from slack_discord_migrator.cli.commands import main

if __name__ == "__main__":
    main()
