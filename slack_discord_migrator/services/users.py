"""
User name resolution for rendering migrated messages.
"""

import logging
from typing import Dict, Iterable

from slack_discord_migrator.types import SlackUser
from slack_discord_migrator.utils.logging import log_with_context


def build_display_names(users: Iterable[SlackUser]) -> Dict[str, str]:
    """Map every Slack user id to the name shown in Discord.

    Args:
        users: Users parsed from ``users.json``

    Returns:
        Dictionary of user id to display name (falling back to the handle)
    """
    names: Dict[str, str] = {}
    for user in users:
        if user.id in names:
            log_with_context(
                logging.WARNING,
                f"Duplicate user id {user.id} in users.json, keeping first entry",
            )
            continue
        names[user.id] = user.readable_name

    log_with_context(logging.INFO, f"Resolved display names for {len(names)} users")
    return names
