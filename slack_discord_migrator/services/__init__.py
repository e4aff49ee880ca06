"""Service integrations for Slack export parsing and the Discord API."""

__all__ = [
    "archive",
    "channel_provisioner",
    "content_cache",
    "discord_client",
    "users",
]
