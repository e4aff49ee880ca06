"""Shared constants for the Slack to Discord migration tool."""

from __future__ import annotations

# Discord REST API
DISCORD_API_BASE = "https://discord.com/api/v10"
CHANNEL_TYPE_GUILD_TEXT = 0
CHANNEL_TYPE_GUILD_CATEGORY = 4

# Environment variables holding the bot credentials
BOT_TOKEN_ENV = "BOT_TOKEN"
GUILD_ID_ENV = "GUILD_ID"

# HTTP status codes
HTTP_OK_MIN = 200
HTTP_OK_MAX = 299
HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_RATE_LIMIT = 429
HTTP_SERVER_ERROR_MIN = 500

# Replay defaults
DEFAULT_POST_INTERVAL = 1.0
DEFAULT_UTC_OFFSET_HOURS = 9
DEFAULT_ATTACHMENT_WORKERS = 4
DEFAULT_REQUEST_TIMEOUT = 60
DEFAULT_THREAD_TITLE = "slack thread"
DEFAULT_DATABASE_PATH = "migration.db"

# Slack export layout
CHANNELS_FILE = "channels.json"
USERS_FILE = "users.json"
MESSAGE_TYPE = "message"
HOSTED_FILE_MODE = "hosted"
UNKNOWN_AUTHOR = "unknown"
