"""Custom exception hierarchy for the Slack to Discord migration tool."""

from __future__ import annotations


class MigratorError(Exception):
    """Base exception for all migration-related errors."""


class ConfigError(MigratorError):
    """Raised when configuration is invalid or missing."""


class CredentialError(MigratorError):
    """Raised when the bot token or guild id cannot be loaded from the environment."""


class ExportError(MigratorError):
    """Raised when the Slack export data is invalid or unreadable."""


class APIError(MigratorError):
    """Raised when a Discord API call fails at the transport level."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SchemaError(MigratorError):
    """Raised when a Discord API response does not have the expected shape."""


# ---------------------------------------------------------------------------
# Content cache
# ---------------------------------------------------------------------------


class ContentCacheError(MigratorError):
    """Base class for attachment download failures."""


class FetchError(ContentCacheError):
    """Raised when downloading an attachment fails."""


class MissingContentType(ContentCacheError):
    """Raised when an attachment response has no Content-Type header."""


class InvalidContentType(ContentCacheError):
    """Raised when the Content-Type header is not plain ASCII text."""


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


class LedgerError(MigratorError):
    """Raised when the migration ledger cannot be read or written."""


class DuplicateKey(LedgerError):
    """Raised when recording a message that is already in the ledger."""


# ---------------------------------------------------------------------------
# Thread structure
# ---------------------------------------------------------------------------


class StructuralError(MigratorError):
    """Raised when the export and the ledger disagree about thread structure."""


class OrphanReply(StructuralError):
    """Raised when a thread reply's parent was never migrated."""


class MissingThread(StructuralError):
    """Raised when a thread reply's parent was migrated without a thread."""


# ---------------------------------------------------------------------------
# Run control
# ---------------------------------------------------------------------------


class ChannelReplayError(MigratorError):
    """Raised when replaying a channel stops at a failed message."""

    def __init__(self, channel: str, ts: str, reason: str) -> None:
        super().__init__(f"channel {channel} stopped at ts={ts}: {reason}")
        self.channel = channel
        self.ts = ts
        self.reason = reason


class MigrationAbortedError(MigratorError):
    """Raised when the migration is aborted after a fatal channel error."""
