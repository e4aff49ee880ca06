"""
Migration state container for the Slack to Discord migration.

Mutable tracking state for a migration run, separated from immutable
configuration (MigrationContext) for clear ownership boundaries. Durable
progress lives in the ledger; this only holds what the run reports.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from slack_discord_migrator.types import MigrationSummary


def _default_migration_summary() -> MigrationSummary:
    """Return a fresh MigrationSummary with zeroed counters."""
    return MigrationSummary(
        channels_processed=[],
        channels_skipped=[],
        messages_posted=0,
        messages_already_migrated=0,
        messages_skipped=0,
        threads_opened=0,
        files_uploaded=0,
    )


@dataclass
class ChannelStats:
    """Per-channel replay counters."""

    posted: int = 0
    already_migrated: int = 0
    skipped: int = 0
    threads_opened: int = 0
    files_uploaded: int = 0
    pending: int = 0  # dry run: messages that would be posted
    pending_files: int = 0

    @property
    def total(self) -> int:
        return self.posted + self.already_migrated + self.skipped + self.pending


@dataclass
class ChannelFailure:
    """The message a channel replay stopped at."""

    channel: str
    ts: str
    error: str


@dataclass
class MigrationState:
    """Holds all mutable tracking state for a migration run."""

    migration_summary: MigrationSummary = field(
        default_factory=_default_migration_summary
    )
    channel_stats: dict[str, ChannelStats] = field(default_factory=dict)
    unconfigured_channels: list[str] = field(default_factory=list)
    failures: list[ChannelFailure] = field(default_factory=list)
    current_channel: str | None = None

    def stats_for(self, channel: str) -> ChannelStats:
        """Return the stats record for ``channel``, creating it on first use."""
        return self.channel_stats.setdefault(channel, ChannelStats())

    def finish_channel(self, channel: str) -> None:
        """Fold one channel's counters into the run summary.

        Called once per replayed channel, whether it completed or stopped.
        """
        stats = self.stats_for(channel)
        summary = self.migration_summary
        summary["channels_processed"].append(channel)
        summary["messages_posted"] += stats.posted
        summary["messages_already_migrated"] += stats.already_migrated
        summary["messages_skipped"] += stats.skipped
        summary["threads_opened"] += stats.threads_opened
        summary["files_uploaded"] += stats.files_uploaded

    @property
    def has_errors(self) -> bool:
        """Return True if any channel replay failed."""
        return bool(self.failures)
