"""Run settings resolved from the command line and the config file.

The CLI builds one MigrationContext per run. The migrator, the provisioner
and the channel processor read it and never change it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from pathlib import Path

from slack_discord_migrator.core.config import MigrationConfig
from slack_discord_migrator.utils.formatting import utc_offset


@dataclass(frozen=True)
class MigrationContext:
    """Frozen settings for one migration run."""

    # Paths
    export_path: Path
    database_path: str

    # Mode flags
    dry_run: bool
    verbose: bool
    debug_api: bool

    # Loaded configuration
    config: MigrationConfig

    output_dir: str | None = None

    @property
    def timezone(self) -> tzinfo:
        """Timezone used for the date shown in each migrated message."""
        return utc_offset(self.config.utc_offset_hours)

    @property
    def log_prefix(self) -> str:
        """Mode-aware log prefix, ``"[DRY RUN] "`` or empty."""
        return "[DRY RUN] " if self.dry_run else ""
