"""
Report generation for a Slack to Discord migration run
"""

from __future__ import annotations

import datetime
import logging
import os

import yaml

from slack_discord_migrator.core.context import MigrationContext
from slack_discord_migrator.core.state import MigrationState
from slack_discord_migrator.utils.logging import log_with_context


def build_report(ctx: MigrationContext, state: MigrationState) -> dict:
    """Collect the run summary and per-channel counters into a plain dict."""
    summary = state.migration_summary
    channels = {
        name: {
            "posted": stats.posted,
            "already_migrated": stats.already_migrated,
            "skipped": stats.skipped,
            "threads_opened": stats.threads_opened,
            "files_uploaded": stats.files_uploaded,
            **(
                {"pending": stats.pending, "pending_files": stats.pending_files}
                if ctx.dry_run
                else {}
            ),
        }
        for name, stats in state.channel_stats.items()
    }
    return {
        "migration_summary": {
            "timestamp": datetime.datetime.now().isoformat(),
            "dry_run": ctx.dry_run,
            "export_path": str(ctx.export_path),
            "database": ctx.database_path,
            "channels_processed": len(summary["channels_processed"]),
            "channels_skipped": len(summary["channels_skipped"]),
            "messages_posted": summary["messages_posted"],
            "messages_already_migrated": summary["messages_already_migrated"],
            "messages_skipped": summary["messages_skipped"],
            "threads_opened": summary["threads_opened"],
            "files_uploaded": summary["files_uploaded"],
        },
        "channels": channels,
        "unconfigured_channels": list(state.unconfigured_channels),
        "skipped_channels": list(summary["channels_skipped"]),
        "failures": [
            {"channel": f.channel, "ts": f.ts, "error": f.error}
            for f in state.failures
        ],
    }


def generate_report(
    ctx: MigrationContext,
    state: MigrationState,
    output_file: str = "migration_report.yaml",
) -> str:
    """Write the migration report as YAML into the output directory.

    Returns:
        Path of the written report.
    """
    output_dir = ctx.output_dir or "."
    os.makedirs(output_dir, exist_ok=True)
    report_path = os.path.join(output_dir, output_file)

    with open(report_path, "w") as f:
        yaml.safe_dump(build_report(ctx, state), f, default_flow_style=False, sort_keys=False)

    if state.failures:
        for failure in state.failures:
            log_with_context(
                logging.WARNING,
                f"Channel {failure.channel} stopped at ts={failure.ts}: {failure.error}",
            )
    log_with_context(logging.INFO, f"Migration report written to {report_path}")
    return report_path


def print_summary(
    ctx: MigrationContext, state: MigrationState, report_file: str | None = None
) -> None:
    """Print a summary of the run to the console."""
    summary = state.migration_summary
    title = "DRY RUN SUMMARY" if ctx.dry_run else "MIGRATION SUMMARY"
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)
    print(f"Channels processed: {len(summary['channels_processed'])}")
    print(f"Channels skipped: {len(summary['channels_skipped'])}")
    if ctx.dry_run:
        pending = sum(s.pending for s in state.channel_stats.values())
        pending_files = sum(s.pending_files for s in state.channel_stats.values())
        print(f"Messages that would be posted: {pending}")
        print(f"Files that would be uploaded: {pending_files}")
    else:
        print(f"Messages posted: {summary['messages_posted']}")
        print(f"Threads opened: {summary['threads_opened']}")
        print(f"Files uploaded: {summary['files_uploaded']}")
    print(f"Messages already migrated: {summary['messages_already_migrated']}")

    if state.unconfigured_channels:
        print(f"\nUnconfigured channels: {', '.join(state.unconfigured_channels)}")
        print("Add them under 'channels' in config.yaml to migrate them")

    if report_file:
        print(f"\nDetailed report saved to {report_file}")
    print("=" * 80)
    if ctx.dry_run:
        print("\nTo perform the actual migration, run again without --dry_run")
        print("=" * 80)
