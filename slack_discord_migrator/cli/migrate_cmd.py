"""CLI command handler for the migrate workflow."""

from __future__ import annotations

import datetime
import logging
import os
import sys
from pathlib import Path

import click
import yaml

from slack_discord_migrator.cli.common import (
    cli,
    common_options,
    handle_exception,
    show_security_warning,
)
from slack_discord_migrator.cli.report import generate_report, print_summary
from slack_discord_migrator.core.config import load_config
from slack_discord_migrator.core.context import MigrationContext
from slack_discord_migrator.core.migrator import SlackToDiscordMigrator
from slack_discord_migrator.utils.logging import log_with_context, setup_logger


@cli.command()
@common_options
@click.option(
    "--db",
    default=None,
    help="Path to the migration database (defaults to 'database' in the config)",
)
@click.option(
    "--output_dir",
    default=None,
    help="Directory for logs and the migration report (defaults to a timestamped directory)",
)
def migrate(
    export_path: str,
    config: str,
    dry_run: bool,
    verbose: bool,
    debug_api: bool,
    db: str | None,
    output_dir: str | None,
) -> None:
    """Replay a Slack export into a Discord guild.

    Messages already recorded in the migration database are skipped, so the
    command can be run again after a failure to resume.
    """
    output_dir = output_dir or create_migration_output_directory()
    setup_logger(verbose, debug_api, output_dir)
    log_with_context(logging.INFO, f"Output directory: {output_dir}")

    migrator: SlackToDiscordMigrator | None = None
    try:
        ctx = build_context(
            export_path, config, db, dry_run, verbose, debug_api, output_dir
        )
        log_startup_info(ctx, config)
        migrator = SlackToDiscordMigrator(ctx)
        try:
            migrator.migrate()
        finally:
            write_report(migrator)
    except (Exception, KeyboardInterrupt) as e:
        handle_exception(e)
        sys.exit(1)
    finally:
        show_security_warning()


def build_context(
    export_path: str,
    config: str,
    db: str | None,
    dry_run: bool,
    verbose: bool,
    debug_api: bool,
    output_dir: str | None = None,
) -> MigrationContext:
    """Load the config file and combine it with the command-line flags."""
    migration_config = load_config(Path(config))
    return MigrationContext(
        export_path=Path(export_path),
        database_path=db or migration_config.database,
        dry_run=dry_run,
        verbose=verbose,
        debug_api=debug_api,
        config=migration_config,
        output_dir=output_dir,
    )


def write_report(migrator: SlackToDiscordMigrator) -> None:
    """Write the report and print the summary, even after a failed run."""
    try:
        report_file = generate_report(migrator.ctx, migrator.state)
        print_summary(migrator.ctx, migrator.state, report_file)
    except (OSError, yaml.YAMLError) as report_error:
        log_with_context(
            logging.WARNING,
            f"Failed to generate migration report: {report_error}",
        )


def log_startup_info(ctx: MigrationContext, config: str) -> None:
    """Echo the resolved run settings so the log records what was run."""
    config_path = Path(config)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config

    log_with_context(logging.INFO, "Run settings:")
    log_with_context(logging.INFO, f"- Export path: {ctx.export_path}")
    log_with_context(logging.INFO, f"- Config: {config_path}")
    log_with_context(logging.INFO, f"- Database: {ctx.database_path}")
    log_with_context(logging.INFO, f"- Dry run: {ctx.dry_run}")
    log_with_context(logging.INFO, f"- Verbose logging: {ctx.verbose}")
    log_with_context(logging.INFO, f"- Debug API calls: {ctx.debug_api}")


def create_migration_output_directory() -> str:
    """Make a fresh ``migration_logs/run_<timestamp>`` directory and return its path."""
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = f"migration_logs/run_{timestamp}"

    os.makedirs(output_dir, exist_ok=True)
    os.makedirs(os.path.join(output_dir, "channel_logs"), exist_ok=True)

    return output_dir
