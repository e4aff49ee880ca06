"""Pieces every subcommand shares: the root group, its options and error reporting."""

from __future__ import annotations

import logging
from typing import Callable, ClassVar

import click

import slack_discord_migrator
from slack_discord_migrator.constants import (
    HTTP_FORBIDDEN,
    HTTP_RATE_LIMIT,
    HTTP_SERVER_ERROR_MIN,
    HTTP_UNAUTHORIZED,
)
from slack_discord_migrator.exceptions import (
    APIError,
    CredentialError,
    MigrationAbortedError,
    MigratorError,
)
from slack_discord_migrator.utils.logging import log_with_context


class DefaultGroup(click.Group):
    """Root group that routes bare option lists to ``migrate``.

    ``slack-discord-migrator --export_path export.zip`` behaves like
    ``slack-discord-migrator migrate --export_path export.zip``.
    """

    _OWN_FLAGS: ClassVar[set[str]] = {"-h", "--help", "--version"}

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        first = args[0] if args else ""
        if first.startswith("-") and first not in self._OWN_FLAGS:
            args = ["migrate", *args]
        return super().parse_args(ctx, args)


_SHARED_OPTIONS = (
    click.option(
        "--export_path",
        required=True,
        type=click.Path(exists=True),
        help="Slack export to read, either the zip or its extracted directory",
    ),
    click.option(
        "--config",
        default="config.yaml",
        show_default=True,
        help="YAML file mapping Slack channels to Discord categories",
    ),
    click.option(
        "--dry_run",
        is_flag=True,
        default=False,
        help="Walk the export and report what would be posted; Discord is never called",
    ),
    click.option(
        "--verbose",
        "-v",
        is_flag=True,
        default=False,
        help="Print DEBUG messages on the console",
    ),
    click.option(
        "--debug_api",
        is_flag=True,
        default=False,
        help="Write every Discord request and response to the log file",
    ),
)


def common_options(f: Callable[..., None]) -> Callable[..., None]:
    """Attach the options that ``migrate`` and ``provision`` both accept."""
    for option in reversed(_SHARED_OPTIONS):
        f = option(f)
    return f


@click.group(
    cls=DefaultGroup,
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(
    version=slack_discord_migrator.__version__, prog_name="slack-discord-migrator"
)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Replay a Slack workspace export into a Discord guild."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


_PERMISSION_HINT = (
    "\nThe bot was refused. Confirm BOT_TOKEN is current and that the bot is a "
    "member of the GUILD_ID guild with Manage Channels, Send Messages, "
    "Create Public Threads and Attach Files."
)
_RESUME_HINT = (
    "Every message already posted is in the ledger; "
    "rerun the same command to resume where it stopped."
)


def handle_api_error(e: APIError) -> None:
    """Log a Discord failure along with a hint chosen by its HTTP status."""
    status = e.status_code
    if status in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        log_with_context(logging.ERROR, f"Discord refused the request: {e}")
        log_with_context(logging.INFO, _PERMISSION_HINT)
        return
    if status == HTTP_RATE_LIMIT:
        log_with_context(logging.ERROR, f"Discord kept rate limiting the bot: {e}")
        log_with_context(
            logging.INFO,
            "Increase post_interval in the config file, then rerun to resume.",
        )
        return
    if status is not None and status >= HTTP_SERVER_ERROR_MIN:
        log_with_context(logging.ERROR, f"Discord returned a server error: {e}")
        log_with_context(logging.INFO, "Discord outages are usually brief; rerun later.")
        return
    log_with_context(logging.ERROR, f"Discord API call failed: {e}")


def handle_exception(e: BaseException) -> None:
    """Report an exception that escaped a subcommand.

    Aborted runs are unwrapped down to the Discord error that stopped the
    channel, when there is one, so the operator sees the actionable hint.
    """
    if isinstance(e, MigrationAbortedError):
        log_with_context(logging.ERROR, str(e))
        replay_error = e.__cause__
        root = replay_error.__cause__ if replay_error is not None else None
        if isinstance(root, APIError):
            handle_api_error(root)
        log_with_context(logging.INFO, _RESUME_HINT)
    elif isinstance(e, APIError):
        handle_api_error(e)
    elif isinstance(e, CredentialError):
        log_with_context(logging.ERROR, str(e))
        log_with_context(
            logging.INFO, "Set BOT_TOKEN and GUILD_ID in the environment, then retry."
        )
    elif isinstance(e, MigratorError):
        log_with_context(logging.ERROR, str(e))
    elif isinstance(e, FileNotFoundError):
        log_with_context(logging.ERROR, f"Missing file: {e}")
        log_with_context(logging.INFO, "Check the --export_path and --config paths.")
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Interrupted.")
        log_with_context(logging.INFO, _RESUME_HINT)
    else:
        log_with_context(logging.ERROR, f"Unexpected failure: {e}", exc_info=True)


def show_security_warning() -> None:
    """Remind the operator that Slack file URLs in the export carry access tokens."""
    log_with_context(
        logging.WARNING,
        "\nSECURITY WARNING: file URLs inside the Slack export embed access tokens.",
    )
    log_with_context(
        logging.WARNING,
        "Store the export somewhere private, or delete it once the migration is done.",
    )
