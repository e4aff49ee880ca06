"""
Configuration module for the Slack to Discord migration tool.

This module loads the YAML configuration file (the channel → category
mapping plus replay tuning), creates a default configuration, and decides
which Slack channels should be replayed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from slack_discord_migrator.constants import (
    DEFAULT_ATTACHMENT_WORKERS,
    DEFAULT_DATABASE_PATH,
    DEFAULT_POST_INTERVAL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_THREAD_TITLE,
    DEFAULT_UTC_OFFSET_HOURS,
)
from slack_discord_migrator.exceptions import ConfigError
from slack_discord_migrator.utils.logging import log_with_context


@dataclass
class MigrationConfig:
    """Typed configuration for the migration tool.

    ``channels`` maps a Slack channel name to the Discord category it is
    created under; channels absent from it are never replayed.
    """

    # Channel → category mapping and filtering
    channels: dict[str, str] = field(default_factory=dict)
    include_channels: list[str] = field(default_factory=list)
    exclude_channels: list[str] = field(default_factory=list)

    # Replay tuning
    post_interval: float = DEFAULT_POST_INTERVAL
    utc_offset_hours: float = DEFAULT_UTC_OFFSET_HOURS
    attachment_workers: int = DEFAULT_ATTACHMENT_WORKERS
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    thread_title: str = DEFAULT_THREAD_TITLE
    verify_threads: bool = False
    skip_subtypes: list[str] = field(default_factory=list)

    # Storage
    database: str = DEFAULT_DATABASE_PATH

    def __post_init__(self) -> None:
        if self.post_interval < 0:
            raise ConfigError(
                f"post_interval must be non-negative, got {self.post_interval}"
            )
        if self.attachment_workers < 1:
            raise ConfigError(
                f"attachment_workers must be at least 1, got {self.attachment_workers}"
            )
        if self.request_timeout <= 0:
            raise ConfigError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """Create a MigrationConfig from a raw config dictionary."""
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            log_with_context(
                logging.WARNING,
                f"Ignoring unknown config keys: {', '.join(sorted(unknown))}",
            )

        channels = data.get("channels") or {}
        if not isinstance(channels, dict):
            raise ConfigError("'channels' must map channel names to category names")

        try:
            return cls(
                channels={str(k): str(v) for k, v in channels.items()},
                include_channels=_name_list(data, "include_channels"),
                exclude_channels=_name_list(data, "exclude_channels"),
                post_interval=float(data.get("post_interval", DEFAULT_POST_INTERVAL)),
                utc_offset_hours=float(
                    data.get("utc_offset_hours", DEFAULT_UTC_OFFSET_HOURS)
                ),
                attachment_workers=int(
                    data.get("attachment_workers", DEFAULT_ATTACHMENT_WORKERS)
                ),
                request_timeout=float(
                    data.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)
                ),
                thread_title=str(data.get("thread_title", DEFAULT_THREAD_TITLE)),
                verify_threads=_flag(data, "verify_threads"),
                skip_subtypes=_name_list(data, "skip_subtypes"),
                database=str(data.get("database", DEFAULT_DATABASE_PATH)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e


def _name_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    # YAML reads an all-digit channel name as an int
    if not isinstance(value, list) or not all(
        isinstance(v, (str, int)) and not isinstance(v, bool) for v in value
    ):
        raise ConfigError(f"'{key}' must be a list of names, got {value!r}")
    return [str(v) for v in value]


def _flag(data: dict[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def load_config(config_path: Path) -> MigrationConfig:
    """
    Read the YAML config, falling back to defaults for anything it omits.

    A missing or unreadable file only logs a warning so a dry run can go
    ahead without one. A file that parses to something other than a mapping,
    or values of the wrong type, raise ConfigError.
    """
    raw: dict[str, Any] = {}

    if not config_path.exists():
        log_with_context(
            logging.WARNING,
            f"No config at {config_path}; every setting takes its default",
        )
        return MigrationConfig.from_dict(raw)

    try:
        with open(config_path) as f:
            parsed = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        log_with_context(
            logging.WARNING, f"Could not read {config_path}, using defaults: {e}"
        )
        return MigrationConfig.from_dict(raw)

    # An empty file parses to None
    if parsed is not None:
        if not isinstance(parsed, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        raw = parsed
    log_with_context(logging.INFO, f"Using config {config_path}")
    return MigrationConfig.from_dict(raw)


def create_default_config(output_path: Path) -> bool:
    """
    Write a starter config listing every setting with its default.

    Returns False, leaving the file alone, when ``output_path`` exists or
    cannot be written.
    """
    if output_path.exists():
        log_with_context(
            logging.WARNING, f"{output_path} exists; leaving it untouched"
        )
        return False

    starter = {
        "channels": {"general": "slack", "random": "slack"},
        "include_channels": [],
        "exclude_channels": [],
        "post_interval": DEFAULT_POST_INTERVAL,
        "utc_offset_hours": DEFAULT_UTC_OFFSET_HOURS,
        "attachment_workers": DEFAULT_ATTACHMENT_WORKERS,
        "request_timeout": DEFAULT_REQUEST_TIMEOUT,
        "thread_title": DEFAULT_THREAD_TITLE,
        "verify_threads": False,
        "skip_subtypes": [],
        "database": DEFAULT_DATABASE_PATH,
    }

    try:
        with open(output_path, "w") as f:
            yaml.safe_dump(starter, f, default_flow_style=False, sort_keys=False)
    except OSError as e:
        log_with_context(logging.ERROR, f"Could not write {output_path}: {e}")
        return False
    log_with_context(logging.INFO, f"Wrote starter config to {output_path}")
    return True


def should_process_channel(channel_name: str, config: MigrationConfig) -> bool:
    """
    Apply include_channels and exclude_channels to a Slack channel name.

    A non-empty include list wins outright. Otherwise everything not in the
    exclude list passes. Whether the channel has a category is the
    provisioner's concern, not this one.
    """
    if config.include_channels:
        if channel_name in config.include_channels:
            return True
        log_with_context(
            logging.DEBUG, f"Skipping {channel_name}: not in include_channels"
        )
        return False

    if channel_name in config.exclude_channels:
        log_with_context(logging.DEBUG, f"Skipping {channel_name}: in exclude_channels")
        return False
    return True
