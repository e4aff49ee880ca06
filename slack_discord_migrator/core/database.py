"""Embedded SQLite store shared by the migration ledger and the content cache.

One database file holds two independent tables: ``posts`` (the ledger) and
``files`` (downloaded attachments). The schema version is kept in
``PRAGMA user_version`` and upgraded in order when the file is opened.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from slack_discord_migrator.exceptions import ConfigError
from slack_discord_migrator.utils.logging import log_with_context

MEMORY_DATABASE = ":memory:"

# Index i upgrades the schema from version i to i + 1.
MIGRATIONS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS posts (
        message_id TEXT PRIMARY KEY NOT NULL,
        slack_channel_id TEXT NOT NULL,
        channel_id TEXT NOT NULL,
        slack_ts TEXT NOT NULL,
        thread_id TEXT
    );

    CREATE UNIQUE INDEX IF NOT EXISTS idx_posts_slack_key
        ON posts (slack_channel_id, slack_ts);

    CREATE TABLE IF NOT EXISTS files (
        url TEXT PRIMARY KEY NOT NULL,
        body BLOB NOT NULL,
        mime TEXT NOT NULL
    );
    """,
]

SCHEMA_VERSION = len(MIGRATIONS)


class MigrationDatabase:
    """A thread-safe SQLite connection with the migration schema applied."""

    def __init__(self, path: str, read_only: bool = False) -> None:
        self.path = path
        self.read_only = read_only and path != MEMORY_DATABASE
        self._lock = threading.RLock()
        if self.read_only:
            log_with_context(
                logging.INFO, f"Opening migration database read-only: {path}"
            )
            # Read-only opens never touch the journal mode or the schema.
            self.conn = sqlite3.connect(
                f"{Path(path).resolve().as_uri()}?mode=ro",
                uri=True,
                check_same_thread=False,
            )
            self.conn.row_factory = sqlite3.Row
            self._check_read_only_schema()
            return

        if path != MEMORY_DATABASE:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        log_with_context(logging.INFO, f"Opening migration database: {path}")
        # Attachment downloads write from worker threads; the lock serialises access.
        self.conn = sqlite3.connect(path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._configure()
        self._migrate()

    def _configure(self) -> None:
        cursor = self.conn.cursor()
        if self.path != MEMORY_DATABASE:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=FULL")
        self.conn.commit()

    def _check_read_only_schema(self) -> None:
        version = self.schema_version
        if version != SCHEMA_VERSION:
            self.conn.close()
            raise ConfigError(
                f"Database {self.path} has schema version {version}, expected "
                f"{SCHEMA_VERSION}; it can only be upgraded by a run that writes"
            )

    def _migrate(self) -> None:
        version = self.schema_version
        if version > SCHEMA_VERSION:
            raise ConfigError(
                f"Database {self.path} has schema version {version}, "
                f"newer than supported version {SCHEMA_VERSION}"
            )
        for index in range(version, SCHEMA_VERSION):
            log_with_context(
                logging.DEBUG,
                f"Upgrading database schema {index} -> {index + 1}",
            )
            with self._lock:
                self.conn.executescript(MIGRATIONS[index])
                self.conn.execute(f"PRAGMA user_version = {index + 1}")
                self.conn.commit()

    @property
    def schema_version(self) -> int:
        with self._lock:
            row = self.conn.execute("PRAGMA user_version").fetchone()
        return int(row[0])

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block of statements atomically, committing on success."""
        with self._lock:
            with self.conn:
                yield self.conn

    def query_one(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        with self._lock:
            row: sqlite3.Row | None = self.conn.execute(sql, params).fetchone()
        return row

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def __enter__(self) -> MigrationDatabase:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
