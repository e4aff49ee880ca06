"""Attachment download with a persistent, write-once cache.

Each Slack file URL is downloaded at most once. The body and Content-Type
are stored in the ``files`` table and every later fetch of the same URL,
in this run or a later one, is served from there without touching the
network.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable

import requests

from slack_discord_migrator.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    HTTP_OK_MAX,
    HTTP_OK_MIN,
)
from slack_discord_migrator.core.database import MigrationDatabase
from slack_discord_migrator.exceptions import (
    ContentCacheError,
    FetchError,
    InvalidContentType,
    MissingContentType,
)
from slack_discord_migrator.types import CachedFile
from slack_discord_migrator.utils.logging import log_with_context


def _short(url: str) -> str:
    return f"{url[:100]}{'...' if len(url) > 100 else ''}"


def _validate_content_type(url: str, value: str | None) -> str:
    if value is None:
        raise MissingContentType(f"no Content-Type in response for {_short(url)}")
    # Header values arrive latin-1 decoded; only visible ASCII is a usable MIME type.
    if not all(c == "\t" or " " <= c <= "~" for c in value):
        raise InvalidContentType(
            f"Content-Type of {_short(url)} is not ASCII text: {value!r}"
        )
    return value


class ContentCache:
    """Repository over the ``files`` table, filled from the network on a miss.

    Attachments are fetched from a thread pool, so each thread gets its own
    HTTP session from ``session_factory``.
    """

    def __init__(
        self,
        database: MigrationDatabase,
        session_factory: Callable[[], requests.Session] = requests.Session,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.database = database
        self.session_factory = session_factory
        self.timeout = timeout
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        """The HTTP session of the calling thread."""
        session = getattr(self._local, "session", None)
        if session is None:
            session = self.session_factory()
            self._local.session = session
        return session

    def lookup(self, url: str) -> CachedFile | None:
        """Return the cached copy of ``url`` without downloading it."""
        try:
            row = self.database.query_one(
                "SELECT url, body, mime FROM files WHERE url = ?", (url,)
            )
        except sqlite3.Error as e:
            raise ContentCacheError(
                f"failed to read cache for {_short(url)}: {e}"
            ) from e
        if row is None:
            return None
        return CachedFile(url=row["url"], body=bytes(row["body"]), mime=row["mime"])

    def fetch(self, url: str) -> CachedFile:
        """Return the bytes and MIME type of ``url``, downloading on first use.

        Raises:
            FetchError: If the request fails or returns a non-2xx status.
            MissingContentType: If the response has no Content-Type header.
            InvalidContentType: If the Content-Type header is not ASCII text.
        """
        cached = self.lookup(url)
        if cached is not None:
            log_with_context(logging.DEBUG, f"{_short(url)} found in cache", url=url)
            return cached

        log_with_context(logging.DEBUG, f"Downloading {_short(url)}", url=url)
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise FetchError(f"failed to download {_short(url)}: {e}") from e

        if not HTTP_OK_MIN <= response.status_code <= HTTP_OK_MAX:
            raise FetchError(
                f"failed to download {_short(url)}: HTTP {response.status_code}"
            )

        mime = _validate_content_type(url, response.headers.get("Content-Type"))
        try:
            body = response.content
        except requests.exceptions.RequestException as e:
            raise FetchError(f"failed to read body of {_short(url)}: {e}") from e

        return self._store(CachedFile(url=url, body=body, mime=mime))

    def _store(self, file: CachedFile) -> CachedFile:
        try:
            with self.database.transaction() as conn:
                conn.execute(
                    "INSERT OR IGNORE INTO files (url, body, mime) VALUES (?, ?, ?)",
                    (file.url, sqlite3.Binary(file.body), file.mime),
                )
        except sqlite3.Error as e:
            raise ContentCacheError(f"failed to cache {_short(file.url)}: {e}") from e

        log_with_context(
            logging.DEBUG,
            f"Cached {_short(file.url)} ({len(file.body)} bytes, {file.mime})",
            url=file.url,
        )
        # A concurrent fetch of the same URL may have won the insert.
        stored = self.lookup(file.url)
        return stored if stored is not None else file
