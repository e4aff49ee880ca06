"""Unit tests for the attachment content cache."""

import sqlite3
import threading
from unittest.mock import MagicMock, patch

import pytest
import requests

from slack_discord_migrator.exceptions import (
    ContentCacheError,
    FetchError,
    InvalidContentType,
    MissingContentType,
)
from slack_discord_migrator.services.content_cache import ContentCache

URL = "https://files.slack.com/files-pri/T1-F1/download/a.png?t=xoxe-secret"


def _response(body=b"png-bytes", headers=None, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.headers = {"Content-Type": "image/png"} if headers is None else headers
    response.content = body
    return response


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def cache(database, session):
    return ContentCache(database, session_factory=lambda: session, timeout=5)


class TestFetch:
    def test_downloads_and_caches(self, cache, session):
        session.get.return_value = _response()

        cached = cache.fetch(URL)

        assert cached.body == b"png-bytes"
        assert cached.mime == "image/png"
        session.get.assert_called_once_with(URL, timeout=5)
        assert cache.lookup(URL) == cached

    def test_second_fetch_is_served_from_cache(self, cache, session):
        session.get.return_value = _response()
        cache.fetch(URL)
        cache.fetch(URL)
        assert session.get.call_count == 1

    def test_new_instance_reuses_stored_file(self, cache, session, database):
        session.get.return_value = _response()
        cache.fetch(URL)

        offline = MagicMock(spec=requests.Session)
        cached = ContentCache(database, session_factory=lambda: offline).fetch(URL)

        assert cached.body == b"png-bytes"
        offline.get.assert_not_called()

    def test_lookup_miss(self, cache):
        assert cache.lookup(URL) is None


class TestFetchErrors:
    def test_missing_content_type(self, cache, session):
        session.get.return_value = _response(headers={})
        with pytest.raises(MissingContentType):
            cache.fetch(URL)
        assert cache.lookup(URL) is None

    def test_non_ascii_content_type(self, cache, session):
        session.get.return_value = _response(headers={"Content-Type": "image/péng"})
        with pytest.raises(InvalidContentType):
            cache.fetch(URL)
        assert cache.lookup(URL) is None

    def test_transport_failure(self, cache, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(FetchError, match="refused"):
            cache.fetch(URL)
        assert cache.lookup(URL) is None

    def test_http_error_status(self, cache, session):
        session.get.return_value = _response(status_code=404)
        with pytest.raises(FetchError, match="HTTP 404"):
            cache.fetch(URL)
        assert cache.lookup(URL) is None

    def test_errors_share_base_class(self):
        for error in (FetchError, MissingContentType, InvalidContentType):
            assert issubclass(error, ContentCacheError)

    def test_long_url_is_shortened_in_message(self, cache, session):
        long_url = "https://files.slack.com/" + "x" * 200
        session.get.return_value = _response(status_code=500)
        with pytest.raises(FetchError) as exc_info:
            cache.fetch(long_url)
        assert long_url not in str(exc_info.value)
        assert "..." in str(exc_info.value)

    def test_database_read_failure_is_a_cache_error(self, cache, database, session):
        with patch.object(
            database, "query_one", side_effect=sqlite3.OperationalError("database is locked")
        ):
            with pytest.raises(ContentCacheError, match="database is locked"):
                cache.fetch(URL)
        session.get.assert_not_called()


class TestSessions:
    def test_one_session_per_thread(self, database):
        sessions = []

        def make_session():
            session = MagicMock(spec=requests.Session)
            session.get.return_value = _response()
            sessions.append(session)
            return session

        cache = ContentCache(database, session_factory=make_session)
        cache.fetch(URL)
        cache.fetch(URL + "&second")

        worker = threading.Thread(target=cache.fetch, args=(URL + "&third",))
        worker.start()
        worker.join()

        assert len(sessions) == 2
        assert sessions[0].get.call_count == 2
        assert sessions[1].get.call_count == 1
