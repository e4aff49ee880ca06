"""Unit tests for the ChannelProcessor replay pipeline."""

from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock, patch

import pytest
import requests

from slack_discord_migrator.core.channel_processor import ChannelProcessor
from slack_discord_migrator.core.ledger import Ledger
from slack_discord_migrator.core.state import MigrationState
from slack_discord_migrator.exceptions import (
    APIError,
    ChannelReplayError,
    FetchError,
    LedgerError,
    MissingThread,
    OrphanReply,
)
from slack_discord_migrator.services.content_cache import ContentCache
from slack_discord_migrator.types import (
    DiscordChannel,
    DiscordChannelId,
    FilePayload,
    MessageId,
    NonHostedFile,
    SlackChannel,
    SlackTimestamp,
    ThreadId,
)

DESTINATION = DiscordChannel(DiscordChannelId("900"), "general", 0, DiscordChannelId("800"))
NAMES = {"U001": "alice", "U002": "bob"}


def _response(body: bytes, mime: str = "image/png") -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.headers = {"Content-Type": mime}
    response.content = body
    return response


@pytest.fixture()
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture()
def ledger(database):
    return Ledger(database)


@pytest.fixture()
def make_processor(make_context, database, ledger, session):
    """Factory returning ``(processor, sleep)`` for a client and config."""

    def _make(client, state=None, **ctx_kwargs):
        sleep = MagicMock()
        processor = ChannelProcessor(
            make_context(**ctx_kwargs),
            state or MigrationState(),
            client,
            ledger,
            ContentCache(database, session_factory=lambda: session),
            NAMES,
            sleep=sleep,
        )
        return processor, sleep

    return _make


def _channel(*messages, channel_id="C001", name="general"):
    return SlackChannel(id=channel_id, name=name, messages=list(messages))


def _ts(raw: str) -> SlackTimestamp:
    return SlackTimestamp.parse(raw)


class TestThreadScenario:
    """A root with one reply, replayed and then replayed again."""

    @pytest.fixture()
    def channel(self, make_message):
        return _channel(
            make_message("1.0", "U001", "hello", thread_ts="1.0", reply_count=1),
            make_message("2.0", "U002", "hi back", thread_ts="1.0"),
        )

    def test_root_opens_thread_and_reply_lands_in_it(
        self, channel, fake_client, make_processor, ledger
    ):
        processor, _ = make_processor(fake_client)

        stats = processor.replay_channel(channel, DESTINATION)

        fake_client.post_message.assert_called_once()
        args = fake_client.post_message.call_args.args
        assert args[0] == DiscordChannelId("900")
        assert args[1].startswith("**alice** ")
        assert args[1].endswith("\nhello\n")

        fake_client.start_thread.assert_called_once_with(
            DiscordChannelId("900"), MessageId("1000"), "slack thread"
        )
        reply_args = fake_client.post_thread_reply.call_args.args
        assert reply_args[0] == ThreadId("T1000")
        assert reply_args[1].startswith("**bob** ")

        root = ledger.lookup("C001", _ts("1.0"))
        reply = ledger.lookup("C001", _ts("2.0"))
        assert root.message_id == MessageId("1000")
        assert root.thread_id == ThreadId("T1000")
        assert reply.message_id == MessageId("1001")
        assert reply.thread_id == ThreadId("T1000")
        assert reply.channel_id == DiscordChannelId("900")

        assert stats.posted == 2
        assert stats.threads_opened == 1

    def test_rerun_makes_no_api_calls(
        self, channel, fake_client, make_fake_client, make_processor
    ):
        processor, _ = make_processor(fake_client)
        processor.replay_channel(channel, DESTINATION)

        second_client = make_fake_client()
        rerun, sleep = make_processor(second_client)
        stats = rerun.replay_channel(channel, DESTINATION)

        assert second_client.method_calls == []
        sleep.assert_not_called()
        assert stats.posted == 0
        assert stats.already_migrated == 2

    def test_sleeps_after_each_post(self, channel, fake_client, make_processor):
        processor, sleep = make_processor(fake_client, post_interval=1.0)

        processor.replay_channel(channel, DESTINATION)

        assert sleep.call_count == 2
        sleep.assert_called_with(1.0)


class TestStructuralErrors:
    """Replies whose parent cannot be resolved stop the channel."""

    def test_orphan_reply_fails_without_posting(
        self, make_message, fake_client, make_processor, ledger
    ):
        processor, sleep = make_processor(fake_client)
        channel = _channel(make_message("6.0", "U002", "lost", thread_ts="5.0"))

        with pytest.raises(ChannelReplayError) as exc_info:
            processor.replay_channel(channel, DESTINATION)

        assert isinstance(exc_info.value.__cause__, OrphanReply)
        assert exc_info.value.channel == "general"
        assert exc_info.value.ts == "6.000000"
        fake_client.post_thread_reply.assert_not_called()
        fake_client.post_message.assert_not_called()
        assert ledger.lookup("C001", _ts("6.0")) is None
        sleep.assert_not_called()

    def test_parent_without_thread_raises_missing_thread(
        self, make_message, fake_client, make_processor, ledger
    ):
        ledger.record("C001", _ts("5.0"), MessageId("m5"), DiscordChannelId("900"))
        processor, _ = make_processor(fake_client)
        channel = _channel(
            make_message("5.0", "U001", "parent"),
            make_message("6.0", "U002", "reply", thread_ts="5.0"),
        )

        with pytest.raises(ChannelReplayError) as exc_info:
            processor.replay_channel(channel, DESTINATION)

        assert isinstance(exc_info.value.__cause__, MissingThread)
        fake_client.post_thread_reply.assert_not_called()

    def test_error_message_names_channel_and_ts(
        self, make_message, fake_client, make_processor
    ):
        processor, _ = make_processor(fake_client)
        channel = _channel(make_message("6.5", "U002", "lost", thread_ts="5.0"))

        with pytest.raises(ChannelReplayError, match=r"general stopped at ts=6\.500000"):
            processor.replay_channel(channel, DESTINATION)


class TestOrderingAndIdempotence:
    """Messages are ledgered in timestamp order and never posted twice."""

    def test_messages_are_ledgered_in_order(
        self, make_message, fake_client, make_processor, database
    ):
        processor, _ = make_processor(fake_client)
        channel = _channel(
            make_message("1.0", text="one"),
            make_message("2.0", text="two"),
            make_message("10.0", text="three"),
        )

        processor.replay_channel(channel, DESTINATION)

        posted = [c.args[1].splitlines()[1] for c in fake_client.post_message.call_args_list]
        assert posted == ["one", "two", "three"]
        rows = database.conn.execute("SELECT slack_ts FROM posts ORDER BY rowid").fetchall()
        assert [r[0] for r in rows] == ["1.000000", "2.000000", "10.000000"]

    def test_failure_stops_channel_and_rerun_resumes(
        self, make_message, fake_client, make_fake_client, make_processor, ledger
    ):
        channel = _channel(
            make_message("1.0", text="one"),
            make_message("2.0", text="two"),
            make_message("3.0", text="three"),
        )
        posted = fake_client.post_message.side_effect

        def fail_on_two(channel_id, content, files=()):
            if "two" in content:
                raise APIError("HTTP 500", status_code=500)
            return posted(channel_id, content, files)

        fake_client.post_message.side_effect = fail_on_two
        processor, _ = make_processor(fake_client)

        with pytest.raises(ChannelReplayError) as exc_info:
            processor.replay_channel(channel, DESTINATION)

        assert exc_info.value.ts == "2.000000"
        assert fake_client.post_message.call_count == 2
        assert ledger.count("C001") == 1

        second_client = make_fake_client(first_id=2000)
        rerun, _ = make_processor(second_client)
        stats = rerun.replay_channel(channel, DESTINATION)

        assert second_client.post_message.call_count == 2
        assert stats.already_migrated == 1
        assert ledger.count("C001") == 3

    def test_ledger_failure_after_post_stops_channel(
        self, make_message, fake_client, make_processor, ledger
    ):
        processor, _ = make_processor(fake_client)
        channel = _channel(make_message("1.0"), make_message("2.0"))

        with patch.object(ledger, "record", side_effect=LedgerError("disk full")):
            with pytest.raises(ChannelReplayError) as exc_info:
                processor.replay_channel(channel, DESTINATION)

        assert isinstance(exc_info.value.__cause__, LedgerError)
        assert fake_client.post_message.call_count == 1

    def test_ledger_read_failure_stops_channel_with_context(
        self, make_message, fake_client, make_processor, database
    ):
        processor, sleep = make_processor(fake_client)
        channel = _channel(make_message("1.0"), make_message("2.0"))

        with patch.object(
            database, "query_one", side_effect=sqlite3.OperationalError("database is locked")
        ):
            with pytest.raises(ChannelReplayError) as exc_info:
                processor.replay_channel(channel, DESTINATION)

        assert isinstance(exc_info.value.__cause__, LedgerError)
        assert exc_info.value.channel == "general"
        assert exc_info.value.ts == "1.000000"
        assert "database is locked" in exc_info.value.reason
        fake_client.post_message.assert_not_called()
        sleep.assert_not_called()


class TestThreadRoots:
    def test_zero_reply_count_opens_no_thread(
        self, make_message, fake_client, make_processor, ledger
    ):
        processor, _ = make_processor(fake_client)
        channel = _channel(make_message("1.0", reply_count=0, thread_ts="1.0"))

        processor.replay_channel(channel, DESTINATION)

        fake_client.start_thread.assert_not_called()
        assert ledger.lookup("C001", _ts("1.0")).thread_id is None

    def test_rerun_opens_thread_missing_from_interrupted_run(
        self, make_message, fake_client, make_processor, ledger
    ):
        ledger.record("C001", _ts("1.0"), MessageId("m1"), DiscordChannelId("900"))
        processor, sleep = make_processor(fake_client)
        channel = _channel(
            make_message("1.0", reply_count=1, thread_ts="1.0"),
            make_message("2.0", "U002", "reply", thread_ts="1.0"),
        )

        processor.replay_channel(channel, DESTINATION)

        fake_client.post_message.assert_not_called()
        fake_client.start_thread.assert_called_once_with(
            DiscordChannelId("900"), MessageId("m1"), "slack thread"
        )
        assert ledger.lookup("C001", _ts("1.0")).thread_id == ThreadId("Tm1")
        assert fake_client.post_thread_reply.call_args.args[0] == ThreadId("Tm1")

    def test_thread_title_comes_from_config(
        self, make_message, fake_client, make_processor
    ):
        processor, _ = make_processor(fake_client, thread_title="history")
        channel = _channel(make_message("1.0", reply_count=2, thread_ts="1.0"))

        processor.replay_channel(channel, DESTINATION)

        assert fake_client.start_thread.call_args.args[2] == "history"


class TestAttachments:
    def test_hosted_files_are_uploaded_in_order(
        self, make_message, make_hosted_file, fake_client, make_processor, session
    ):
        session.get.side_effect = lambda url, timeout: _response(url.encode())
        processor, _ = make_processor(fake_client)
        message = make_message(
            "1.0",
            text="files",
            files=(
                make_hosted_file("a.png"),
                NonHostedFile(mode="tombstone"),
                make_hosted_file("b.png"),
            ),
        )

        stats = processor.replay_channel(_channel(message), DESTINATION)

        files = fake_client.post_message.call_args.args[2]
        assert files == [
            FilePayload("a.png", "a.png title", b"https://files.slack.com/a.png", "image/png"),
            FilePayload("b.png", "b.png title", b"https://files.slack.com/b.png", "image/png"),
        ]
        assert stats.files_uploaded == 2

    def test_same_url_is_downloaded_once(
        self, make_message, make_hosted_file, fake_client, make_processor, session
    ):
        session.get.return_value = _response(b"bytes")
        processor, _ = make_processor(fake_client)
        shared = make_hosted_file("shared.png")
        processor.replay_channel(
            _channel(make_message("1.0", files=(shared,))), DESTINATION
        )
        processor.replay_channel(
            _channel(make_message("1.0", files=(shared,)), channel_id="C002", name="random"),
            DESTINATION,
        )

        assert session.get.call_count == 1
        first, second = fake_client.post_message.call_args_list
        assert first.args[2] == second.args[2]

    def test_failed_download_posts_nothing(
        self, make_message, make_hosted_file, fake_client, make_processor, session, ledger
    ):
        def get(url, timeout):
            if url.endswith("b.png"):
                raise requests.exceptions.ConnectionError("reset")
            return _response(b"ok")

        session.get.side_effect = get
        processor, _ = make_processor(fake_client)
        message = make_message(
            "1.0", files=(make_hosted_file("a.png"), make_hosted_file("b.png"))
        )

        with pytest.raises(ChannelReplayError) as exc_info:
            processor.replay_channel(_channel(message), DESTINATION)

        assert isinstance(exc_info.value.__cause__, FetchError)
        fake_client.post_message.assert_not_called()
        assert ledger.count("C001") == 0


class TestSkipsAndModes:
    def test_skip_subtypes_are_not_posted(
        self, make_message, fake_client, make_processor, ledger
    ):
        processor, sleep = make_processor(fake_client, skip_subtypes=["channel_join"])
        channel = _channel(make_message("1.0", subtype="channel_join"))

        stats = processor.replay_channel(channel, DESTINATION)

        fake_client.post_message.assert_not_called()
        sleep.assert_not_called()
        assert stats.skipped == 1
        assert ledger.lookup("C001", _ts("1.0")) is None

    def test_dry_run_only_counts(
        self, make_message, make_hosted_file, fake_client, make_processor, ledger, session
    ):
        processor, sleep = make_processor(fake_client, dry_run=True)
        channel = _channel(
            make_message("1.0", reply_count=1, thread_ts="1.0"),
            make_message("2.0", thread_ts="1.0", files=(make_hosted_file("a.png"),)),
        )

        stats = processor.replay_channel(channel, DESTINATION)

        assert fake_client.method_calls == []
        session.get.assert_not_called()
        sleep.assert_not_called()
        assert stats.pending == 2
        assert stats.pending_files == 1
        assert ledger.count("C001") == 0

    def test_verify_threads_checks_existing_thread(
        self, make_message, fake_client, make_processor, ledger
    ):
        ledger.record(
            "C001", _ts("1.0"), MessageId("m1"), DiscordChannelId("900"), ThreadId("t1")
        )
        processor, sleep = make_processor(fake_client, verify_threads=True)

        processor.replay_channel(
            _channel(make_message("1.0", reply_count=1, thread_ts="1.0")), DESTINATION
        )

        fake_client.get_channel.assert_called_once_with(ThreadId("t1"))
        sleep.assert_not_called()

    def test_failed_thread_verification_is_only_a_warning(
        self, make_message, fake_client, make_processor, ledger
    ):
        ledger.record(
            "C001", _ts("1.0"), MessageId("m1"), DiscordChannelId("900"), ThreadId("t1")
        )
        fake_client.get_channel.side_effect = APIError("gone", status_code=404)
        processor, _ = make_processor(fake_client, verify_threads=True)

        stats = processor.replay_channel(
            _channel(make_message("1.0", reply_count=1, thread_ts="1.0")), DESTINATION
        )

        assert stats.already_migrated == 1

    def test_stats_are_kept_in_state(self, make_message, fake_client, make_processor):
        state = MigrationState()
        processor, _ = make_processor(fake_client, state=state)

        processor.replay_channel(_channel(make_message("1.0")), DESTINATION)

        assert state.channel_stats["general"].posted == 1
        assert state.current_channel == "general"
