"""Typed client for the Discord REST API.

Wraps a ``requests.Session`` with explicit methods for the handful of calls
the migration needs, so the channel processor and provisioner can be tested
against a mock. Transport failures raise :class:`APIError`; responses that do
not look like the documented objects raise :class:`SchemaError`. Nothing is
retried here: a failed run is resumed by running the tool again.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import requests

import slack_discord_migrator
from slack_discord_migrator.constants import (
    BOT_TOKEN_ENV,
    DEFAULT_REQUEST_TIMEOUT,
    DISCORD_API_BASE,
    GUILD_ID_ENV,
    HTTP_BAD_REQUEST,
)
from slack_discord_migrator.exceptions import APIError, CredentialError, SchemaError
from slack_discord_migrator.types import (
    DiscordChannel,
    DiscordChannelId,
    FilePayload,
    MessageId,
    PostedMessage,
    ThreadId,
)
from slack_discord_migrator.utils.logging import log_api_request, log_api_response

# Discord limits
MAX_THREAD_NAME = 100
MAX_ATTACHMENT_DESCRIPTION = 1024


def _read_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise CredentialError(f"environment variable {name} is not set")
    try:
        # Undecodable bytes survive in os.environ as lone surrogates.
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise CredentialError(f"environment variable {name} is not valid text") from e
    return value


@dataclass(frozen=True)
class BotToken:
    """Discord bot token; never shown in reprs or logs."""

    value: str = field(repr=False)

    @classmethod
    def from_env(cls, name: str = BOT_TOKEN_ENV) -> BotToken:
        return cls(_read_env(name))


@dataclass(frozen=True)
class GuildId:
    """Id of the Discord guild (server) receiving the migration."""

    value: str

    @classmethod
    def from_env(cls, name: str = GUILD_ID_ENV) -> GuildId:
        return cls(_read_env(name))

    def __str__(self) -> str:
        return self.value


def _parse_channel(data: Any) -> DiscordChannel:
    try:
        parent = data.get("parent_id")
        return DiscordChannel(
            id=DiscordChannelId(str(data["id"])),
            name=str(data.get("name") or ""),
            channel_type=int(data["type"]),
            parent_id=DiscordChannelId(str(parent)) if parent else None,
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise SchemaError(f"unexpected channel object: {data!r}") from e


def _parse_message(data: Any) -> PostedMessage:
    try:
        return PostedMessage(
            message_id=MessageId(str(data["id"])),
            channel_id=DiscordChannelId(str(data["channel_id"])),
        )
    except (KeyError, TypeError) as e:
        raise SchemaError(f"unexpected message object: {data!r}") from e


class DiscordClient:
    """Thin typed wrapper around the Discord REST API."""

    def __init__(
        self,
        token: BotToken,
        session: requests.Session | None = None,
        base_url: str = DISCORD_API_BASE,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bot {token.value}",
                "User-Agent": (
                    "DiscordBot (https://github.com/slack-discord-migrator, "
                    f"{slack_discord_migrator.__version__})"
                ),
            }
        )

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: list[tuple[str, tuple[str, bytes, str]]] | None = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        log_api_request(method, url, json_body or data)
        try:
            response = self.session.request(
                method,
                url,
                json=json_body,
                data=data,
                files=files,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise APIError(f"{method} {path} failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None
        log_api_response(response.status_code, url, payload)

        if response.status_code >= HTTP_BAD_REQUEST:
            detail = (
                payload.get("message")
                if isinstance(payload, dict)
                else (response.text or "")[:200]
            )
            raise APIError(
                f"{method} {path} returned HTTP {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        if payload is None:
            raise SchemaError(f"{method} {path} returned a non-JSON body")
        return payload

    # -- Guild channels -------------------------------------------------------

    def list_guild_channels(self, guild_id: GuildId) -> list[DiscordChannel]:
        """List every channel and category of the guild."""
        data = self._request("GET", f"/guilds/{guild_id}/channels")
        if not isinstance(data, list):
            raise SchemaError(f"expected a list of channels, got {type(data).__name__}")
        return [_parse_channel(item) for item in data]

    def create_channel(
        self,
        guild_id: GuildId,
        name: str,
        channel_type: int,
        parent_id: DiscordChannelId | None = None,
    ) -> DiscordChannel:
        """Create a text channel or category in the guild."""
        body: dict[str, Any] = {"name": name, "type": channel_type}
        if parent_id is not None:
            body["parent_id"] = str(parent_id)
        return _parse_channel(
            self._request("POST", f"/guilds/{guild_id}/channels", json_body=body)
        )

    def get_channel(self, channel_id: DiscordChannelId | ThreadId) -> DiscordChannel:
        """Fetch a channel or thread by id."""
        return _parse_channel(self._request("GET", f"/channels/{channel_id}"))

    # -- Messages -------------------------------------------------------------

    def _create_message(
        self, target: str, content: str, files: Sequence[FilePayload]
    ) -> PostedMessage:
        payload: dict[str, Any] = {
            "content": content,
            # Replayed history must not ping anyone.
            "allowed_mentions": {"parse": []},
        }
        path = f"/channels/{target}/messages"
        if not files:
            return _parse_message(self._request("POST", path, json_body=payload))

        payload["attachments"] = [
            {
                "id": index,
                "filename": file.name,
                "description": file.title[:MAX_ATTACHMENT_DESCRIPTION],
            }
            for index, file in enumerate(files)
        ]
        multipart = [
            (f"files[{index}]", (file.name, file.body, file.mime))
            for index, file in enumerate(files)
        ]
        return _parse_message(
            self._request(
                "POST",
                path,
                data={"payload_json": json.dumps(payload)},
                files=multipart,
            )
        )

    def post_message(
        self,
        channel_id: DiscordChannelId,
        content: str,
        files: Sequence[FilePayload] = (),
    ) -> PostedMessage:
        """Post a message, with optional attachments, to a channel."""
        return self._create_message(str(channel_id), content, files)

    def post_thread_reply(
        self,
        thread_id: ThreadId,
        content: str,
        files: Sequence[FilePayload] = (),
    ) -> MessageId:
        """Post a message, with optional attachments, inside a thread."""
        return self._create_message(str(thread_id), content, files).message_id

    def start_thread(
        self, channel_id: DiscordChannelId, message_id: MessageId, name: str
    ) -> ThreadId:
        """Open a thread on an existing message and return its id."""
        data = self._request(
            "POST",
            f"/channels/{channel_id}/messages/{message_id}/threads",
            json_body={"name": name[:MAX_THREAD_NAME]},
        )
        try:
            return ThreadId(str(data["id"]))
        except (KeyError, TypeError) as e:
            raise SchemaError(f"unexpected thread object: {data!r}") from e
