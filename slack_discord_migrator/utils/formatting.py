"""
Message formatting utilities for converting Slack messages to Discord content.

Everything here is a pure function: the replay pipeline hands in the message
and the user-name table and gets back the text to post.
"""

import re
from datetime import timedelta, timezone, tzinfo
from email.utils import format_datetime
from typing import Dict

import emoji

from slack_discord_migrator.types import Message, SlackTimestamp

_USER_MENTION = re.compile(r"<@([A-Z0-9]+)(?:\|[^>]*)?>")
_CHANNEL_MENTION = re.compile(r"<#C[A-Z0-9]+\|([^>]+)>")
_BARE_CHANNEL_MENTION = re.compile(r"<#(C[A-Z0-9]+)>")
_SPECIAL_MENTION = re.compile(r"<!([^|>]+)(?:\|([^>]+))?>")
_LABELLED_LINK = re.compile(r"<([a-zA-Z][a-zA-Z0-9+.-]*:[^|>]+)\|([^>]+)>")
_BARE_LINK = re.compile(r"<([a-zA-Z][a-zA-Z0-9+.-]*:[^|>]+)>")


def utc_offset(hours: float) -> tzinfo:
    """Return a fixed-offset timezone ``hours`` east of UTC."""
    return timezone(timedelta(hours=hours))


def format_timestamp(ts: SlackTimestamp, tz: tzinfo) -> str:
    """Format a Slack timestamp as an RFC 2822 date in ``tz``."""
    return format_datetime(ts.to_datetime(tz))


def convert_formatting(text: str) -> str:
    """
    Convert Slack markup to Discord markdown.

    User mentions keep the raw user id so that :func:`render_content` can
    swap in the readable name afterwards.
    """
    if not text:
        return ""

    text = _USER_MENTION.sub(r"@\1", text)
    text = _CHANNEL_MENTION.sub(r"#\1", text)
    text = _BARE_CHANNEL_MENTION.sub(r"#\1", text)

    def replace_special(match: re.Match) -> str:
        label = match.group(2)
        if label:
            return label if label.startswith("@") else f"@{label}"
        return f"@{match.group(1)}"

    text = _SPECIAL_MENTION.sub(replace_special, text)

    def replace_link(match: re.Match) -> str:
        url, label = match.group(1), match.group(2)
        return url if url == label else f"[{label}]({url})"

    text = _LABELLED_LINK.sub(replace_link, text)
    text = _BARE_LINK.sub(r"\1", text)

    # Slack escapes only these three characters
    text = text.replace("&lt;", "<").replace("&gt;", ">").replace("&amp;", "&")
    return emoji.emojize(text, language="alias")


def render_content(template: str, id_to_name: Dict[str, str]) -> str:
    """
    Replace every user id in ``template`` with the matching name.

    Ids are matched as whole tokens in a single pass, so ``U1`` never
    rewrites part of ``U12`` and a substituted name is never rescanned.
    """
    ids = [user_id for user_id in id_to_name if user_id]
    if not ids:
        return template

    alternatives = "|".join(re.escape(i) for i in sorted(ids, key=len, reverse=True))
    pattern = re.compile(rf"(?<![A-Za-z0-9_])(?:{alternatives})(?![A-Za-z0-9_])")
    return pattern.sub(lambda match: id_to_name[match.group(0)], template)


def format_message(message: Message, id_to_name: Dict[str, str], tz: tzinfo) -> str:
    """Build the Discord content for ``message``: author, date, then the text."""
    body = convert_formatting(message.text)
    content = f"**{message.author}** {format_timestamp(message.ts, tz)}\n{body}\n"
    return render_content(content, id_to_name)
