"""
Logging for the migrator.

Console output, a run-wide ``migration.log`` and one log file per replayed
channel all hang off the ``slack_discord_migrator`` logger. Records carry
their channel in ``extra`` so file handlers can route them.
"""

import json
import logging
import os
from typing import Any, Dict, Optional

LOGGER_NAME = "slack_discord_migrator"

_PLAIN_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
_VERBOSE_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
)
_MAX_RESPONSE_CHARS = 2000
_SENSITIVE_KEYS = ("token", "auth", "password", "secret", "key")

# Set by setup_logger(debug_api=True)
_DEBUG_API_ENABLED = False


class EnhancedFormatter(logging.Formatter):
    """
    Formatter with an optional verbose layout and API payload tail.

    ``verbose`` adds logger name, module and line. ``include_api_details``
    appends the ``api_data`` and ``response`` attributes that
    log_api_request and log_api_response attach to their records.
    """

    def __init__(
        self,
        fmt=None,
        datefmt=None,
        style="%",
        verbose=False,
        include_api_details=False,
    ):
        if verbose:
            fmt = _VERBOSE_FORMAT
        super().__init__(fmt or _PLAIN_FORMAT, datefmt, style)
        self.include_api_details = include_api_details

    def format(self, record):
        text = super().format(record)
        if not self.include_api_details:
            return text

        api_data = getattr(record, "api_data", None)
        response = getattr(record, "response", None)
        if api_data:
            text = f"{text}\nAPI Data: {api_data}"
        if response:
            text = f"{text}\nResponse: {response}"
        return text


class _ChannelRouter(logging.Filter):
    """Pass records for one channel, or with ``channel=None`` only untagged ones."""

    def __init__(self, channel: Optional[str] = None):
        super().__init__()
        self.channel = channel

    def filter(self, record):
        return (getattr(record, "channel", None) or None) == self.channel


def _attach_file(
    path: str, mode: str, formatter: logging.Formatter, channel: Optional[str]
) -> logging.FileHandler:
    handler = logging.FileHandler(path, mode=mode)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    handler.addFilter(_ChannelRouter(channel))
    logging.getLogger(LOGGER_NAME).addHandler(handler)
    return handler


def setup_main_log_file(
    output_dir: str, debug_api: bool = False
) -> logging.FileHandler:
    """
    Open ``<output_dir>/migration.log`` for records not tied to a channel.

    The file is truncated at the start of every run.
    """
    os.makedirs(output_dir, exist_ok=True)
    log_file = os.path.join(output_dir, "migration.log")
    handler = _attach_file(
        log_file,
        "w",
        EnhancedFormatter(_PLAIN_FORMAT, include_api_details=debug_api),
        channel=None,
    )
    log_with_context(logging.INFO, f"Writing run log to {log_file}")
    return handler


def setup_logger(
    verbose: bool = False, debug_api: bool = False, output_dir: Optional[str] = None
) -> logging.Logger:
    """
    Configure the package logger for a CLI run.

    Args:
        verbose: Show DEBUG records on the console instead of INFO and above
        debug_api: Record Discord request and response payloads
        output_dir: When given, also write ``migration.log`` there

    Returns:
        The package logger
    """
    global _DEBUG_API_ENABLED
    _DEBUG_API_ENABLED = debug_api

    logger = logging.getLogger(LOGGER_NAME)
    # A second setup in the same process must not double every line
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()
    logger.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if verbose else logging.INFO)
    console.setFormatter(
        EnhancedFormatter(verbose=verbose, include_api_details=debug_api)
    )
    logger.addHandler(console)

    if output_dir:
        setup_main_log_file(output_dir, debug_api)
    if debug_api:
        logger.info("Discord API payloads will be logged")
    return logger


def setup_channel_logger(
    output_dir: str, channel: str, verbose: bool = False, debug_api: bool = False
) -> logging.FileHandler:
    """
    Open ``<output_dir>/channel_logs/<channel>_migration.log``.

    The file is appended to, so a resumed run keeps the earlier history.
    Only records logged with ``channel=<channel>`` reach it.
    """
    logs_dir = os.path.join(output_dir, "channel_logs")
    os.makedirs(logs_dir, exist_ok=True)
    log_file = os.path.join(logs_dir, f"{channel}_migration.log")
    handler = _attach_file(
        log_file,
        "a",
        EnhancedFormatter(verbose=verbose, include_api_details=debug_api),
        channel=channel,
    )
    log_with_context(logging.INFO, f"Writing {channel} log to {log_file}", channel=channel)
    return handler


def log_with_context(level: int, message: str, **kwargs: Any) -> None:
    """
    Log through the package logger with keyword context as record extras.

    ``None`` values are dropped. ``exc_info`` goes to the logger itself.
    """
    exc_info = kwargs.pop("exc_info", None)
    extra = {key: value for key, value in kwargs.items() if value is not None}
    logging.getLogger(LOGGER_NAME).log(level, message, extra=extra, exc_info=exc_info)


def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
    redacted = {}
    for key, value in data.items():
        lowered = key.lower()
        if any(word in lowered for word in _SENSITIVE_KEYS):
            value = "[REDACTED]"
        redacted[key] = value
    return redacted


def log_api_request(
    method: str, url: str, data: Optional[Dict] = None, **kwargs: Any
) -> None:
    """Record an outgoing Discord call; no-op unless API debugging is on."""
    if not is_debug_api_enabled():
        return
    if isinstance(data, dict) and data:
        kwargs["api_data"] = json.dumps(_redact(data), indent=2, default=str)
    log_with_context(logging.DEBUG, f"API Request: {method} {url}", **kwargs)


def log_api_response(
    status_code: int, url: str, response_data: Any = None, **kwargs: Any
) -> None:
    """Record a Discord reply, truncating long bodies; no-op unless API debugging is on."""
    if not is_debug_api_enabled():
        return
    if response_data:
        if isinstance(response_data, (dict, list)):
            body = json.dumps(response_data, indent=2, default=str)
        else:
            body = str(response_data)
        if len(body) > _MAX_RESPONSE_CHARS:
            body = body[:_MAX_RESPONSE_CHARS] + "... [truncated]"
        kwargs["response"] = body
    log_with_context(logging.DEBUG, f"API Response: {status_code} from {url}", **kwargs)


def is_debug_api_enabled() -> bool:
    return _DEBUG_API_ENABLED


def get_logger() -> logging.Logger:
    """Return the package logger, giving it a console handler if it has none."""
    package_logger = logging.getLogger(LOGGER_NAME)
    if package_logger.handlers:
        return package_logger
    package_logger.setLevel(logging.INFO)
    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(EnhancedFormatter())
    package_logger.addHandler(console)
    return package_logger


logger = get_logger()
