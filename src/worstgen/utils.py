"""
Worst Generation - Utility functions.

Provides formatting and validation helpers shared by the session and UI.
"""

import logging
import time
from datetime import datetime
from typing import Any
from urllib.parse import urlparse

from .constants import MAX_ALIAS_LENGTH

logger = logging.getLogger(__name__)


def now_ms() -> int:
    """Current time as epoch milliseconds, the relay's timestamp unit."""
    return int(time.time() * 1000)


def format_timestamp(timestamp_ms: Any, format_str: str = "%H:%M:%S") -> str:
    """
    Format an epoch-millisecond timestamp as local time.

    Args:
        timestamp_ms: Milliseconds since the epoch (int, float or numeric string)
        format_str: strftime format string

    Returns:
        Formatted time, or the original value as a string if it is not a timestamp
    """
    try:
        return datetime.fromtimestamp(float(timestamp_ms) / 1000).strftime(format_str)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        logger.debug(f"Failed to parse timestamp '{timestamp_ms}': {e}")
        return str(timestamp_ms)


def validate_alias(alias: str) -> bool:
    """
    Validate an alias before sending it to the relay.

    Aliases are case-sensitive; they must be non-blank, at most
    MAX_ALIAS_LENGTH characters and contain no control characters.
    """
    if not alias or not alias.strip():
        return False
    if len(alias) > MAX_ALIAS_LENGTH:
        return False
    return all(ch.isprintable() for ch in alias)


def validate_server_url(url: str) -> bool:
    """Accept http(s) and ws(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https", "ws", "wss") and bool(parsed.netloc)


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate a string to max_length, appending suffix when cut."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix
