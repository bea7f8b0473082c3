"""
Utility Functions
-----------------

This file contains stateless, pure helper functions used
throughout the package, primarily for parsing the gateway's
schema-less replies and building request payloads.
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def as_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """
    Converts a reply field to float, falling back to `default` when the
    field is missing or not numeric.
    e.g., as_float("12.5") -> 12.5
    e.g., as_float(None) -> 0.0
    e.g., as_float("n/a", None) -> None
    """
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def as_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    """Same as `as_float` for integer fields (timestamps, tickets)."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def as_str(value: Any, default: str = "") -> str:
    """Converts ids to str. Deriv sends some ids as numbers, some as strings."""
    if value is None:
        return default
    return str(value)


def first_present(data: Dict[str, Any], *keys: str) -> Any:
    """Returns the first value among `keys` that is present and not None."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def drop_unset(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Removes keys whose value is None so an optional field is omitted from
    the outbound frame instead of being sent as null.
    """
    return {k: v for k, v in payload.items() if v is not None}


def days_back_range(days: int, now: Optional[float] = None) -> Tuple[int, int]:
    """
    Returns (from, to) epoch seconds covering the last `days` days.
    e.g., days_back_range(1, now=86400) -> (0, 86400)
    """
    if days < 0:
        raise ValueError("days must be non-negative")
    to_ts = int(now if now is not None else time.time())
    return to_ts - days * SECONDS_PER_DAY, to_ts


def error_message(exc: BaseException, default: str) -> str:
    """Extracts a caller-presentable message from an exception."""
    message = str(exc).strip()
    return message or default
