# Utility functions for runtime helpers.

from __future__ import annotations

from typing import Any, Iterable, Sequence, TypeVar

import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRUE_VALUES = {"1", "true", "yes", "y", "on", "enable", "enabled", "t"}
_FALSE_VALUES = {"0", "false", "no", "n", "off", "disable", "disabled", "f"}


def parse_bool(value: Any, default: bool = False) -> bool:
    """Interpret *value* as a boolean using the usual env spellings."""

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    norm = str(value).strip().lower()
    if norm in _TRUE_VALUES:
        return True
    if norm in _FALSE_VALUES:
        return False
    logger.debug("Ignoring unknown boolean value %r; using default=%s", value, default)
    return default


def split_csv(value: str | Iterable[str] | None) -> list[str]:
    """Split a comma-delimited string into stripped, non-empty entries.

    Order is preserved and the first occurrence of a repeated entry wins.
    Iterables are accepted so config files may use native lists.
    """

    if value is None:
        return []
    if isinstance(value, str):
        parts: Iterable[str] = value.split(",")
    else:
        parts = (str(item) for item in value)
    seen: set[str] = set()
    result: list[str] = []
    for part in parts:
        item = part.strip()
        if not item or item in seen:
            continue
        seen.add(item)
        result.append(item)
    return result


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    """Split *items* into contiguous groups of at most *size* elements."""

    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
