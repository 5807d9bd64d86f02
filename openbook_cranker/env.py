from __future__ import annotations

"""Utilities for loading environment variables from files."""

from pathlib import Path
import logging
import os
import re

__all__ = ["load_env_file"]

logger = logging.getLogger(__name__)

_PLACEHOLDER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\$\{[^}]+\}$"),
    re.compile(r"REDACTED", re.IGNORECASE),
    re.compile(r"YOUR_", re.IGNORECASE),
)


def _is_placeholder(value: str) -> bool:
    text = value.strip()
    if not text:
        return False
    return any(pattern.search(text) for pattern in _PLACEHOLDER_PATTERNS)


def load_env_file(path: Path | str) -> dict[str, str]:
    """Load ``KEY=VALUE`` pairs from *path* into ``os.environ``.

    Blank lines and ``#`` comments are ignored, an optional ``export`` prefix
    is accepted and existing environment variables are preserved.  Values that
    look like template placeholders are skipped with a warning.  Returns the
    variables that were applied.  A missing file is not an error.
    """

    path = Path(path).expanduser()
    if not path.exists():
        logger.debug("Environment file %s not found; skipping", path)
        return {}

    applied: dict[str, str] = {}
    skipped: list[str] = []
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :]
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'\"")
        if not key or key in os.environ:
            continue
        if _is_placeholder(value):
            skipped.append(key)
            continue
        os.environ[key] = value
        applied[key] = value
    if skipped:
        logger.warning(
            "Environment file %s contains placeholder values for: %s",
            path,
            ", ".join(sorted(skipped)),
        )
    return applied
