from __future__ import annotations

import contextlib
import json
import logging
import sys
import threading
import time
from datetime import datetime, timezone
from typing import Any, Iterable

DEFAULT_FORMAT = "%(asctime)sZ [%(levelname)s] %(name)s:%(lineno)d | %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS: tuple[str, ...] = (
    "asyncio",
    "aiohttp",
    "httpx",
    "httpcore",
    "solana",
)

_warn_once_lock = threading.Lock()
_warn_once_last_emit: dict[str, float] = {}


class _UTCFormatter(logging.Formatter):
    """Formatter that renders timestamps in UTC."""

    converter = time.gmtime


_LOG_RECORD_RESERVED = set(logging.LogRecord(None, 0, "", 0, "", (), None).__dict__.keys())


class JsonFormatter(logging.Formatter):
    """Structured logging formatter producing JSON payloads."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - short summary sufficient
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .replace(tzinfo=None)
            .isoformat(timespec="milliseconds")
            + "Z",
            "level": record.levelname,
            "logger": record.name,
            "line": record.lineno,
            "msg": record.getMessage(),
        }

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info

        # fields passed through ``extra=`` end up as record attributes
        for key, value in record.__dict__.items():
            if key in payload or key.startswith("_") or key in _LOG_RECORD_RESERVED:
                continue
            payload[key] = value

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def setup_stdout_logging(
    *,
    level: int = logging.INFO,
    fmt: str | None = DEFAULT_FORMAT,
    datefmt: str | None = DEFAULT_DATEFMT,
    json_output: bool = False,
    quiet: Iterable[str] = _NOISY_LOGGERS,
) -> logging.StreamHandler:
    """Ensure a single ``StreamHandler`` to ``sys.stdout`` exists on the root logger."""

    root = logging.getLogger()
    root.setLevel(level)

    sentinel_key = "_openbook_cranker_stdout_handler"
    existing = getattr(root, sentinel_key, None)

    stream_handler: logging.StreamHandler | None = None
    if isinstance(existing, logging.StreamHandler) and existing in root.handlers:
        stream_handler = existing

    for handler in list(root.handlers):
        if handler is stream_handler or not isinstance(handler, logging.StreamHandler):
            continue
        # ``logging.basicConfig`` handlers would duplicate every line
        if getattr(handler, "stream", None) in (sys.stdout, sys.stderr):
            root.removeHandler(handler)
            with contextlib.suppress(Exception):  # pragma: no cover - best effort
                handler.close()

    if stream_handler is None:
        stream_handler = logging.StreamHandler(sys.stdout)
        root.addHandler(stream_handler)

    stream_handler.setLevel(level)
    if json_output:
        stream_handler.setFormatter(JsonFormatter())
    elif fmt:
        stream_handler.setFormatter(_UTCFormatter(fmt, datefmt=datefmt))

    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    setattr(root, sentinel_key, stream_handler)
    return stream_handler


def warn_once_per(
    minutes: float,
    key: str,
    message: str,
    *args: Any,
    logger: logging.Logger | None = None,
    **kwargs: Any,
) -> bool:
    """Emit ``logger.warning`` for *message* at most once per *minutes* interval."""

    interval = max(0.0, minutes) * 60.0
    now = time.monotonic()

    with _warn_once_lock:
        last = _warn_once_last_emit.get(key)
        if last is not None and interval > 0 and now - last < interval:
            return False
        _warn_once_last_emit[key] = now

    target = logger or logging.getLogger()
    target.warning(message, *args, **kwargs)
    return True


def mask_url(url: str) -> str:
    """Hide query strings (API keys) when logging RPC endpoints."""

    base, sep, _ = url.partition("?")
    return f"{base}?***" if sep else base
