from __future__ import annotations

import asyncio
import itertools
import logging
import os
import weakref
from typing import Any, Sequence

import aiohttp

from .errors import MinContextSlotNotReached, RPCError

logger = logging.getLogger(__name__)

# JSON-RPC error code and message returned when ``minContextSlot`` is ahead
# of the node's current slot.
MIN_CONTEXT_SLOT_CODE = -32016
MIN_CONTEXT_SLOT_MARKER = "minimum context slot"

DEFAULT_TIMEOUT = float(os.getenv("RPC_TIMEOUT", "10") or 10)

# Maintain a session per event loop to avoid cross-loop usage errors.
_SESSIONS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, aiohttp.ClientSession]" = (
    weakref.WeakKeyDictionary()
)
_request_ids = itertools.count(1)


async def get_session() -> aiohttp.ClientSession:
    """Return an aiohttp session bound to the current event loop."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.get(loop)
    if sess is None or sess.closed:
        timeout = aiohttp.ClientTimeout(total=DEFAULT_TIMEOUT)
        sess = aiohttp.ClientSession(timeout=timeout)
        _SESSIONS[loop] = sess
    return sess


async def close_session() -> None:
    """Close the session bound to the current event loop, if any."""
    loop = asyncio.get_running_loop()
    sess = _SESSIONS.pop(loop, None)
    if sess is not None and not sess.closed:
        await sess.close()


def is_min_context_slot_error(code: int | None, message: str) -> bool:
    return code == MIN_CONTEXT_SLOT_CODE or MIN_CONTEXT_SLOT_MARKER in message.lower()


def raise_for_rpc_error(method: str, payload: Any) -> Any:
    """Return ``payload["result"]`` or raise the matching :class:`RPCError`."""

    if not isinstance(payload, dict):
        raise RPCError(f"{method} returned non-JSON-RPC payload", method=method)
    error = payload.get("error")
    if error:
        if isinstance(error, dict):
            code = error.get("code")
            message = str(error.get("message") or error)
        else:
            code = None
            message = str(error)
        if is_min_context_slot_error(code, message):
            raise MinContextSlotNotReached(message, code=code, method=method)
        raise RPCError(f"{method} failed: {message}", code=code, method=method)
    if "result" not in payload:
        raise RPCError(f"{method} response missing result", method=method)
    return payload["result"]


async def rpc_request(
    rpc_url: str,
    method: str,
    params: Sequence[Any],
    *,
    session: aiohttp.ClientSession | None = None,
) -> Any:
    """POST a JSON-RPC request to *rpc_url* and return its ``result``."""

    body = {
        "jsonrpc": "2.0",
        "id": next(_request_ids),
        "method": method,
        "params": list(params),
    }
    session = session or await get_session()
    try:
        async with session.post(rpc_url, json=body) as resp:
            resp.raise_for_status()
            payload = await resp.json(content_type=None)
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        raise RPCError(f"{method} request failed: {exc}", method=method) from exc
    return raise_for_rpc_error(method, payload)
