"""Event heap inspection: pending count and implicated accounts."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Sequence

from solders.pubkey import Pubkey

from .errors import AccountNotFound, LedgerError
from .layouts import decode_event_heap_header
from .models import Event, EventQueueSnapshot, Inspection

logger = logging.getLogger(__name__)

EventDecoder = Callable[[EventQueueSnapshot], Sequence[Event]]


def implicated_accounts(events: Iterable[Event]) -> tuple[Pubkey, ...]:
    """Return each referenced account once, positioned at its last reference.

    Scanning in queue order, a repeated account is moved to the end, so the
    result is ordered by last occurrence.  Accounts are compared by their
    32 raw bytes.
    """

    ordered: dict[bytes, Pubkey] = {}
    for event in events:
        account = event.account
        key = bytes(account)
        ordered.pop(key, None)
        ordered[key] = account
    return tuple(ordered.values())


def pending_count(snapshot: EventQueueSnapshot) -> int:
    if snapshot.data is None:
        raise AccountNotFound(f"event heap {snapshot.address} not found")
    return decode_event_heap_header(snapshot.data).count


def inspect(snapshot: EventQueueSnapshot, decode: EventDecoder) -> Inspection:
    """Return the pending count and implicated accounts of *snapshot*.

    A missing or corrupt heap yields :meth:`Inspection.empty` so a single bad
    market never aborts the iteration.
    """

    try:
        pending = pending_count(snapshot)
        if pending == 0:
            return Inspection.empty()
        events = decode(snapshot)
    except LedgerError as exc:
        logger.warning("event heap %s could not be decoded: %s", snapshot.address, exc)
        return Inspection.empty()
    return Inspection(pending=pending, accounts=implicated_accounts(events))
