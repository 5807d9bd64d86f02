"""OpenBook v2 account layouts used by the cranker.

Only the fields the cranker reads are decoded.  All integers are little
endian and every account starts with an 8 byte Anchor discriminator.

Market (after the discriminator)::

    bump, base_decimals, quote_decimals, padding   8
    market_authority                               32
    time_expiry                                    8
    collect_fee_admin                              32
    open_orders_admin                              32
    consume_events_admin                           32   all zero when unset
    close_market_admin                             32
    name                                           16
    bids                                           32
    asks                                           32
    event_heap                                     32

EventHeap (after the discriminator)::

    header: free_head u16, used_head u16, count u16, padding u16, seq_num u64
    nodes:  600 x {next u16, prev u16, padding 4, event 144}

Both event variants keep their type tag in byte 0 and the implicated
public key (fill maker / out owner) at byte 24.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from .errors import EventDecodeError, LayoutError
from .models import Event, FillEvent, MarketDescriptor, OutEvent

DISCRIMINATOR_SIZE = 8

MARKET_CONSUME_EVENTS_ADMIN_OFFSET = DISCRIMINATOR_SIZE + 112
MARKET_EVENT_HEAP_OFFSET = DISCRIMINATOR_SIZE + 256
MARKET_MIN_SIZE = MARKET_EVENT_HEAP_OFFSET + 32

EVENT_HEAP_HEADER = struct.Struct("<HHHHQ")
EVENT_HEAP_NODE_HEADER = struct.Struct("<HH4x")
MAX_NUM_EVENTS = 600
EVENT_SIZE = 144
NODE_SIZE = EVENT_HEAP_NODE_HEADER.size + EVENT_SIZE
EVENT_HEAP_NODES_OFFSET = DISCRIMINATOR_SIZE + EVENT_HEAP_HEADER.size
EVENT_HEAP_MIN_SIZE = EVENT_HEAP_NODES_OFFSET + MAX_NUM_EVENTS * NODE_SIZE

FILL_EVENT_TYPE = 0
OUT_EVENT_TYPE = 1
EVENT_ACCOUNT_OFFSET = 24

_ZERO_KEY = bytes(32)


def anchor_discriminator(namespace: str, name: str) -> bytes:
    """Return ``sha256("<namespace>:<name>")[:8]``."""

    return hashlib.sha256(f"{namespace}:{name}".encode()).digest()[:8]


MARKET_DISCRIMINATOR = anchor_discriminator("account", "Market")
EVENT_HEAP_DISCRIMINATOR = anchor_discriminator("account", "EventHeap")
CONSUME_EVENTS_DISCRIMINATOR = anchor_discriminator("global", "consume_events")


def _pubkey_at(data: bytes, offset: int) -> Pubkey:
    return Pubkey.from_bytes(data[offset : offset + 32])


def decode_market(data: bytes) -> MarketDescriptor:
    if len(data) < MARKET_MIN_SIZE:
        raise LayoutError(f"market account too small: {len(data)} bytes")
    if data[:DISCRIMINATOR_SIZE] != MARKET_DISCRIMINATOR:
        raise LayoutError("account is not an OpenBook v2 market")
    admin_raw = data[MARKET_CONSUME_EVENTS_ADMIN_OFFSET : MARKET_CONSUME_EVENTS_ADMIN_OFFSET + 32]
    admin = None if admin_raw == _ZERO_KEY else Pubkey.from_bytes(admin_raw)
    return MarketDescriptor(
        event_heap=_pubkey_at(data, MARKET_EVENT_HEAP_OFFSET),
        consume_events_admin=admin,
    )


@dataclass(frozen=True, slots=True)
class EventHeapHeader:
    free_head: int
    used_head: int
    count: int
    seq_num: int


def decode_event_heap_header(data: bytes) -> EventHeapHeader:
    if len(data) < EVENT_HEAP_MIN_SIZE:
        raise LayoutError(f"event heap account too small: {len(data)} bytes")
    if data[:DISCRIMINATOR_SIZE] != EVENT_HEAP_DISCRIMINATOR:
        raise LayoutError("account is not an OpenBook v2 event heap")
    free_head, used_head, count, _pad, seq_num = EVENT_HEAP_HEADER.unpack_from(
        data, DISCRIMINATOR_SIZE
    )
    if count > MAX_NUM_EVENTS:
        raise LayoutError(f"event heap count {count} exceeds capacity")
    return EventHeapHeader(free_head, used_head, count, seq_num)


def decode_event(raw: bytes) -> Event:
    if len(raw) != EVENT_SIZE:
        raise EventDecodeError(f"event must be {EVENT_SIZE} bytes, got {len(raw)}")
    account = _pubkey_at(raw, EVENT_ACCOUNT_OFFSET)
    if raw[0] == FILL_EVENT_TYPE:
        return FillEvent(maker=account)
    if raw[0] == OUT_EVENT_TYPE:
        return OutEvent(owner=account)
    raise EventDecodeError(f"unknown event type {raw[0]}")


def iter_event_payloads(data: bytes) -> list[bytes]:
    """Return raw event payloads in queue order.

    The used list is walked from ``used_head`` through ``next`` links for
    ``count`` nodes.  A link that points outside the node array or revisits
    a node means the account is corrupt.
    """

    header = decode_event_heap_header(data)
    payloads: list[bytes] = []
    seen: set[int] = set()
    index = header.used_head
    for _ in range(header.count):
        if index >= MAX_NUM_EVENTS or index in seen:
            raise EventDecodeError(f"broken event heap link at node {index}")
        seen.add(index)
        base = EVENT_HEAP_NODES_OFFSET + index * NODE_SIZE
        next_index, _prev = EVENT_HEAP_NODE_HEADER.unpack_from(data, base)
        start = base + EVENT_HEAP_NODE_HEADER.size
        payloads.append(bytes(data[start : start + EVENT_SIZE]))
        index = next_index
    return payloads


def decode_events(data: bytes) -> list[Event]:
    return [decode_event(raw) for raw in iter_event_payloads(data)]


def encode_consume_events_data(limit: int) -> bytes:
    return CONSUME_EVENTS_DISCRIMINATOR + struct.pack("<Q", limit)
