from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Sequence

import pytest
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from openbook_cranker import layouts
from openbook_cranker.config import CrankerConfig
from openbook_cranker.errors import LedgerError
from openbook_cranker.models import (
    BlockhashInfo,
    EventQueueSnapshot,
    MarketDescriptor,
    VenueInstance,
)

PROGRAM_ID = Pubkey.from_string("opnb2LAfJYbRMAHHvqjCwQxanZn7ReEHp1k81EohpZb")


def build_event(event_type: int, account: Pubkey) -> bytes:
    raw = bytearray(layouts.EVENT_SIZE)
    raw[0] = event_type
    raw[layouts.EVENT_ACCOUNT_OFFSET : layouts.EVENT_ACCOUNT_OFFSET + 32] = bytes(account)
    return bytes(raw)


def build_event_heap(
    events: Sequence[tuple[int, Pubkey]],
    *,
    slots: Optional[Sequence[int]] = None,
    count: Optional[int] = None,
) -> bytes:
    """Serialize an event heap whose used list holds *events* in order.

    ``slots`` chooses the node index of each event so tests can check that
    decoding follows the ``next`` links rather than the array order.
    """

    slots = list(slots) if slots is not None else list(range(len(events)))
    assert len(slots) == len(events)
    data = bytearray(layouts.EVENT_HEAP_MIN_SIZE + 64)
    data[: layouts.DISCRIMINATOR_SIZE] = layouts.EVENT_HEAP_DISCRIMINATOR
    used_head = slots[0] if slots else 0
    free_head = max(slots, default=-1) + 1
    layouts.EVENT_HEAP_HEADER.pack_into(
        data,
        layouts.DISCRIMINATOR_SIZE,
        free_head,
        used_head,
        len(events) if count is None else count,
        0,
        len(events),
    )
    for pos, (slot, (event_type, account)) in enumerate(zip(slots, events)):
        next_slot = slots[pos + 1] if pos + 1 < len(slots) else layouts.MAX_NUM_EVENTS
        prev_slot = slots[pos - 1] if pos > 0 else layouts.MAX_NUM_EVENTS
        base = layouts.EVENT_HEAP_NODES_OFFSET + slot * layouts.NODE_SIZE
        layouts.EVENT_HEAP_NODE_HEADER.pack_into(data, base, next_slot, prev_slot)
        start = base + layouts.EVENT_HEAP_NODE_HEADER.size
        data[start : start + layouts.EVENT_SIZE] = build_event(event_type, account)
    return bytes(data)


# byte offsets of the on-chain Market fields, discriminator included
MARKET_CONSUME_EVENTS_ADMIN_AT = 120
MARKET_CLOSE_MARKET_ADMIN_AT = 152
MARKET_EVENT_HEAP_AT = 264


def build_market(
    event_heap: Pubkey,
    admin: Optional[Pubkey] = None,
    *,
    close_admin: Optional[Pubkey] = None,
) -> bytes:
    data = bytearray(840)
    data[:8] = layouts.MARKET_DISCRIMINATOR
    for off, key in (
        (MARKET_CONSUME_EVENTS_ADMIN_AT, admin),
        (MARKET_CLOSE_MARKET_ADMIN_AT, close_admin),
        (MARKET_EVENT_HEAP_AT, event_heap),
    ):
        if key is not None:
            data[off : off + 32] = bytes(key)
    return bytes(data)


def make_venue() -> VenueInstance:
    return VenueInstance(
        address=Pubkey.new_unique(),
        descriptor=MarketDescriptor(event_heap=Pubkey.new_unique()),
    )


class FakeLedger:
    """In-memory stand-in for :class:`openbook_cranker.ledger.LedgerClient`."""

    def __init__(self, venues: Sequence[VenueInstance]) -> None:
        self.venues = list(venues)
        self.reads: list[tuple[int, dict[Pubkey, Optional[bytes]]]] = []
        self.read_errors: list[Exception] = []
        self.read_calls: list[Optional[int]] = []
        self.submitted: list[bytes] = []
        self.submit_kwargs: list[dict[str, Any]] = []
        self.submit_error: Optional[Exception] = None
        self.build_error_for: set[Pubkey] = set()
        self.built: list[tuple[Pubkey, int, tuple[Pubkey, ...]]] = []
        self.sign_calls = 0
        self.sign_errors_at: set[int] = set()
        self.blockhash_calls = 0
        self.on_read: Optional[Callable[[], None]] = None
        self.closed = False

    def queue_read(self, slot: int, heaps: dict[Pubkey, Optional[bytes]]) -> None:
        self.reads.append((slot, heaps))

    async def fetch_static_descriptors(self, addresses):
        by_address = {v.address: v for v in self.venues}
        return [by_address[a] for a in addresses]

    async def fetch_queue_snapshots_with_context(self, queue_addresses, *, min_context_slot=None):
        self.read_calls.append(min_context_slot)
        if self.on_read is not None:
            self.on_read()
        if self.read_errors:
            raise self.read_errors.pop(0)
        if not self.reads:
            raise LedgerError("no read queued")
        slot, heaps = self.reads.pop(0) if len(self.reads) > 1 else self.reads[0]
        return slot, [
            EventQueueSnapshot(address=a, slot=slot, data=heaps.get(a)) for a in queue_addresses
        ]

    def decode_queue_events(self, snapshot):
        if snapshot.data is None:
            raise LedgerError("missing")
        return layouts.decode_events(snapshot.data)

    def build_drain_instruction(self, venue, limit, accounts):
        if venue.address in self.build_error_for:
            raise LedgerError(f"market {venue.address} rejected")
        self.built.append((venue.address, limit, tuple(accounts)))
        # identical payloads for every market; only the market account differs
        return Instruction(PROGRAM_ID, b"crank", [])

    def sign_and_serialize(self, instructions, blockhash, signer):
        self.sign_calls += 1
        if self.sign_calls in self.sign_errors_at:
            raise ValueError("transaction too large")
        return b"|".join(bytes(ix.data) for ix in instructions)

    async def submit_raw(self, raw, *, skip_preflight=True, max_retries=2):
        await asyncio.sleep(0)
        self.submit_kwargs.append({"skip_preflight": skip_preflight, "max_retries": max_retries})
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(raw)
        return f"sig{len(self.submitted)}"

    async def close(self):
        self.closed = True

    async def fetch_validity_token(self):
        self.blockhash_calls += 1
        return BlockhashInfo(blockhash=Hash.new_unique(), last_valid_block_height=100 + self.blockhash_calls)


@pytest.fixture
def make_config() -> Callable[..., CrankerConfig]:
    def _make(**overrides: Any) -> CrankerConfig:
        return CrankerConfig.from_env({}, environ={}, overrides=overrides)

    return _make


@pytest.fixture
def signer() -> Keypair:
    return Keypair()


@pytest.fixture
def heap_factory() -> Callable[..., bytes]:
    return build_event_heap


@pytest.fixture
def market_factory() -> Callable[..., bytes]:
    return build_market


@pytest.fixture
def venue_factory() -> Callable[[], VenueInstance]:
    return make_venue


@pytest.fixture
def ledger_factory() -> Callable[[Sequence[VenueInstance]], FakeLedger]:
    return FakeLedger
