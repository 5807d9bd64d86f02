"""Domain data structures for the crank loop.

NOTE: Ledger byte layouts live in :mod:`openbook_cranker.layouts`; the types
here are what the loop passes between its stages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.pubkey import Pubkey


@dataclass(frozen=True, slots=True)
class MarketDescriptor:
    """Static fields of a market account needed to crank it."""

    event_heap: Pubkey
    consume_events_admin: Optional[Pubkey] = None


@dataclass(frozen=True, slots=True)
class VenueInstance:
    """A serviced market and its cached descriptor. Fetched once at startup."""

    address: Pubkey
    descriptor: MarketDescriptor

    @property
    def event_heap(self) -> Pubkey:
        return self.descriptor.event_heap


@dataclass(frozen=True, slots=True)
class EventQueueSnapshot:
    """Point-in-time read of one event heap.

    ``data`` is ``None`` when the account was missing at ``slot``.
    """

    address: Pubkey
    slot: int
    data: Optional[bytes]


@dataclass(frozen=True, slots=True)
class FillEvent:
    maker: Pubkey

    @property
    def account(self) -> Pubkey:
        return self.maker


@dataclass(frozen=True, slots=True)
class OutEvent:
    owner: Pubkey

    @property
    def account(self) -> Pubkey:
        return self.owner


Event = Union[FillEvent, OutEvent]


@dataclass(frozen=True, slots=True)
class Inspection:
    """Pending-event count and implicated accounts of one queue."""

    pending: int
    accounts: tuple[Pubkey, ...] = ()

    @classmethod
    def empty(cls) -> "Inspection":
        return cls(pending=0)


@dataclass(frozen=True, slots=True)
class PlannedInstruction:
    """A drain instruction paired with the venue it targets and its fee tag."""

    venue: Pubkey
    instruction: Instruction
    priority: bool = False
    pending: int = 0


@dataclass(frozen=True, slots=True)
class BlockhashInfo:
    """Recent blockhash and the last block height at which it is valid."""

    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True, slots=True)
class TransactionPlan:
    """Unsigned instruction list for one batch group."""

    instructions: tuple[Instruction, ...]
    drains: tuple[PlannedInstruction, ...]
    bump_fee: bool
    compute_unit_price: Optional[int]

    @property
    def venues(self) -> tuple[Pubkey, ...]:
        return tuple(p.venue for p in self.drains)


@dataclass(frozen=True, slots=True)
class SignedCrank:
    """Serialized transaction ready for broadcast."""

    raw: bytes
    plan: TransactionPlan
