from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from .config import CrankerConfig
from .models import Inspection, PlannedInstruction, VenueInstance

logger = logging.getLogger(__name__)


class DrainInstructionBuilder(Protocol):
    def build_drain_instruction(
        self, venue: VenueInstance, limit: int, accounts: Sequence[Pubkey]
    ) -> Instruction: ...


def is_priority(venue: VenueInstance, pending: int, config: CrankerConfig) -> bool:
    """Deep queues and allow-listed markets get the elevated fee."""

    if pending > config.priority_queue_limit:
        return True
    return str(venue.address) in config.priority_markets


def plan(
    venue: VenueInstance,
    inspection: Inspection,
    config: CrankerConfig,
    builder: DrainInstructionBuilder,
) -> Optional[PlannedInstruction]:
    """Return the drain instruction for *venue*, or ``None`` below ``min_events``.

    Errors from *builder* propagate; the caller skips the market.
    """

    if inspection.pending < config.min_events:
        return None
    instruction = builder.build_drain_instruction(
        venue, config.consume_events_limit, inspection.accounts
    )
    priority = is_priority(venue, inspection.pending, config)
    logger.info(
        "market %s creating consume events for %d events (%d accounts)%s",
        venue.address,
        inspection.pending,
        len(inspection.accounts),
        " [priority]" if priority else "",
    )
    return PlannedInstruction(
        venue=venue.address,
        instruction=instruction,
        priority=priority,
        pending=inspection.pending,
    )
