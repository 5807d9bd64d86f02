"""Group drain instructions into signed crank transactions."""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Protocol, Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair

from .config import CrankerConfig
from .models import BlockhashInfo, PlannedInstruction, SignedCrank, TransactionPlan
from .util import chunked

logger = logging.getLogger(__name__)


class TransactionSigner(Protocol):
    def sign_and_serialize(
        self,
        instructions: Sequence[Instruction],
        blockhash: BlockhashInfo,
        signer: Keypair,
    ) -> bytes: ...


def select_compute_unit_price(bump_fee: bool, config: CrankerConfig) -> Optional[int]:
    """Priority price when bumped, else the base price; ``None`` when neither applies."""

    if bump_fee:
        return config.priority_cu_price
    if config.cu_price:
        return config.cu_price
    return None


def plan_group(group: Sequence[PlannedInstruction], config: CrankerConfig) -> TransactionPlan:
    bump_fee = any(p.priority for p in group)
    price = select_compute_unit_price(bump_fee, config)
    instructions: list[Instruction] = [set_compute_unit_limit(config.compute_unit_limit)]
    if price is not None:
        instructions.append(set_compute_unit_price(price))
    instructions.extend(p.instruction for p in group)
    return TransactionPlan(
        instructions=tuple(instructions),
        drains=tuple(group),
        bump_fee=bump_fee,
        compute_unit_price=price,
    )


def plan_transactions(
    planned: Sequence[PlannedInstruction], config: CrankerConfig
) -> list[TransactionPlan]:
    """Split *planned* into ordered groups of ``max_tx_instructions``."""

    return [plan_group(group, config) for group in chunked(planned, config.max_tx_instructions)]


def batch(
    planned: Sequence[PlannedInstruction],
    config: CrankerConfig,
    *,
    signer: Keypair,
    blockhash: BlockhashInfo,
    ledger: TransactionSigner,
) -> Iterator[SignedCrank]:
    """Sign one group at a time so each can be handed off before the next is built.

    A group that fails to sign is logged and skipped; the remaining groups
    are still produced.
    """

    for tx_plan in plan_transactions(planned, config):
        try:
            raw = ledger.sign_and_serialize(tx_plan.instructions, blockhash, signer)
        except Exception:
            logger.exception(
                "failed to sign crank tx for market(s) %s",
                ", ".join(str(v) for v in tx_plan.venues),
            )
            continue
        logger.debug(
            "built crank tx markets=%d bump_fee=%s cu_price=%s size=%d",
            len(tx_plan.drains),
            tx_plan.bump_fee,
            tx_plan.compute_unit_price,
            len(raw),
        )
        yield SignedCrank(raw=raw, plan=tx_plan)
