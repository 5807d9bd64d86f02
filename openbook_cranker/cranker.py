"""Crank scheduling loop.

One worker polls every event heap in a single read, drops stale reads,
plans a ``consume_events`` instruction per market and fires the batched
transactions without waiting for them to land.  A second task keeps the
recent blockhash fresh.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .batcher import batch
from .blockhash import BlockhashCache
from .config import CrankerConfig
from .errors import ConfigError, MinContextSlotNotReached
from .inspector import inspect
from .models import (
    BlockhashInfo,
    Event,
    EventQueueSnapshot,
    PlannedInstruction,
    SignedCrank,
    VenueInstance,
)
from .planner import plan
from .staleness import SlotWatermark

logger = logging.getLogger(__name__)


class CrankLedger(Protocol):
    async def fetch_static_descriptors(self, addresses: Sequence[Pubkey]) -> list[VenueInstance]: ...

    async def fetch_queue_snapshots_with_context(
        self, queue_addresses: Sequence[Pubkey], *, min_context_slot: Optional[int] = None
    ) -> tuple[int, list[EventQueueSnapshot]]: ...

    def decode_queue_events(self, snapshot: EventQueueSnapshot) -> list[Event]: ...

    def build_drain_instruction(
        self, venue: VenueInstance, limit: int, accounts: Sequence[Pubkey]
    ) -> Instruction: ...

    def sign_and_serialize(
        self, instructions: Sequence[Instruction], blockhash: BlockhashInfo, signer: Keypair
    ) -> bytes: ...

    async def submit_raw(self, raw: bytes, *, skip_preflight: bool = True, max_retries: int = 2) -> str: ...

    async def fetch_validity_token(self) -> BlockhashInfo: ...


@dataclass
class CrankerStats:
    iterations: int = 0
    stale_skips: int = 0
    errors: int = 0
    market_errors: int = 0
    submitted: int = 0
    failed: int = 0


class Cranker:
    """Drive the poll → plan → batch → submit cycle until stopped."""

    skip_preflight = True

    def __init__(
        self,
        config: CrankerConfig,
        ledger: CrankLedger,
        signer: Keypair,
        venues: Sequence[VenueInstance],
        *,
        blockhash: Optional[BlockhashCache] = None,
    ) -> None:
        if not venues:
            raise ConfigError("No valid market pubkeys provided!")
        self.config = config
        self.ledger = ledger
        self.signer = signer
        self.venues = tuple(venues)
        self.watermark = SlotWatermark()
        self.blockhash = blockhash or BlockhashCache(
            ledger.fetch_validity_token, interval=config.blockhash_refresh_interval
        )
        self.stats = CrankerStats()
        self._inflight: set[asyncio.Task[None]] = set()

    @classmethod
    async def create(
        cls, config: CrankerConfig, ledger: CrankLedger, signer: Keypair
    ) -> "Cranker":
        """Fetch market descriptors once and build a cranker for them."""

        addresses = [Pubkey.from_string(m) for m in config.markets]
        if not addresses:
            raise ConfigError("No valid market pubkeys provided!")
        venues = await ledger.fetch_static_descriptors(addresses)
        for venue in venues:
            logger.info("market %s event heap %s", venue.address, venue.event_heap)
        return cls(config, ledger, signer, venues)

    # ------------------------------------------------------------------
    # single iteration
    # ------------------------------------------------------------------
    async def run_iteration(self) -> bool:
        """Poll once and submit any crank transactions.

        Returns ``False`` when the read was stale and nothing was done.
        """

        heaps = [venue.event_heap for venue in self.venues]
        try:
            slot, snapshots = await self.ledger.fetch_queue_snapshots_with_context(
                heaps, min_context_slot=self.watermark.value
            )
        except MinContextSlotNotReached as exc:
            self.stats.stale_skips += 1
            logger.debug("node behind slot %d, skipping: %s", self.watermark.value, exc)
            return False

        if not self.watermark.accept(slot):
            self.stats.stale_skips += 1
            logger.debug("already processed slot %d, skipping...", slot)
            return False

        planned = self.plan_all(snapshots)
        if planned:
            self.submit(planned)
        return True

    def plan_all(self, snapshots: Sequence[EventQueueSnapshot]) -> list[PlannedInstruction]:
        """Inspect and plan every market in configured order."""

        planned: list[PlannedInstruction] = []
        for venue, snapshot in zip(self.venues, snapshots):
            try:
                inspection = inspect(snapshot, self.ledger.decode_queue_events)
                item = plan(venue, inspection, self.config, self.ledger)
            except Exception:
                self.stats.market_errors += 1
                logger.exception("market %s skipped this iteration", venue.address)
                continue
            if item is not None:
                planned.append(item)
        return planned

    def submit(self, planned: Sequence[PlannedInstruction]) -> list[SignedCrank]:
        """Broadcast each batch in the background as soon as it is signed."""

        cranks: list[SignedCrank] = []
        for crank in batch(
            planned,
            self.config,
            signer=self.signer,
            blockhash=self.blockhash.current,
            ledger=self.ledger,
        ):
            task = asyncio.create_task(self._send(crank))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
            cranks.append(crank)
        return cranks

    async def _send(self, crank: SignedCrank) -> None:
        count = len(crank.plan.drains)
        markets = ", ".join(str(v) for v in crank.plan.venues)
        try:
            signature = await self.ledger.submit_raw(
                crank.raw,
                skip_preflight=self.skip_preflight,
                max_retries=self.config.submit_max_retries,
            )
        except Exception as exc:
            self.stats.failed += 1
            logger.error(
                "Crank of %d market(s) [%s] rejected: %s",
                count,
                markets,
                exc,
                exc_info=self.config.debug,
            )
            return
        self.stats.submitted += 1
        logger.info("Cranked %d market(s) [%s]: %s", count, markets, signature)

    async def wait_for_submissions(self) -> None:
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ------------------------------------------------------------------
    # loop
    # ------------------------------------------------------------------
    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Run until *stop* is set. Iteration failures are logged, never raised."""

        stop = stop or asyncio.Event()
        if not self.blockhash.ready:
            await self.blockhash.refresh()
        self.blockhash.start()
        logger.info("Starting OpenBook v2 cranker for %d market(s)", len(self.venues))
        try:
            while not stop.is_set():
                try:
                    fresh = await self.run_iteration()
                except Exception:
                    self.stats.errors += 1
                    fresh = True
                    logger.exception("crank iteration failed")
                self.stats.iterations += 1
                delay = self.config.interval if fresh else self.config.stale_backoff
                if await _wait(stop, delay):
                    break
        finally:
            await self.blockhash.stop()
            await self.wait_for_submissions()
        logger.info("Cranker stopped after %d iteration(s)", self.stats.iterations)


async def _wait(stop: asyncio.Event, delay: float) -> bool:
    """Sleep for *delay* seconds or until *stop* is set. Returns ``stop.is_set()``."""

    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(delay, 0.0))
    except asyncio.TimeoutError:
        pass
    return stop.is_set()
