"""Solana / OpenBook v2 client used by the crank loop.

Account reads go through raw ``getMultipleAccounts`` JSON-RPC calls so the
``minContextSlot`` guard can be passed; blockhash reads and transaction
broadcast use ``solana-py``'s :class:`~solana.rpc.async_api.AsyncClient`.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional, Sequence

import aiohttp
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Finalized, Processed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from . import layouts
from .errors import AccountNotFound, LayoutError, LedgerError, RPCError
from .http import rpc_request
from .models import BlockhashInfo, Event, EventQueueSnapshot, VenueInstance

logger = logging.getLogger(__name__)


def _decode_account_data(entry: Any) -> Optional[bytes]:
    if entry is None:
        return None
    data = entry.get("data") if isinstance(entry, dict) else None
    if not isinstance(data, list) or len(data) != 2 or data[1] != "base64":
        raise RPCError("getMultipleAccounts returned unexpected account encoding")
    return base64.b64decode(data[0])


class LedgerClient:
    """Facade over the RPC node for market reads, signing and submission."""

    def __init__(
        self,
        rpc_url: str,
        program_id: Pubkey,
        *,
        payer: Optional[Pubkey] = None,
        client: Optional[AsyncClient] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.program_id = program_id
        self.payer = payer
        self._client = client or AsyncClient(rpc_url, commitment=Processed)
        self._session = session

    async def close(self) -> None:
        await self._client.close()

    async def get_multiple_accounts(
        self,
        addresses: Sequence[Pubkey],
        *,
        commitment: str = "processed",
        min_context_slot: Optional[int] = None,
    ) -> tuple[int, list[Optional[bytes]]]:
        """Return ``(context_slot, [data | None, ...])`` for *addresses* in order."""

        opts: dict[str, Any] = {"encoding": "base64", "commitment": commitment}
        if min_context_slot:
            opts["minContextSlot"] = min_context_slot
        result = await rpc_request(
            self.rpc_url,
            "getMultipleAccounts",
            [[str(a) for a in addresses], opts],
            session=self._session,
        )
        try:
            slot = int(result["context"]["slot"])
            values = list(result["value"])
        except (KeyError, TypeError, ValueError) as exc:
            raise RPCError("getMultipleAccounts returned malformed result") from exc
        if len(values) != len(addresses):
            raise RPCError(
                f"getMultipleAccounts returned {len(values)} accounts for {len(addresses)} keys"
            )
        return slot, [_decode_account_data(v) for v in values]

    async def fetch_static_descriptors(self, addresses: Sequence[Pubkey]) -> list[VenueInstance]:
        """Read and decode every market once. Raises on any missing market."""

        _slot, datas = await self.get_multiple_accounts(addresses, commitment="confirmed")
        venues: list[VenueInstance] = []
        for address, data in zip(addresses, datas):
            if data is None:
                raise AccountNotFound(f"market {address} not found")
            try:
                descriptor = layouts.decode_market(data)
            except LayoutError as exc:
                raise LayoutError(f"market {address}: {exc}") from exc
            venues.append(VenueInstance(address=address, descriptor=descriptor))
        return venues

    async def fetch_queue_snapshots_with_context(
        self,
        queue_addresses: Sequence[Pubkey],
        *,
        min_context_slot: Optional[int] = None,
    ) -> tuple[int, list[EventQueueSnapshot]]:
        slot, datas = await self.get_multiple_accounts(
            queue_addresses, min_context_slot=min_context_slot
        )
        snapshots = [
            EventQueueSnapshot(address=address, slot=slot, data=data)
            for address, data in zip(queue_addresses, datas)
        ]
        return slot, snapshots

    def decode_queue_events(self, snapshot: EventQueueSnapshot) -> list[Event]:
        if snapshot.data is None:
            raise AccountNotFound(f"event heap {snapshot.address} not found")
        return layouts.decode_events(snapshot.data)

    def build_drain_instruction(
        self,
        venue: VenueInstance,
        limit: int,
        accounts: Sequence[Pubkey],
    ) -> Instruction:
        """Build ``consume_events(limit)`` for *venue* with *accounts* as remaining accounts."""

        if limit < 1:
            raise LedgerError("consume events limit must be positive")
        admin = venue.descriptor.consume_events_admin
        if admin is None:
            # unset optional accounts are passed as the program id
            admin_meta = AccountMeta(self.program_id, is_signer=False, is_writable=False)
        elif self.payer is not None and admin != self.payer:
            raise LedgerError(
                f"market {venue.address} requires consume events admin {admin}"
            )
        else:
            admin_meta = AccountMeta(admin, is_signer=True, is_writable=False)

        metas = [
            admin_meta,
            AccountMeta(venue.address, is_signer=False, is_writable=True),
            AccountMeta(venue.event_heap, is_signer=False, is_writable=True),
        ]
        metas.extend(AccountMeta(a, is_signer=False, is_writable=True) for a in accounts)
        return Instruction(self.program_id, layouts.encode_consume_events_data(limit), metas)

    def sign_and_serialize(
        self,
        instructions: Sequence[Instruction],
        blockhash: BlockhashInfo,
        signer: Keypair,
    ) -> bytes:
        tx = Transaction.new_signed_with_payer(
            list(instructions), signer.pubkey(), [signer], blockhash.blockhash
        )
        return bytes(tx)

    async def submit_raw(
        self,
        raw: bytes,
        *,
        skip_preflight: bool = True,
        max_retries: int = 2,
    ) -> str:
        opts = TxOpts(skip_preflight=skip_preflight, max_retries=max_retries)
        try:
            resp = await self._client.send_raw_transaction(raw, opts=opts)
        except RPCException as exc:
            raise RPCError(f"sendTransaction failed: {exc}", method="sendTransaction") from exc
        return str(resp.value)

    async def fetch_validity_token(self) -> BlockhashInfo:
        resp = await self._client.get_latest_blockhash(Finalized)
        value = resp.value
        return BlockhashInfo(
            blockhash=value.blockhash,
            last_valid_block_height=int(value.last_valid_block_height),
        )
