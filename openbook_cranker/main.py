"""Command line entry point for the OpenBook v2 cranker."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from argparse import ArgumentParser, Namespace
from typing import Any, Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .config import CrankerConfig, load_config
from .cranker import Cranker
from .env import load_env_file
from .errors import CrankerError
from .http import close_session
from .ledger import LedgerClient
from .logging_utils import setup_stdout_logging
from .wallet import resolve_keypair

logger = logging.getLogger(__name__)

# argparse dest -> config key
_OVERRIDES = {
    "rpc_url": "rpc_url",
    "wallet_path": "wallet_path",
    "program_id": "program_id",
    "markets": "markets",
    "priority_markets": "priority_markets",
    "interval": "interval_ms",
    "min_events": "min_events",
    "consume_events_limit": "consume_events_limit",
    "max_tx_instructions": "max_tx_instructions",
    "cu_price": "cu_price",
    "priority_cu_price": "priority_cu_price",
    "priority_cu_limit": "priority_cu_limit",
    "priority_queue_limit": "priority_queue_limit",
    "stale_backoff": "stale_backoff_ms",
    "debug": "debug",
    "log_format": "log_format",
}


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(description="Consume pending OpenBook v2 events for a set of markets")
    parser.add_argument("--config", default=None, help="TOML or YAML config file")
    parser.add_argument("--env-file", default=".env", help="Environment file to load (default: .env)")
    parser.add_argument("--rpc-url", default=None, help="Solana RPC endpoint")
    parser.add_argument("--wallet-path", default=None, help="Keypair JSON file of the fee payer")
    parser.add_argument("--program-id", default=None, help="OpenBook v2 program id")
    parser.add_argument("--markets", default=None, help="Comma separated market addresses")
    parser.add_argument(
        "--priority-markets", default=None, help="Comma separated markets that always pay the priority fee"
    )
    parser.add_argument("--interval", type=int, default=None, help="Polling interval in ms")
    parser.add_argument("--min-events", type=int, default=None, help="Minimum pending events to crank")
    parser.add_argument("--consume-events-limit", type=int, default=None, help="Events consumed per instruction")
    parser.add_argument("--max-tx-instructions", type=int, default=None, help="Crank instructions per transaction")
    parser.add_argument("--cu-price", type=int, default=None, help="Base compute unit price (micro-lamports)")
    parser.add_argument("--priority-cu-price", type=int, default=None, help="Priority compute unit price")
    parser.add_argument("--priority-cu-limit", type=int, default=None, help="Compute units per crank instruction")
    parser.add_argument(
        "--priority-queue-limit", type=int, default=None, help="Queue depth above which the priority fee is paid"
    )
    parser.add_argument("--stale-backoff", type=int, default=None, help="Delay in ms after a stale read (0 = none)")
    parser.add_argument("--debug", action="store_true", default=None, help="Verbose logging")
    parser.add_argument("--log-format", choices=("text", "json"), default=None)
    return parser


def overrides_from_args(args: Namespace) -> dict[str, Any]:
    return {key: getattr(args, dest) for dest, key in _OVERRIDES.items() if getattr(args, dest) is not None}


def _install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop.set)


async def run_cranker(
    config: CrankerConfig,
    signer: Keypair,
    *,
    stop: Optional[asyncio.Event] = None,
    ledger: Optional[LedgerClient] = None,
) -> Cranker:
    ledger = ledger or LedgerClient(
        config.rpc_url, Pubkey.from_string(config.program_id), payer=signer.pubkey()
    )
    try:
        cranker = await Cranker.create(config, ledger, signer)
        if stop is None:
            stop = asyncio.Event()
            _install_signal_handlers(stop)
        await cranker.run(stop)
        return cranker
    finally:
        await ledger.close()
        await close_session()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_env_file(args.env_file)
    try:
        file_cfg = load_config(args.config) if args.config else {}
        config = CrankerConfig.from_env(file_cfg, overrides=overrides_from_args(args))
    except CrankerError as exc:
        raise SystemExit(f"configuration error: {exc}") from exc

    setup_stdout_logging(
        level=logging.DEBUG if config.debug else logging.INFO,
        json_output=config.log_format == "json",
    )
    if config.debug:
        logger.info("DEBUG ENABLED")

    try:
        signer = resolve_keypair(config)
    except CrankerError as exc:
        raise SystemExit(f"keypair error: {exc}") from exc

    config.log_summary()
    logger.info("Loaded Wallet: %s", signer.pubkey())
    asyncio.run(run_cranker(config, signer))
    return 0
