from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from .config_schema import validate_config
from .errors import ConfigError
from .logging_utils import mask_url

logger = logging.getLogger(__name__)

DEFAULT_PROGRAM_ID = "opnb2LAfJYbRMAHHvqjCwQxanZn7ReEHp1k81EohpZb"

DEFAULTS: dict[str, Any] = {
    "rpc_url": "https://api.mainnet-beta.solana.com",
    "wallet_path": "~/.config/solana/id.json",
    "keypair": None,
    "program_id": DEFAULT_PROGRAM_ID,
    "markets": "AFgkED1FUVfBe2trPUDqSqK9QKd4stJrfzq5q1RwAFTa",
    "priority_markets": "",
    "interval_ms": 1000,
    "min_events": 1,
    "consume_events_limit": 19,
    "max_tx_instructions": 1,
    "cu_price": 1,
    "priority_cu_price": 100_000,
    "priority_cu_limit": 50_000,
    "priority_queue_limit": 100,
    "stale_backoff_ms": 200,
    "blockhash_refresh_ms": 1000,
    "submit_max_retries": 2,
    "debug": False,
    "log_format": "text",
}

# config key -> environment variable
ENV_VARS: dict[str, str] = {
    "rpc_url": "RPC_URL",
    "wallet_path": "WALLET_PATH",
    "keypair": "KEYPAIR",
    "program_id": "PROGRAM_ID",
    "markets": "MARKETS",
    "priority_markets": "PRIORITY_MARKETS",
    "interval_ms": "INTERVAL",
    "min_events": "MIN_EVENTS",
    "consume_events_limit": "CONSUME_EVENTS_LIMIT",
    "max_tx_instructions": "MAX_TX_INSTRUCTIONS",
    "cu_price": "CU_PRICE",
    "priority_cu_price": "PRIORITY_CU_PRICE",
    "priority_cu_limit": "PRIORITY_CU_LIMIT",
    "priority_queue_limit": "PRIORITY_QUEUE_LIMIT",
    "stale_backoff_ms": "STALE_BACKOFF_MS",
    "blockhash_refresh_ms": "BLOCKHASH_REFRESH_MS",
    "submit_max_retries": "SUBMIT_MAX_RETRIES",
    "debug": "DEBUG",
    "log_format": "LOG_FORMAT",
}


def load_config(path: str | os.PathLike[str]) -> dict[str, Any]:
    """Load a TOML or YAML configuration file into a plain ``dict``.

    Only keys known to :data:`DEFAULTS` are accepted; anything else is a
    configuration error so typos do not silently fall back to defaults.
    """

    p = Path(path).expanduser()
    if not p.exists():
        raise ConfigError(f"config file {p} does not exist")
    text = p.read_text(encoding="utf-8")
    try:
        if p.suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif p.suffix == ".toml":
            data = tomllib.loads(text)
        else:
            raise ConfigError(f"unsupported config format: {p.suffix or p.name}")
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"failed to parse {p}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"config file {p} must contain a mapping")
    unknown = sorted(set(data) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"unknown config key(s) in {p}: {', '.join(unknown)}")
    return data


@dataclass(frozen=True)
class CrankerConfig:
    """Runtime configuration values populated from environment or file settings."""

    rpc_url: str
    wallet_path: str
    keypair: str | None
    program_id: str
    markets: tuple[str, ...]
    priority_markets: frozenset[str]
    interval_ms: int
    min_events: int
    consume_events_limit: int
    max_tx_instructions: int
    cu_price: int
    priority_cu_price: int
    priority_cu_limit: int
    priority_queue_limit: int
    stale_backoff_ms: int
    blockhash_refresh_ms: int
    submit_max_retries: int
    debug: bool = False
    log_format: str = "text"

    @property
    def interval(self) -> float:
        return self.interval_ms / 1000.0

    @property
    def stale_backoff(self) -> float:
        return self.stale_backoff_ms / 1000.0

    @property
    def blockhash_refresh_interval(self) -> float:
        return self.blockhash_refresh_ms / 1000.0

    @property
    def compute_unit_limit(self) -> int:
        """Per-transaction budget, sized for a full group of instructions."""
        return self.priority_cu_limit * self.max_tx_instructions

    @classmethod
    def from_env(
        cls,
        cfg: Mapping[str, Any] | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        overrides: Mapping[str, Any] | None = None,
    ) -> "CrankerConfig":
        """Create a config using overrides, environment variables, ``cfg`` and defaults.

        Precedence, highest first: ``overrides`` (command line), environment
        variables named in :data:`ENV_VARS`, the ``cfg`` mapping (config
        file), then :data:`DEFAULTS`.  ``None`` values in ``overrides`` and
        ``cfg`` are treated as unset.
        """
        cfg = cfg or {}
        overrides = overrides or {}
        env = os.environ if environ is None else environ

        raw: dict[str, Any] = {}
        for key, default in DEFAULTS.items():
            value = overrides.get(key)
            if value is None:
                value = env.get(ENV_VARS[key])
            if value is None:
                value = cfg.get(key)
            if value is None:
                value = default
            raw[key] = value

        data = validate_config(raw)
        return cls(
            rpc_url=str(data["rpc_url"]),
            wallet_path=str(data["wallet_path"]),
            keypair=data["keypair"],  # type: ignore[arg-type]
            program_id=str(data["program_id"]),
            markets=tuple(data["markets"]),  # type: ignore[arg-type]
            priority_markets=frozenset(data["priority_markets"]),  # type: ignore[arg-type]
            interval_ms=int(data["interval_ms"]),  # type: ignore[arg-type]
            min_events=int(data["min_events"]),  # type: ignore[arg-type]
            consume_events_limit=int(data["consume_events_limit"]),  # type: ignore[arg-type]
            max_tx_instructions=int(data["max_tx_instructions"]),  # type: ignore[arg-type]
            cu_price=int(data["cu_price"]),  # type: ignore[arg-type]
            priority_cu_price=int(data["priority_cu_price"]),  # type: ignore[arg-type]
            priority_cu_limit=int(data["priority_cu_limit"]),  # type: ignore[arg-type]
            priority_queue_limit=int(data["priority_queue_limit"]),  # type: ignore[arg-type]
            stale_backoff_ms=int(data["stale_backoff_ms"]),  # type: ignore[arg-type]
            blockhash_refresh_ms=int(data["blockhash_refresh_ms"]),  # type: ignore[arg-type]
            submit_max_retries=int(data["submit_max_retries"]),  # type: ignore[arg-type]
            debug=bool(data["debug"]),
            log_format=str(data["log_format"]),
        )

    def log_summary(self) -> None:
        logger.info("Loaded MARKETS: %s", ",".join(self.markets))
        if self.priority_markets:
            logger.info("Loaded PRIORITY_MARKETS: %s", ",".join(sorted(self.priority_markets)))
        logger.info("Loaded RPC_URL: %s", mask_url(self.rpc_url))
        logger.info("Loaded WALLET_PATH: %s", self.wallet_path)
        logger.info(
            "Crank settings interval=%dms min_events=%d limit=%d max_tx_ix=%d "
            "cu_price=%d priority_cu_price=%d cu_limit=%d priority_queue_limit=%d",
            self.interval_ms,
            self.min_events,
            self.consume_events_limit,
            self.max_tx_instructions,
            self.cu_price,
            self.priority_cu_price,
            self.compute_unit_limit,
            self.priority_queue_limit,
        )
