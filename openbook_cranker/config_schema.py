from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from solders.pubkey import Pubkey

from .errors import ConfigError
from .util import parse_bool, split_csv

# getMultipleAccounts accepts at most this many keys per request
MAX_MARKETS = 100


def _check_address(value: str) -> str:
    try:
        Pubkey.from_string(value)
    except Exception as exc:
        raise ValueError(f"invalid public key {value!r}") from exc
    return value


class ConfigModel(BaseModel):
    """Schema for cranker configuration values after source merging."""

    model_config = ConfigDict(extra="forbid")

    rpc_url: str = Field(min_length=1)
    wallet_path: str
    keypair: str | None = None
    program_id: str
    markets: List[str]
    priority_markets: List[str] = []
    interval_ms: int = Field(ge=0)
    min_events: int = Field(ge=1)
    consume_events_limit: int = Field(ge=1)
    max_tx_instructions: int = Field(ge=1)
    cu_price: int = Field(ge=0)
    priority_cu_price: int = Field(ge=0)
    priority_cu_limit: int = Field(ge=1)
    priority_queue_limit: int = Field(ge=0)
    stale_backoff_ms: int = Field(ge=0)
    blockhash_refresh_ms: int = Field(ge=1)
    submit_max_retries: int = Field(ge=0)
    debug: bool = False
    log_format: str = "text"

    @field_validator("markets", "priority_markets", mode="before")
    @classmethod
    def _split_lists(cls, value: Any) -> List[str]:
        return split_csv(value)

    @field_validator("markets")
    @classmethod
    def _markets_non_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError("no valid market pubkeys provided")
        if len(value) > MAX_MARKETS:
            raise ValueError(f"at most {MAX_MARKETS} markets can be cranked")
        return [_check_address(v) for v in value]

    @field_validator("priority_markets")
    @classmethod
    def _priority_addresses(cls, value: List[str]) -> List[str]:
        return [_check_address(v) for v in value]

    @field_validator("program_id")
    @classmethod
    def _program_address(cls, value: str) -> str:
        return _check_address(value.strip())

    @field_validator("debug", mode="before")
    @classmethod
    def _coerce_bool(cls, value: Any) -> bool:
        return parse_bool(value)

    @field_validator("keypair", mode="before")
    @classmethod
    def _blank_keypair(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_format")
    @classmethod
    def _known_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"text", "json"}:
            raise ValueError("log_format must be 'text' or 'json'")
        return value


def validate_config(data: Dict[str, object]) -> Dict[str, object]:
    """Validate ``data`` against :class:`ConfigModel`.

    Returns the validated data with type normalization applied.
    Raises :class:`ConfigError` on validation errors.
    """
    try:
        return ConfigModel(**data).model_dump()
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
