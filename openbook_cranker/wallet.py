"""Signer keypair loading."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import base58
from solders.keypair import Keypair

from .config import CrankerConfig
from .errors import KeypairError

logger = logging.getLogger(__name__)

SECRET_KEY_LENGTH = 64


def _keypair_from_ints(values: object) -> Keypair:
    if not isinstance(values, list) or len(values) != SECRET_KEY_LENGTH:
        raise KeypairError(f"keypair must be a JSON array of {SECRET_KEY_LENGTH} integers")
    if not all(isinstance(v, int) and 0 <= v <= 255 for v in values):
        raise KeypairError("keypair values must be integers between 0 and 255")
    try:
        return Keypair.from_bytes(bytes(values))
    except Exception as exc:
        raise KeypairError(f"invalid keypair bytes: {exc}") from exc


def parse_secret(secret: str) -> Keypair:
    """Parse a JSON byte array (``solana-keygen`` format) or a base58 secret key."""

    text = secret.strip()
    if not text:
        raise KeypairError("empty keypair secret")
    if text.startswith("["):
        try:
            values = json.loads(text)
        except json.JSONDecodeError as exc:
            raise KeypairError(f"keypair is not valid JSON: {exc}") from exc
        return _keypair_from_ints(values)
    try:
        raw = base58.b58decode(text)
    except ValueError as exc:
        raise KeypairError(f"failed to decode base58 secret: {exc}") from exc
    if len(raw) != SECRET_KEY_LENGTH:
        raise KeypairError(f"base58 secret must decode to {SECRET_KEY_LENGTH} bytes, got {len(raw)}")
    try:
        return Keypair.from_bytes(raw)
    except Exception as exc:
        raise KeypairError(f"invalid keypair bytes: {exc}") from exc


def load_keypair(path: str | Path) -> Keypair:
    p = Path(path).expanduser()
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise KeypairError(f"cannot read keypair file {p}: {exc}") from exc
    return parse_secret(text)


def resolve_keypair(config: CrankerConfig) -> Keypair:
    """Inline ``KEYPAIR`` wins over ``WALLET_PATH``."""

    if config.keypair:
        logger.debug("using inline KEYPAIR secret")
        return parse_secret(config.keypair)
    return load_keypair(config.wallet_path)
