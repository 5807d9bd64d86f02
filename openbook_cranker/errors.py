"""Exception hierarchy shared by the cranker runtime."""

from __future__ import annotations


class CrankerError(Exception):
    """Base class for all cranker failures."""


class ConfigError(CrankerError):
    """Raised when configuration values are missing or invalid."""


class KeypairError(CrankerError):
    """Raised when the signer keypair cannot be loaded."""


class LedgerError(CrankerError):
    """Raised by :class:`~openbook_cranker.ledger.LedgerClient` operations."""


class RPCError(LedgerError):
    """JSON-RPC request returned an error object."""

    def __init__(self, message: str, *, code: int | None = None, method: str | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.method = method


class MinContextSlotNotReached(RPCError):
    """The node has not yet reached the requested ``minContextSlot``."""


class AccountNotFound(LedgerError):
    """A requested account does not exist on chain."""


class LayoutError(LedgerError):
    """Account data does not match the expected byte layout."""


class EventDecodeError(LayoutError):
    """An event heap node could not be decoded."""
