"""OpenBook v2 event-heap cranker."""

from .config import CrankerConfig
from .cranker import Cranker, CrankerStats
from .ledger import LedgerClient

__all__ = ["Cranker", "CrankerConfig", "CrankerStats", "LedgerClient"]

__version__ = "0.1.0"
