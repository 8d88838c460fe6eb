"""
Ledger readers.
Each reader implements read access to one ledger backend.
"""

from proofseal.ledger.base import LedgerReader
from proofseal.ledger.memory import InMemoryLedger
from proofseal.ledger.rpc import JsonRpcLedgerReader

__all__ = [
    "LedgerReader",
    "InMemoryLedger",
    "JsonRpcLedgerReader",
]
