"""
Ledger Read Services Package

Provides the abstract read interface and its implementations.
The JSON-RPC reader is the production backend; the in-memory reader
backs tests.
"""

from src.services.ledger.interface import (
    LedgerConnectionError,
    LedgerError,
    LedgerReaderInterface,
    RecordUnavailableError,
)
from src.services.ledger.memory import InMemoryLedgerReader
from src.services.ledger.rpc import RpcLedgerReader

__all__ = [
    # Interface
    "LedgerReaderInterface",
    # Exceptions
    "LedgerConnectionError",
    "LedgerError",
    "RecordUnavailableError",
    # Implementations
    "InMemoryLedgerReader",
    "RpcLedgerReader",
]
