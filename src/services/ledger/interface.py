"""
Abstract Ledger Read Interface

DESIGN DECISION: We define an abstract interface for ledger reads.
This allows us to:
1. Swap the JSON-RPC backend for another provider
2. Use in-memory records for testing
3. Add caching layers transparently
4. Keep decoding and reconciliation decoupled from transport

The interface is read-only on purpose: the reconciler never writes to
the ledger, which is what makes concurrent fan-out safe.
"""

from abc import ABC, abstractmethod
from typing import Optional

from solders.pubkey import Pubkey


class LedgerReaderInterface(ABC):
    """
    Abstract interface for the two ledger reads the reconciler needs.
    """

    @abstractmethod
    async def get_raw_account(self, address: Pubkey) -> Optional[bytes]:
        """
        Fetch the raw bytes stored at an address.

        Args:
            address: Record address

        Returns:
            The record bytes, or None if nothing is stored there

        Raises:
            LedgerConnectionError: If the ledger cannot be reached
        """
        pass

    @abstractmethod
    async def get_token_balance(self, holding_address: Pubkey) -> int:
        """
        Fetch the balance of a token holding address.

        Args:
            holding_address: Token holding address

        Returns:
            Balance in base units

        Raises:
            RecordUnavailableError: If the holding address does not exist
            LedgerConnectionError: If the ledger cannot be reached
        """
        pass


class LedgerError(Exception):
    """Base exception for ledger reads."""
    pass


class RecordUnavailableError(LedgerError):
    """Nothing is stored at the requested address."""

    def __init__(self, address: str, message: Optional[str] = None):
        self.address = address
        super().__init__(message or f"No record at {address}")


class LedgerConnectionError(LedgerError):
    """Could not reach the ledger or it answered with an error."""
    pass
