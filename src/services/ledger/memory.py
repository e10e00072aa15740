"""
In-Memory Ledger

Dictionary-backed implementation of the ledger read interface, used by
tests and local demos. Addresses can also be marked as failing to
exercise per-record error isolation.
"""

from typing import Optional

from solders.pubkey import Pubkey

from src.services.ledger.interface import (
    LedgerConnectionError,
    LedgerReaderInterface,
    RecordUnavailableError,
)


class InMemoryLedgerReader(LedgerReaderInterface):
    """Serves records and balances from dictionaries."""

    def __init__(
        self,
        accounts: Optional[dict[Pubkey, bytes]] = None,
        balances: Optional[dict[Pubkey, int]] = None,
    ):
        self._accounts = dict(accounts or {})
        self._balances = dict(balances or {})
        self._failing: set[Pubkey] = set()
        self.reads: list[Pubkey] = []

    def put_account(self, address: Pubkey, data: bytes) -> None:
        self._accounts[address] = bytes(data)

    def set_balance(self, holding_address: Pubkey, amount: int) -> None:
        self._balances[holding_address] = amount

    def fail_on(self, address: Pubkey) -> None:
        """Make every read of address raise LedgerConnectionError."""
        self._failing.add(address)

    async def get_raw_account(self, address: Pubkey) -> Optional[bytes]:
        self.reads.append(address)
        if address in self._failing:
            raise LedgerConnectionError(f"Simulated failure reading {address}")
        return self._accounts.get(address)

    async def get_token_balance(self, holding_address: Pubkey) -> int:
        self.reads.append(holding_address)
        if holding_address in self._failing:
            raise LedgerConnectionError(f"Simulated failure reading {holding_address}")
        if holding_address not in self._balances:
            raise RecordUnavailableError(str(holding_address))
        return self._balances[holding_address]
