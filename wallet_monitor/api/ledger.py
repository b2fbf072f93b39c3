"""
Ledger Client Interface

The three queries the monitor needs from a chain.
"""

from abc import ABC, abstractmethod
from typing import List

from ..models import SignatureInfo, TransactionDetails


class LedgerClient(ABC):
    """
    Async ledger queries.

    Implementations raise LedgerUnavailable on network/RPC failure and
    TransactionNotFound when a signature has no transaction record.
    """

    @abstractmethod
    async def get_balance(self, address: str) -> float:
        """Native-unit balance of an address."""

    @abstractmethod
    async def get_recent_transactions(self, address: str, limit: int) -> List[SignatureInfo]:
        """Most recent signatures for an address, most-recent-first."""

    @abstractmethod
    async def get_transaction_details(self, signature: str) -> TransactionDetails:
        """Parsed detail of a single transaction."""

    async def close(self) -> None:
        """Release any held resources."""
