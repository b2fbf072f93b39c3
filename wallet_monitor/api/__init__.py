"""
API Package
===========

Ledger clients.

Components:
- ledger.py: LedgerClient interface used by the monitor
- solana.py: SolanaRPCClient (aiohttp JSON-RPC) and response parsers
"""

from .ledger import LedgerClient
from .solana import (
    SolanaRPCClient,
    parse_signatures,
    parse_transaction,
    extract_balance_changes,
    extract_token_transfers,
)

__all__ = [
    "LedgerClient",
    "SolanaRPCClient",
    "parse_signatures",
    "parse_transaction",
    "extract_balance_changes",
    "extract_token_transfers",
]
