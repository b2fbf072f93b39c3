"""
Monitor Errors

Exceptions raised by the ledger client, the dispatcher and the config loaders.
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for all wallet monitor errors."""


class LedgerError(MonitorError):
    """A ledger query failed."""


class LedgerUnavailable(LedgerError):
    """Network or RPC failure talking to the ledger. Transient."""

    def __init__(self, message: str, method: Optional[str] = None):
        super().__init__(message)
        self.method = method


class TransactionNotFound(LedgerError):
    """The ledger has no record of a transaction (stale or pruned)."""

    def __init__(self, signature: str):
        super().__init__(f"Transaction not found: {signature}")
        self.signature = signature


class DeliveryFailure(MonitorError):
    """A single alert destination could not be reached."""

    def __init__(self, destination: str, reason: str):
        super().__init__(f"Delivery to {destination} failed: {reason}")
        self.destination = destination
        self.reason = reason


class ConfigurationError(MonitorError):
    """Invalid wallet, webhook or monitor configuration."""
