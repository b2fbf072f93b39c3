"""
Shared Data Models
==================

This package contains dataclasses used across the project.
"""

from .address import MonitoredAddress, PollCursor, MonitorState
from .ledger import SignatureInfo, TokenTransfer, TransactionDetails
from .alert import (
    Alert,
    AlertType,
    AlertAddress,
    TransactionPayload,
    BalancePayload,
    TransactionAlert,
    BalanceChangeAlert,
    TRANSACTION_ALERT_TYPES,
)

__all__ = [
    "MonitoredAddress",
    "PollCursor",
    "MonitorState",
    "SignatureInfo",
    "TokenTransfer",
    "TransactionDetails",
    "Alert",
    "AlertType",
    "AlertAddress",
    "TransactionPayload",
    "BalancePayload",
    "TransactionAlert",
    "BalanceChangeAlert",
    "TRANSACTION_ALERT_TYPES",
]
