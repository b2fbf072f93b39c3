"""
Alert Models
============

The closed set of alert variants produced by the classifier.

Alert types:
- TRANSACTION_RECEIVED / TRANSACTION_SENT: monitored address gained / lost native balance
- LARGE_TRANSACTION: additionally emitted when the amount meets the large threshold
- TOKEN_TRANSFER: additionally emitted when the transaction moved tokens
- NEW_TRANSACTION: fallback when the direction cannot be attributed
- BALANCE_CHANGE: balance moved between polls
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .address import MonitoredAddress
from .ledger import TokenTransfer


class AlertType(str, Enum):
    TRANSACTION_RECEIVED = "TRANSACTION_RECEIVED"
    TRANSACTION_SENT = "TRANSACTION_SENT"
    BALANCE_CHANGE = "BALANCE_CHANGE"
    TOKEN_TRANSFER = "TOKEN_TRANSFER"
    LARGE_TRANSACTION = "LARGE_TRANSACTION"
    NEW_TRANSACTION = "NEW_TRANSACTION"

    @classmethod
    def parse(cls, value: Union[str, "AlertType"]) -> "AlertType":
        """Accept enum members, values or member names in any case."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().upper())


TRANSACTION_ALERT_TYPES = frozenset({
    AlertType.TRANSACTION_RECEIVED,
    AlertType.TRANSACTION_SENT,
    AlertType.TOKEN_TRANSFER,
    AlertType.LARGE_TRANSACTION,
    AlertType.NEW_TRANSACTION,
})


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def block_time_iso(block_time: Optional[int]) -> str:
    """ISO timestamp from a unix block time, falling back to now if missing or unusable."""
    if block_time is None:
        return utc_now_iso()
    try:
        return datetime.fromtimestamp(block_time, tz=timezone.utc).isoformat()
    except (TypeError, ValueError, OverflowError, OSError):
        return utc_now_iso()


@dataclass
class AlertAddress:
    """Address info carried by every alert."""
    address: str
    name: str
    icon: str

    @classmethod
    def from_monitored(cls, monitored: MonitoredAddress) -> "AlertAddress":
        return cls(
            address=monitored.address,
            name=monitored.display_name,
            icon=monitored.icon,
        )


@dataclass
class TransactionPayload:
    signature: str
    slot: Optional[int]
    success: bool
    fee: Optional[float]
    balance_changes: Dict[str, float] = field(default_factory=dict)
    token_transfers: List[TokenTransfer] = field(default_factory=list)
    amount: Optional[float] = None  # Absolute native amount moved for the monitored address


@dataclass
class BalancePayload:
    old: float
    new: float
    change: float


@dataclass
class TransactionAlert:
    type: AlertType
    timestamp: str
    address: AlertAddress
    transaction: TransactionPayload

    @property
    def amount(self) -> Optional[float]:
        return self.transaction.amount

    def to_dict(self) -> Dict[str, Any]:
        tx = self.transaction
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "wallet": {
                "address": self.address.address,
                "name": self.address.name,
                "icon": self.address.icon,
            },
            "transaction": {
                "signature": tx.signature,
                "slot": tx.slot,
                "success": tx.success,
                "fee": tx.fee,
                "balance_changes": dict(tx.balance_changes),
                "token_transfers": [t.to_dict() for t in tx.token_transfers],
                "amount": tx.amount,
            },
        }


@dataclass
class BalanceChangeAlert:
    timestamp: str
    address: AlertAddress
    balance: BalancePayload
    type: AlertType = AlertType.BALANCE_CHANGE

    @property
    def amount(self) -> Optional[float]:
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "wallet": {
                "address": self.address.address,
                "name": self.address.name,
                "icon": self.address.icon,
            },
            "balance": {
                "old": self.balance.old,
                "new": self.balance.new,
                "change": self.balance.change,
            },
        }


Alert = Union[TransactionAlert, BalanceChangeAlert]
