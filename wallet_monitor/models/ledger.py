"""
Ledger Models
=============

Dataclasses for data returned by the ledger client.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class SignatureInfo:
    """One entry of the most-recent-first signature listing for an address."""
    signature: str
    slot: Optional[int] = None
    block_time: Optional[int] = None  # Unix seconds
    err: Any = None

    @property
    def succeeded(self) -> bool:
        return self.err is None


@dataclass
class TokenTransfer:
    """Change of one token account's balance inside a transaction."""
    mint: str
    amount: float  # Signed, UI units
    decimals: int = 0
    owner: str = ""
    account_index: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "amount": self.amount,
            "decimals": self.decimals,
            "owner": self.owner,
            "account_index": self.account_index,
        }


@dataclass
class TransactionDetails:
    """Parsed transaction detail."""
    signature: str
    success: bool
    fee: float  # Native units
    slot: Optional[int] = None
    block_time: Optional[int] = None
    error: Any = None
    balance_changes: Dict[str, float] = field(default_factory=dict)
    token_transfers: List[TokenTransfer] = field(default_factory=list)
    parse_warning: Optional[str] = None
