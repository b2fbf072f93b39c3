"""
Address Models
==============

Monitored addresses and the per-address poll cursors kept between cycles.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional


DEFAULT_ICON = "📍"


@dataclass(frozen=True)
class MonitoredAddress:
    """An address from the registry. Immutable for the process lifetime."""
    address: str
    display_name: str
    icon: str = DEFAULT_ICON
    deliver_to_feed: bool = True

    @property
    def label(self) -> str:
        return f"{self.icon} {self.display_name}"


@dataclass(frozen=True)
class PollCursor:
    """
    Last observed state for one address.

    last_seen_tx_id is None when the address had no transactions at seed time.
    last_balance is None until the first successful balance read.
    """
    last_seen_tx_id: Optional[str] = None
    last_balance: Optional[float] = None


@dataclass
class MonitorState:
    """
    Cursor map owned by the scheduler.

    Only the scheduler task mutates this, one address at a time.
    An address with no entry has not been seeded yet.
    """
    cursors: Dict[str, PollCursor] = field(default_factory=dict)

    def get(self, address: str) -> Optional[PollCursor]:
        return self.cursors.get(address)

    def is_seeded(self, address: str) -> bool:
        return address in self.cursors

    def update(self, address: str, cursor: PollCursor) -> None:
        self.cursors[address] = cursor

    def last_seen(self) -> Dict[str, str]:
        """Last-seen transaction id per address (seeded addresses with history only)."""
        return {
            addr: cursor.last_seen_tx_id
            for addr, cursor in self.cursors.items()
            if cursor.last_seen_tx_id is not None
        }

    def balances(self) -> Dict[str, float]:
        return {
            addr: cursor.last_balance
            for addr, cursor in self.cursors.items()
            if cursor.last_balance is not None
        }
