"""
Change Detection

Diffs a freshly fetched most-recent-first signature list and balance against
the stored PollCursor. Pure functions: (cursor, fresh data) -> (new cursor, changes).

The remote log is append-only and can only be read as "the most recent N
entries". New entries are those above the last-seen signature. If more than
N entries were appended since the last poll, the older ones are never seen;
the cursor still jumps to the newest entry so the next walk terminates.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional

from ..models import PollCursor, SignatureInfo


@dataclass
class BalanceChange:
    old: float
    new: float

    @property
    def delta(self) -> float:
        return self.new - self.old


@dataclass
class ChangeSet:
    """Result of one detection pass for one address."""
    cursor: PollCursor
    new_transactions: List[SignatureInfo] = field(default_factory=list)  # oldest first
    balance_change: Optional[BalanceChange] = None

    @property
    def has_changes(self) -> bool:
        return bool(self.new_transactions) or self.balance_change is not None


def seed_cursor(recent: List[SignatureInfo], balance: Optional[float]) -> PollCursor:
    """Cursor for an address seen for the first time. Existing history is skipped."""
    last_seen = recent[0].signature if recent else None
    return PollCursor(last_seen_tx_id=last_seen, last_balance=balance)


def find_new_transactions(
    recent: List[SignatureInfo],
    last_seen_tx_id: Optional[str],
) -> List[SignatureInfo]:
    """
    Entries of `recent` newer than `last_seen_tx_id`, oldest first.

    Args:
        recent: Signatures, most-recent-first
        last_seen_tx_id: Stored cursor, or None if the address had no history

    Returns:
        New signatures in chronological (ledger) order
    """
    new = []
    for item in recent:
        if item.signature == last_seen_tx_id:
            break
        new.append(item)
    new.reverse()
    return new


def compute_balance_change(
    last_balance: Optional[float],
    balance: Optional[float],
    epsilon: float,
) -> Optional[BalanceChange]:
    """A BalanceChange if |new - old| > epsilon, else None. No change on first observation."""
    if last_balance is None or balance is None:
        return None
    if abs(balance - last_balance) > epsilon:
        return BalanceChange(old=last_balance, new=balance)
    return None


def detect_changes(
    cursor: PollCursor,
    recent: List[SignatureInfo],
    balance: Optional[float],
    epsilon: float,
) -> ChangeSet:
    """
    Compare fresh ledger data with the stored cursor.

    - last_seen_tx_id advances to recent[0] whenever anything new was found
    - last_balance is seeded on first observation and otherwise only moves
      when a change is reported, so sub-epsilon drift accumulates
    """
    new_transactions = find_new_transactions(recent, cursor.last_seen_tx_id)
    balance_change = compute_balance_change(cursor.last_balance, balance, epsilon)

    updated = cursor
    if new_transactions:
        updated = replace(updated, last_seen_tx_id=recent[0].signature)
    if balance is not None and (cursor.last_balance is None or balance_change is not None):
        updated = replace(updated, last_balance=balance)

    return ChangeSet(
        cursor=updated,
        new_transactions=new_transactions,
        balance_change=balance_change,
    )
