# Core business logic
from .detector import (
    BalanceChange,
    ChangeSet,
    detect_changes,
    find_new_transactions,
    compute_balance_change,
    seed_cursor,
)
from .classifier import EventClassifier
from .filters import FilterChain
from .registry import AddressRegistry, load_webhook_subscriptions
from .monitor import WalletMonitor

__all__ = [
    "BalanceChange",
    "ChangeSet",
    "detect_changes",
    "find_new_transactions",
    "compute_balance_change",
    "seed_cursor",
    "EventClassifier",
    "FilterChain",
    "AddressRegistry",
    "load_webhook_subscriptions",
    "WalletMonitor",
]
