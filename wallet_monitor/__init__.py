"""
Wallet Monitor
==============

Polls a fixed set of Solana addresses and turns new activity into
classified alerts for in-process subscribers and webhooks.
"""

from .config import Config, config
from .core import WalletMonitor, AddressRegistry, load_webhook_subscriptions
from .models import AlertType, MonitoredAddress

__version__ = "0.3.0"

__all__ = [
    "Config",
    "config",
    "WalletMonitor",
    "AddressRegistry",
    "load_webhook_subscriptions",
    "AlertType",
    "MonitoredAddress",
]
