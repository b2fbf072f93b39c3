"""
Alerts Package
==============

Alert delivery.

Components:
- feed.py: AlertFeed local publish/subscribe (all alerts, per type, errors)
- webhooks.py: WebhookSubscription and concurrent WebhookDispatcher
- dispatcher.py: Dispatcher fanning alerts out to feed and webhooks
- logger.py: AlertLogger feed subscriber (console/file lines)
- telegram.py: TelegramAlerts feed subscriber
"""

from .feed import AlertFeed, MonitorErrorEvent
from .webhooks import WebhookSubscription, WebhookDispatcher, ALL_ADDRESSES, validate_webhook_url
from .dispatcher import Dispatcher
from .logger import AlertLogger, format_alert
from .telegram import TelegramAlerts, AlertConfig

__all__ = [
    "AlertFeed",
    "MonitorErrorEvent",
    "WebhookSubscription",
    "WebhookDispatcher",
    "ALL_ADDRESSES",
    "validate_webhook_url",
    "Dispatcher",
    "AlertLogger",
    "format_alert",
    "TelegramAlerts",
    "AlertConfig",
]
