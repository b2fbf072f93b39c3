#!/usr/bin/env python3
"""
Send Test Alert
===============

Pushes a synthetic alert through the dispatcher to check webhook and
Telegram configuration without waiting for on-chain activity.

Usage:
    python3 scripts/send_test_alert.py                         # LARGE_TRANSACTION for first wallet
    python3 scripts/send_test_alert.py --type BALANCE_CHANGE
    python3 scripts/send_test_alert.py --wallet whale --dry-run
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from wallet_monitor.alerts import AlertLogger, Dispatcher, TelegramAlerts, WebhookDispatcher
from wallet_monitor.config import config
from wallet_monitor.core import AddressRegistry, EventClassifier, load_webhook_subscriptions
from wallet_monitor.core.detector import BalanceChange
from wallet_monitor.errors import ConfigurationError
from wallet_monitor.models import AlertType, MonitoredAddress, SignatureInfo, TransactionDetails

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)

TEST_SIGNATURE = "TestSignature1111111111111111111111111111111111111111111111111111111"


def build_test_alert(monitored: MonitoredAddress, alert_type: AlertType, amount: float):
    classifier = EventClassifier(large_transaction_threshold=amount)

    if alert_type == AlertType.BALANCE_CHANGE:
        return classifier.classify_balance_change(monitored, BalanceChange(old=100.0, new=100.0 + amount))

    delta = -amount if alert_type == AlertType.TRANSACTION_SENT else amount
    details = TransactionDetails(
        signature=TEST_SIGNATURE,
        success=True,
        fee=0.000005,
        balance_changes={monitored.address: delta},
    )
    alerts = classifier.classify_transaction(monitored, SignatureInfo(signature=TEST_SIGNATURE), details)
    for alert in alerts:
        if alert.type == alert_type:
            return alert

    # TOKEN_TRANSFER / NEW_TRANSACTION: relabel the primary alert
    alerts[0].type = alert_type
    return alerts[0]


async def send(dispatcher: Dispatcher, alert) -> None:
    dispatcher.dispatch(alert)
    await dispatcher.close()


def main():
    parser = argparse.ArgumentParser(description="Send a synthetic alert to configured destinations")
    parser.add_argument("--wallets", default=str(config.wallets_path), help="Wallets JSON file")
    parser.add_argument("--webhooks", default=str(config.webhooks_path), help="Webhook subscriptions JSON file")
    parser.add_argument("--wallet", default=None, help="Wallet name or address (default: first wallet)")
    parser.add_argument(
        "--type",
        default=AlertType.LARGE_TRANSACTION.value,
        choices=[t.value for t in AlertType],
        help="Alert type to send",
    )
    parser.add_argument("--amount", type=float, default=config.large_transaction_threshold, help="Amount in native units")
    parser.add_argument("--dry-run", action="store_true", help="Log Telegram message and skip webhooks")

    args = parser.parse_args()

    env_path = project_root / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    try:
        registry = AddressRegistry.from_file(args.wallets)
        monitored = registry.get(args.wallet) if args.wallet else next(iter(registry), None)
        if monitored is None:
            print(f"Wallet not found: {args.wallet or '(registry is empty)'}")
            sys.exit(1)

        webhooks = WebhookDispatcher()
        if not args.dry_run and Path(args.webhooks).exists():
            for subscription in load_webhook_subscriptions(args.webhooks):
                webhooks.register(subscription)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)

    dispatcher = Dispatcher(webhooks=webhooks)
    dispatcher.feed.subscribe(AlertLogger().log)

    telegram = TelegramAlerts.from_env(dry_run=args.dry_run)
    if telegram:
        # Blocking send so the script doesn't exit before Telegram answers
        dispatcher.feed.subscribe(telegram.send_alert)

    alert = build_test_alert(monitored, AlertType.parse(args.type), args.amount)
    matching = len(webhooks.matching(alert))

    print(f"\n{'='*60}")
    print(f"TEST ALERT - {alert.type.value} for {monitored.label}")
    print(f"{'='*60}")
    print(f"Matching webhooks: {matching}")
    print(f"Telegram:          {'dry run' if args.dry_run else ('yes' if telegram else 'not configured')}")
    print(f"{'='*60}\n")

    asyncio.run(send(dispatcher, alert))

    stats = dispatcher.stats
    print(f"\nWebhook deliveries: {stats.webhook_deliveries}, failures: {stats.delivery_errors}")
    sys.exit(1 if stats.delivery_errors else 0)


if __name__ == "__main__":
    main()
