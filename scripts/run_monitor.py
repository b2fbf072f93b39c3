#!/usr/bin/env python3
"""
Wallet Monitor Service - CLI Entry Point
========================================

Polls the wallets in wallets.json and sends alerts for new activity.

Architecture:
    - Seed poll per wallet at startup (existing history never alerts)
    - Every --poll seconds: newest signatures + balance per wallet, diffed
      against the last poll, classified, filtered and dispatched
    - Alerts go to the console/alert log, Telegram (if configured) and
      every matching webhook in webhooks.json

Setup:
    cp data/wallets.example.json data/wallets.json      # required
    cp data/webhooks.example.json data/webhooks.json    # optional
    cp .env.example .env                                # RPC URL, Telegram

Usage:
    # Start monitor
    python scripts/run_monitor.py

    # Dry run (Telegram messages logged, not sent; webhooks disabled)
    python scripts/run_monitor.py --dry-run

    # Custom files and timing
    python scripts/run_monitor.py --wallets my_wallets.json --poll 30 --threshold 25
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

from wallet_monitor.alerts import AlertLogger, Dispatcher, TelegramAlerts, WebhookDispatcher
from wallet_monitor.api import SolanaRPCClient
from wallet_monitor.config import config
from wallet_monitor.core import AddressRegistry, WalletMonitor, load_webhook_subscriptions
from wallet_monitor.errors import ConfigurationError

_env_path = project_root / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


def setup_logging(log_level: str = config.log_level, log_file: Path = config.log_file):
    """Configure logging for the monitor service."""
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # Date-stamped log file (e.g., logs/monitor_2026-01-18.log)
    date_str = datetime.now().strftime("%Y-%m-%d")
    dated_log_file = log_path.parent / f"{log_path.stem}_{date_str}{log_path.suffix}"

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

    file_handler = logging.FileHandler(dated_log_file)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Reduce noise from HTTP libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    root_logger.info(f"Logging to: {dated_log_file}")


def build_monitor(args):
    """
    Wire registry, ledger client, dispatcher and sinks from CLI args.

    Returns:
        (monitor, telegram) - telegram is None when not configured
    """
    registry = AddressRegistry.from_file(args.wallets)

    webhooks = WebhookDispatcher()
    webhooks_path = Path(args.webhooks)
    if args.dry_run:
        logging.getLogger(__name__).info("Dry run: webhooks disabled")
    elif webhooks_path.exists():
        for subscription in load_webhook_subscriptions(webhooks_path):
            webhooks.register(subscription)

    monitor = WalletMonitor(
        ledger=SolanaRPCClient(url=args.rpc_url),
        addresses=registry,
        poll_interval=args.poll,
        large_transaction_threshold=args.threshold,
        recent_limit=args.limit,
        dispatcher=Dispatcher(webhooks=webhooks),
    )

    alert_logger = AlertLogger(args.alert_log)
    monitor.on(alert_logger.log)

    telegram = TelegramAlerts.from_env(dry_run=args.dry_run)
    if telegram:
        monitor.on(telegram.handle_alert)

    monitor.on_error(lambda event: logging.getLogger(__name__).warning(f"Monitor error: {event.message}"))
    return monitor, telegram


async def run(monitor: WalletMonitor, telegram: TelegramAlerts = None):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, monitor.stop)
        except NotImplementedError:
            # Windows: fall back to KeyboardInterrupt
            pass

    if telegram:
        telegram.send_service_status("started", f"Watching {len(monitor.registry)} wallets")

    try:
        await monitor.run_forever()
    finally:
        await monitor.close()
        if telegram:
            telegram.close()
            telegram.send_service_status("stopped")


def main():
    parser = argparse.ArgumentParser(
        description='Wallet Monitor Service',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_monitor.py                     # Start monitor
  python scripts/run_monitor.py --dry-run           # No Telegram sends, no webhooks
  python scripts/run_monitor.py --poll 30 --limit 10
        """
    )

    parser.add_argument(
        '--wallets',
        default=str(config.wallets_path),
        help=f'Wallets JSON file (default: {config.wallets_path})'
    )
    parser.add_argument(
        '--webhooks',
        default=str(config.webhooks_path),
        help=f'Webhook subscriptions JSON file, optional (default: {config.webhooks_path})'
    )
    parser.add_argument(
        '--poll',
        type=float,
        default=config.poll_interval_sec,
        help=f'Poll interval in seconds (default: {config.poll_interval_sec})'
    )
    parser.add_argument(
        '--threshold',
        type=float,
        default=config.large_transaction_threshold,
        help=f'Large transaction threshold in {config.native_unit} (default: {config.large_transaction_threshold})'
    )
    parser.add_argument(
        '--limit',
        type=int,
        default=config.recent_transaction_limit,
        help=f'Recent signatures fetched per wallet per poll (default: {config.recent_transaction_limit})'
    )
    parser.add_argument(
        '--rpc-url',
        default=None,
        help='Solana RPC URL (default: $SOLANA_RPC_URL or mainnet-beta)'
    )
    parser.add_argument(
        '--alert-log',
        default=None,
        help='Append one line per alert to this file'
    )
    parser.add_argument(
        '--log-file',
        default=str(config.log_file),
        help=f'Log file (default: {config.log_file})'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Log Telegram messages instead of sending them and skip webhooks'
    )
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default=config.log_level,
        help=f'Log level (default: {config.log_level})'
    )

    args = parser.parse_args()

    setup_logging(args.log_level, Path(args.log_file))
    logger = logging.getLogger(__name__)

    try:
        monitor, telegram = build_monitor(args)
    except ConfigurationError as e:
        print(f"\nConfiguration error: {e}")
        sys.exit(1)

    print("\n" + "=" * 60)
    print("WALLET MONITOR SERVICE")
    print("=" * 60)
    print(f"Wallets:        {len(monitor.registry)} ({args.wallets})")
    print(f"Webhooks:       {len(monitor.dispatcher.webhooks.subscriptions)}")
    print(f"Poll interval:  {args.poll} seconds")
    print(f"Large tx:       >= {args.threshold} {config.native_unit}")
    print(f"Dry run:        {args.dry_run}")
    print(f"Log level:      {args.log_level}")
    print("=" * 60)
    print("\nPress Ctrl+C to stop\n")

    try:
        asyncio.run(run(monitor, telegram))
    except KeyboardInterrupt:
        print("\n\nMonitor stopped by user")
    except Exception as e:
        logger.exception(f"Monitor service error: {e}")
        sys.exit(1)

    stats = monitor.get_stats()
    logger.info(
        f"Final stats: {stats['cycles_run']} cycles, {stats['alerts_emitted']} alerts, "
        f"{stats['poll_errors']} poll errors, {stats['delivery_errors']} delivery errors"
    )


if __name__ == "__main__":
    main()
