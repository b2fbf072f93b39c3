"""
Monitor Service

Main polling loop that, for every monitored address in registry order:
1. Fetches the most recent signatures and the current balance
2. Diffs them against the stored cursor (new transactions, balance change)
3. Fetches detail for each new transaction, oldest first, and classifies it
4. Runs each alert through the address's filters
5. Dispatches accepted alerts to the local feed and webhooks

Addresses are polled sequentially to keep the upstream request rate bounded.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from ..api.ledger import LedgerClient
from ..alerts.dispatcher import Dispatcher
from ..alerts.feed import AlertFeed
from ..alerts.webhooks import ALL_ADDRESSES, WebhookSubscription
from ..config import config
from ..errors import LedgerError
from ..models import Alert, AlertType, MonitoredAddress, MonitorState, SignatureInfo, TransactionDetails
from ..stats import RunStats
from .classifier import EventClassifier
from .detector import ChangeSet, detect_changes, seed_cursor
from .filters import AlertFilter, FilterChain
from .registry import AddressRegistry

logger = logging.getLogger(__name__)


class WalletMonitor:
    """
    Poll-based wallet activity monitor.

    Cursors are seeded at start() from each address's current newest
    signature and balance, so activity from before startup never alerts.
    Each cycle then only reports what appeared after the cursor.

    Alerts are published to the local feed inline; webhook calls run in the
    background so a slow endpoint never stalls the cycle.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        addresses: Union[AddressRegistry, Iterable[MonitoredAddress]],
        poll_interval: float = None,
        large_transaction_threshold: float = None,
        recent_limit: int = None,
        balance_epsilon: float = None,
        dispatcher: Optional[Dispatcher] = None,
    ):
        """
        Initialize the monitor.

        Args:
            ledger: Ledger client used for all chain queries
            addresses: Registry (or iterable) of addresses to watch
            poll_interval: Seconds between cycles
            large_transaction_threshold: Native amount that triggers LARGE_TRANSACTION
            recent_limit: Signatures fetched per address per cycle
            balance_epsilon: Smallest reported balance change
            dispatcher: Alert dispatcher (default: new feed, no webhooks)
        """
        self.ledger = ledger
        self.registry = addresses if isinstance(addresses, AddressRegistry) else AddressRegistry(addresses)

        self.poll_interval = poll_interval if poll_interval is not None else config.poll_interval_sec
        self.recent_limit = recent_limit or config.recent_transaction_limit
        self.balance_epsilon = balance_epsilon if balance_epsilon is not None else config.balance_epsilon

        self.dispatcher = dispatcher or Dispatcher()
        self.stats: RunStats = self.dispatcher.stats
        self.classifier = EventClassifier(large_transaction_threshold)
        self.filters = FilterChain(resolve=self.registry.get)
        self.state = MonitorState()

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._wakeup: Optional[asyncio.Event] = None

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    @property
    def feed(self) -> AlertFeed:
        return self.dispatcher.feed

    @property
    def is_running(self) -> bool:
        return self._running

    def register_webhook(
        self,
        url: str,
        events: Optional[Iterable[Union[str, AlertType]]] = None,
        addresses: Union[str, Iterable[str]] = ALL_ADDRESSES,
        min_amount: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> WebhookSubscription:
        """
        Register a webhook for alerts.

        Raises:
            ConfigurationError: on a malformed URL or unknown event type
        """
        subscription = WebhookSubscription.create(
            url=url,
            events=events,
            addresses=addresses,
            min_amount=min_amount,
            headers=headers,
        )
        return self.dispatcher.webhooks.register(subscription)

    def add_filter(self, address_or_name: str, predicate: AlertFilter) -> None:
        """Add a custom alert filter for one address (by address or display name)."""
        self.filters.add_filter(address_or_name, predicate)

    def on(self, handler: Callable[[Alert], Any], alert_type: Optional[AlertType] = None) -> Callable[[], None]:
        """Subscribe to all alerts, or one alert type. Returns an unsubscribe callable."""
        return self.feed.subscribe(handler, alert_type)

    def on_error(self, handler: Callable) -> Callable[[], None]:
        return self.feed.subscribe_errors(handler)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self):
        """Seed cursors for every address, then start the polling loop. No-op if running."""
        if self._running:
            return

        logger.info("Starting wallet monitor...")
        self._running = True
        # Each run owns its stop event; a loop from an earlier run only sees its own
        wakeup = self._wakeup = asyncio.Event()

        previous = self._task
        if previous is not None and not previous.done():
            logger.info("Waiting for the previous polling loop to exit")
            await previous
        if wakeup.is_set():
            return

        for monitored in self.registry:
            if wakeup.is_set():
                return
            try:
                await self._seed_address(monitored)
            except LedgerError as e:
                # Seeded on its next successful poll instead
                self.stats.poll_errors += 1
                logger.warning(f"Initial poll failed for {monitored.display_name}: {e}")
                self.feed.publish_error(e, monitored.address)

        if wakeup.is_set():
            return

        self._task = asyncio.get_running_loop().create_task(self._monitor_loop(wakeup))
        logger.info(f"Monitoring {len(self.registry)} wallets every {self.poll_interval}s")

    def stop(self):
        """Stop after the in-flight cycle. In-flight requests are not cancelled."""
        if not self._running:
            return
        self._running = False
        if self._wakeup:
            self._wakeup.set()
        logger.info("Wallet monitor stopped")

    async def wait_stopped(self):
        """Wait for the loop to exit and outstanding deliveries to settle."""
        task = self._task
        if task:
            await task
            if self._task is task:
                self._task = None
        await self.dispatcher.drain()

    async def close(self):
        """Stop, wait, and release HTTP sessions."""
        self.stop()
        await self.wait_stopped()
        await self.dispatcher.close()
        await self.ledger.close()

    async def run_forever(self):
        """Start and block until stop() is called."""
        await self.start()
        await self.wait_stopped()

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    async def _monitor_loop(self, wakeup: asyncio.Event):
        """Main monitoring loop. Runs until its own stop event is set."""
        try:
            while not wakeup.is_set():
                await self.run_cycle()
                if wakeup.is_set():
                    break
                await self._sleep(wakeup, self.poll_interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Monitor loop failed, stopping: {e}")
            self.feed.publish_error(e)
            wakeup.set()
            if self._wakeup is wakeup:
                self._running = False

    async def _sleep(self, wakeup: asyncio.Event, seconds: float):
        """Sleep between cycles, waking early on stop()."""
        try:
            await asyncio.wait_for(wakeup.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_cycle(self):
        """
        Poll every address once.

        An error for one address is counted, logged and published on the
        error channel; the remaining addresses are still polled.
        """
        for monitored in self.registry:
            try:
                await self.check_address(monitored)
            except LedgerError as e:
                self.stats.poll_errors += 1
                logger.warning(f"Poll failed for {monitored.display_name}: {e}")
                self.feed.publish_error(e, monitored.address)
            except Exception as e:
                self.stats.poll_errors += 1
                logger.exception(f"Unexpected error checking {monitored.display_name}: {e}")
                self.feed.publish_error(e, monitored.address)

        self.stats.cycles_run += 1

    async def _seed_address(self, monitored: MonitoredAddress):
        recent = await self.ledger.get_recent_transactions(monitored.address, 1)
        balance = await self.ledger.get_balance(monitored.address)

        cursor = seed_cursor(recent, balance)
        self.state.update(monitored.address, cursor)

        last = cursor.last_seen_tx_id
        logger.debug(
            f"Seeded {monitored.display_name}: last tx {last[:8] + '...' if last else 'none'}, "
            f"balance {balance:.4f} {config.native_unit}"
        )

    async def check_address(self, monitored: MonitoredAddress) -> Optional[ChangeSet]:
        """
        Run the detect -> classify -> filter -> dispatch pipeline for one address.

        An address that has never been seeded is seeded instead.

        Returns:
            The ChangeSet applied, or None if the address was only seeded
        """
        cursor = self.state.get(monitored.address)
        if cursor is None:
            await self._seed_address(monitored)
            return None

        recent = await self.ledger.get_recent_transactions(monitored.address, self.recent_limit)
        balance = await self.ledger.get_balance(monitored.address)

        changes = detect_changes(cursor, recent, balance, self.balance_epsilon)
        # Commit the cursor before processing so nothing is alerted twice
        self.state.update(monitored.address, changes.cursor)
        self.stats.addresses_polled += 1

        last = cursor.last_seen_tx_id
        logger.debug(
            f"{monitored.display_name}: {len(recent)} recent txs, {len(changes.new_transactions)} new "
            f"(last: {last[:8] + '...' if last else 'none'})"
        )

        for signature in changes.new_transactions:
            self.stats.transactions_seen += 1
            details = await self._fetch_details(signature)
            for alert in self.classifier.classify_transaction(monitored, signature, details):
                self._emit(monitored, alert)

        if changes.balance_change is not None:
            alert = self.classifier.classify_balance_change(monitored, changes.balance_change)
            self._emit(monitored, alert)

        return changes

    async def _fetch_details(self, signature: SignatureInfo) -> Optional[TransactionDetails]:
        """Transaction detail, or None (generic alert) if it can't be fetched or parsed."""
        try:
            return await self.ledger.get_transaction_details(signature.signature)
        except (LedgerError, ValueError, TypeError, KeyError) as e:
            self.stats.detail_errors += 1
            logger.warning(f"Could not load details for {signature.signature[:8]}...: {e}")
            return None

    def _emit(self, monitored: MonitoredAddress, alert: Alert):
        """Filter then dispatch one alert."""
        if not self.filters.allows(monitored, alert):
            self.stats.alerts_filtered += 1
            logger.debug(f"Filtered {alert.type.value} for {monitored.display_name}")
            return

        logger.info(f"{monitored.label}: {alert.type.value}")
        self.dispatcher.dispatch(alert)

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> Dict[str, Any]:
        """Monitoring statistics."""
        return {
            "is_monitoring": self._running,
            "wallets_monitored": len(self.registry),
            "poll_interval": self.poll_interval,
            "webhooks_registered": len(self.dispatcher.webhooks.subscriptions),
            "last_checked": self.state.last_seen(),
            "current_balances": self.state.balances(),
            **self.stats.to_dict(),
        }

    def get_wallet_list(self) -> List[MonitoredAddress]:
        return self.registry.addresses
