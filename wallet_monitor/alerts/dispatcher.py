"""
Alert Dispatcher

Fans an accepted alert out to the local feed and to matching webhooks.

Local delivery happens inline. Webhook delivery runs as a background task
so the poll cycle never waits on remote endpoints; call drain() to wait for
outstanding deliveries (shutdown, tests).
"""

import asyncio
import logging
from typing import List, Optional, Set

from ..stats import RunStats
from ..models import Alert
from .feed import AlertFeed
from .webhooks import WebhookDispatcher, WebhookSubscription

logger = logging.getLogger(__name__)


class Dispatcher:

    def __init__(
        self,
        feed: Optional[AlertFeed] = None,
        webhooks: Optional[WebhookDispatcher] = None,
        stats: Optional[RunStats] = None,
    ):
        self.feed = feed or AlertFeed()
        self.webhooks = webhooks or WebhookDispatcher()
        self.stats = stats or RunStats()
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, alert: Alert) -> None:
        """Publish locally, then start the webhook fan-out. Never raises."""
        self.stats.record_alert(alert.type)

        # Webhook bodies are taken before local subscribers can touch the alert
        targets = self.webhooks.matching(alert)
        payload = alert.to_dict() if targets else None

        failures = self.feed.publish(alert)
        if failures:
            self.stats.subscriber_errors += failures

        if not targets:
            return

        try:
            task = asyncio.get_running_loop().create_task(self._deliver_webhooks(alert, payload, targets))
        except RuntimeError:
            logger.error(f"No running event loop, webhooks skipped for {alert.type.value}")
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver_webhooks(self, alert: Alert, payload: dict, targets: List[WebhookSubscription]) -> None:
        try:
            failures = await self.webhooks.deliver(alert, payload, targets)
        except Exception as e:
            logger.exception(f"Webhook fan-out failed for {alert.type.value}: {e}")
            self.stats.delivery_errors += len(targets)
            self.feed.publish_error(e, alert.address.address)
            return

        self.stats.webhook_deliveries += len(targets) - len(failures)
        self.stats.delivery_errors += len(failures)
        for failure in failures:
            self.feed.publish_error(failure, alert.address.address)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight webhook deliveries and async subscribers."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self.feed.drain()

    async def close(self) -> None:
        await self.drain()
        await self.webhooks.close()
