"""
Local Alert Feed

In-process publish/subscribe for alerts and monitor errors.

Two subscription granularities: every alert, or alerts of one AlertType.
Subscribers are called synchronously; a coroutine returned by a subscriber
is scheduled as a task. A failing subscriber is logged and skipped.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from ..models import Alert, AlertType
from ..models.alert import utc_now_iso

logger = logging.getLogger(__name__)

AlertHandler = Callable[[Alert], Any]


@dataclass
class MonitorErrorEvent:
    """Published on the error channel when a poll or delivery fails."""
    error: BaseException
    address: Optional[str] = None
    timestamp: str = field(default_factory=utc_now_iso)

    @property
    def message(self) -> str:
        prefix = f"{self.address}: " if self.address else ""
        return f"{prefix}{type(self.error).__name__}: {self.error}"


ErrorHandler = Callable[[MonitorErrorEvent], Any]


class AlertFeed:
    """Alert and error channels."""

    def __init__(self):
        self._all: List[AlertHandler] = []
        self._by_type: Dict[AlertType, List[AlertHandler]] = {}
        self._error_handlers: List[ErrorHandler] = []
        self._tasks: Set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # Subscription
    # -------------------------------------------------------------------------

    def subscribe(self, handler: AlertHandler, alert_type: Optional[AlertType] = None) -> Callable[[], None]:
        """
        Subscribe to every alert, or to one alert type.

        Returns:
            A callable that removes the subscription
        """
        if alert_type is None:
            handlers = self._all
        else:
            handlers = self._by_type.setdefault(AlertType.parse(alert_type), [])
        handlers.append(handler)

        def unsubscribe():
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscribe_errors(self, handler: ErrorHandler) -> Callable[[], None]:
        self._error_handlers.append(handler)

        def unsubscribe():
            if handler in self._error_handlers:
                self._error_handlers.remove(handler)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._all) + sum(len(h) for h in self._by_type.values())

    # -------------------------------------------------------------------------
    # Publishing
    # -------------------------------------------------------------------------

    def publish(self, alert: Alert) -> int:
        """
        Deliver an alert to generic then type-specific subscribers.

        Returns:
            Number of subscribers that raised
        """
        failures = 0
        handlers = list(self._all) + list(self._by_type.get(alert.type, []))
        for handler in handlers:
            if not self._call(handler, alert, f"alert subscriber for {alert.type.value}"):
                failures += 1
        return failures

    def publish_error(self, error: BaseException, address: Optional[str] = None) -> MonitorErrorEvent:
        event = MonitorErrorEvent(error=error, address=address)
        for handler in list(self._error_handlers):
            self._call(handler, event, "error subscriber")
        return event

    def _call(self, handler: Callable, arg: Any, description: str) -> bool:
        try:
            result = handler(arg)
            if inspect.isawaitable(result):
                self._schedule(result, description)
            return True
        except Exception as e:
            logger.error(f"Error in {description}: {e}")
            return False

    def _schedule(self, awaitable, description: str) -> None:
        async def runner():
            try:
                await awaitable
            except Exception as e:
                logger.error(f"Error in async {description}: {e}")

        task = asyncio.get_running_loop().create_task(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for scheduled coroutine subscribers to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
