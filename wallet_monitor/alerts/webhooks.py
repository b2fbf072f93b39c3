"""
Webhook Delivery
================

Outbound JSON POST of alerts to registered endpoints.

Each subscription selects alerts by type, by address (or display name) and by
an optional minimum amount. Deliveries for one alert run concurrently and are
settled together; a failing endpoint never affects the others.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Union
from urllib.parse import urlparse

import aiohttp

from ..config import config
from ..errors import ConfigurationError, DeliveryFailure
from ..models import Alert, AlertType

logger = logging.getLogger(__name__)

ALL_ADDRESSES = "all"


def validate_webhook_url(url: str) -> str:
    """Return the URL if it is an absolute http(s) URL, else raise ConfigurationError."""
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError("Webhook URL is required")
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigurationError(f"Malformed webhook URL: {url!r}")
    return url.strip()


@dataclass(frozen=True)
class WebhookSubscription:
    """A registered webhook endpoint. Read-only once registered."""
    url: str
    events: FrozenSet[AlertType] = field(default_factory=lambda: frozenset(AlertType))
    addresses: Union[str, FrozenSet[str]] = ALL_ADDRESSES
    min_amount: Optional[float] = None
    headers: Dict[str, str] = field(default_factory=dict, hash=False)

    @classmethod
    def create(
        cls,
        url: str,
        events: Optional[Iterable[Union[str, AlertType]]] = None,
        addresses: Union[str, Iterable[str], None] = ALL_ADDRESSES,
        min_amount: Optional[float] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> "WebhookSubscription":
        """
        Build a validated subscription.

        Args:
            url: Absolute http(s) endpoint
            events: Alert types to deliver (default: all)
            addresses: "all", or addresses / display names to deliver for
            min_amount: Skip transaction alerts moving less than this
            headers: Extra request headers (auth etc.)

        Raises:
            ConfigurationError: on a malformed URL, unknown event or bad amount
        """
        url = validate_webhook_url(url)

        if events is None:
            parsed_events = frozenset(AlertType)
        else:
            try:
                parsed_events = frozenset(AlertType.parse(e) for e in events)
            except ValueError as e:
                raise ConfigurationError(f"Unknown alert type for webhook {url}: {e}")

        if addresses is None or addresses == ALL_ADDRESSES:
            parsed_addresses: Union[str, FrozenSet[str]] = ALL_ADDRESSES
        elif isinstance(addresses, str):
            parsed_addresses = frozenset([addresses])
        else:
            parsed_addresses = frozenset(addresses)

        if min_amount is not None:
            try:
                min_amount = float(min_amount)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Invalid min_amount for webhook {url}: {min_amount!r}")

        return cls(
            url=url,
            events=parsed_events,
            addresses=parsed_addresses,
            min_amount=min_amount,
            headers={str(k): str(v) for k, v in (headers or {}).items()},
        )

    def matches(self, alert: Alert) -> bool:
        """Type, address and minimum-amount checks. All must pass."""
        if alert.type not in self.events:
            return False

        if self.addresses != ALL_ADDRESSES:
            if alert.address.address not in self.addresses and alert.address.name not in self.addresses:
                return False

        amount = alert.amount
        if self.min_amount is not None and amount is not None and amount < self.min_amount:
            return False

        return True

    @property
    def host(self) -> str:
        """Endpoint host, for logging without paths or tokens."""
        return urlparse(self.url).netloc


class WebhookDispatcher:
    """
    Sends alerts to every matching subscription.

    Owns an aiohttp session unless one is supplied.
    """

    def __init__(
        self,
        subscriptions: Optional[List[WebhookSubscription]] = None,
        timeout: float = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.subscriptions: List[WebhookSubscription] = list(subscriptions or [])
        self.timeout = timeout or config.webhook_timeout_sec
        self._session = session
        self._owns_session = session is None

    def register(self, subscription: WebhookSubscription) -> WebhookSubscription:
        self.subscriptions.append(subscription)
        logger.info(
            f"Registered webhook {subscription.host} "
            f"({len(subscription.events)} event types, addresses: "
            f"{subscription.addresses if subscription.addresses == ALL_ADDRESSES else len(subscription.addresses)})"
        )
        return subscription

    def matching(self, alert: Alert) -> List[WebhookSubscription]:
        return [s for s in self.subscriptions if s.matches(alert)]

    async def _ensure_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def close(self):
        if self._session and self._owns_session:
            await self._session.close()
        self._session = None

    async def post(self, subscription: WebhookSubscription, payload: dict) -> None:
        """
        POST one payload to one endpoint.

        Raises:
            DeliveryFailure: on timeout, connection error or non-2xx status
        """
        await self._ensure_session()
        headers = {"Content-Type": "application/json", **subscription.headers}

        try:
            async with self._session.post(
                subscription.url,
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise DeliveryFailure(subscription.host, f"HTTP {response.status}")
        except asyncio.TimeoutError:
            raise DeliveryFailure(subscription.host, "timed out")
        except aiohttp.ClientError as e:
            raise DeliveryFailure(subscription.host, str(e) or type(e).__name__)

    async def deliver(
        self,
        alert: Alert,
        payload: Optional[dict] = None,
        targets: Optional[List[WebhookSubscription]] = None,
    ) -> List[DeliveryFailure]:
        """
        Deliver an alert to all matching subscriptions concurrently.

        Args:
            alert: The alert being delivered
            payload: JSON body taken earlier (defaults to alert.to_dict())
            targets: Subscriptions matched earlier (defaults to matching(alert))

        Returns:
            One DeliveryFailure per endpoint that failed (empty on full success)
        """
        if targets is None:
            targets = self.matching(alert)
        if not targets:
            return []

        if payload is None:
            payload = alert.to_dict()
        results = await asyncio.gather(
            *(self.post(subscription, payload) for subscription in targets),
            return_exceptions=True,
        )

        failures = []
        for subscription, result in zip(targets, results):
            if isinstance(result, DeliveryFailure):
                failures.append(result)
            elif isinstance(result, Exception):
                failures.append(DeliveryFailure(subscription.host, f"{type(result).__name__}: {result}"))
            elif isinstance(result, BaseException):
                # CancelledError and friends must not be swallowed
                raise result

        for failure in failures:
            logger.error(f"Webhook error ({failure.destination}) for {alert.type.value}: {failure.reason}")

        delivered = len(targets) - len(failures)
        if delivered:
            logger.debug(f"Delivered {alert.type.value} to {delivered}/{len(targets)} webhooks")

        return failures
