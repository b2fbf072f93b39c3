"""
Address Registry

Ordered list of monitored addresses, plus loaders for the wallet and
webhook JSON files.

wallets.json entries accept either the tracker keys
    {"name": "whale", "emoji": "🐋", "trackedWalletAddress": "...", "alertsOnFeed": true}
or
    {"display_name": "whale", "icon": "🐋", "address": "...", "deliver_to_feed": true}

webhooks.json entries:
    {"url": "https://...", "events": ["LARGE_TRANSACTION"], "wallets": ["whale"],
     "filters": {"minAmount": 10}, "headers": {"Authorization": "Bearer $WEBHOOK_TOKEN"}}
"""

import json
import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from ..errors import ConfigurationError
from ..models import MonitoredAddress
from ..models.address import DEFAULT_ICON
from ..alerts.webhooks import ALL_ADDRESSES, WebhookSubscription

logger = logging.getLogger(__name__)


def _read_json_list(path: Union[str, Path], what: str) -> list:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"{what} file not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {what} file {path}: {e}")

    if not isinstance(data, list):
        raise ConfigurationError(f"{what} file {path} must contain a JSON list")
    return data


class AddressRegistry:
    """Monitored addresses in registry order. Read-only after construction."""

    def __init__(self, addresses: Iterable[MonitoredAddress]):
        self._addresses: List[MonitoredAddress] = []
        seen = set()
        for monitored in addresses:
            if monitored.address in seen:
                raise ConfigurationError(f"Duplicate monitored address: {monitored.address}")
            seen.add(monitored.address)
            self._addresses.append(monitored)

    @classmethod
    def from_entries(cls, entries: Iterable[dict]) -> "AddressRegistry":
        return cls(parse_wallet_entry(entry, index) for index, entry in enumerate(entries))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AddressRegistry":
        """
        Load wallets from a JSON file.

        Raises:
            ConfigurationError: missing file, malformed JSON/entries, duplicates
        """
        registry = cls.from_entries(_read_json_list(path, "Wallets"))
        logger.info(f"Loaded {len(registry)} wallets from {path}")
        return registry

    def __iter__(self) -> Iterator[MonitoredAddress]:
        return iter(self._addresses)

    def __len__(self) -> int:
        return len(self._addresses)

    @property
    def addresses(self) -> List[MonitoredAddress]:
        return list(self._addresses)

    def get(self, address_or_name: str) -> Optional[MonitoredAddress]:
        """Find by exact address, then by case-insensitive display name."""
        for monitored in self._addresses:
            if monitored.address == address_or_name:
                return monitored
        lowered = address_or_name.lower()
        for monitored in self._addresses:
            if monitored.display_name.lower() == lowered:
                return monitored
        return None


def parse_wallet_entry(entry: dict, index: int = 0) -> MonitoredAddress:
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Wallet entry #{index} must be an object")

    address = entry.get("address") or entry.get("trackedWalletAddress")
    if not address or not isinstance(address, str):
        raise ConfigurationError(f"Wallet entry #{index} has no address")

    name = entry.get("display_name") or entry.get("name") or address[:8]
    icon = entry.get("icon") or entry.get("emoji") or DEFAULT_ICON

    deliver = entry.get("deliver_to_feed", entry.get("alertsOnFeed", True))
    # Only an explicit false turns delivery off
    deliver_to_feed = deliver is not False

    return MonitoredAddress(
        address=address.strip(),
        display_name=str(name),
        icon=str(icon),
        deliver_to_feed=deliver_to_feed,
    )


def parse_webhook_entry(entry: dict, index: int = 0) -> WebhookSubscription:
    """Build a subscription from a webhooks.json entry, expanding $VARS."""
    if not isinstance(entry, dict):
        raise ConfigurationError(f"Webhook entry #{index} must be an object")

    url = os.path.expandvars(str(entry.get("url") or ""))
    filters = entry.get("filters") or {}
    min_amount = entry.get("min_amount", filters.get("minAmount"))
    addresses = entry.get("addresses", entry.get("wallets", ALL_ADDRESSES))
    headers = {
        str(k): os.path.expandvars(str(v))
        for k, v in (entry.get("headers") or {}).items()
    }

    return WebhookSubscription.create(
        url=url,
        events=entry.get("events"),
        addresses=addresses,
        min_amount=min_amount,
        headers=headers,
    )


def load_webhook_subscriptions(path: Union[str, Path]) -> List[WebhookSubscription]:
    """
    Load webhook subscriptions from a JSON file.

    Raises:
        ConfigurationError: missing file, malformed JSON, bad URL or event name
    """
    subscriptions = [
        parse_webhook_entry(entry, index)
        for index, entry in enumerate(_read_json_list(path, "Webhooks"))
    ]
    logger.info(f"Loaded {len(subscriptions)} webhook subscriptions from {path}")
    return subscriptions
