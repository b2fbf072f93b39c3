"""
Alert Filtering

Determines whether an alert for a monitored address is delivered based on:
- The address's deliver-to-feed toggle (checked first, unconditional)
- An optional custom predicate registered for the address
"""

import logging
from typing import Callable, Dict, Optional

from ..models import Alert, MonitoredAddress

logger = logging.getLogger(__name__)

AlertFilter = Callable[[Alert], bool]


class FilterChain:
    """
    Per-address alert veto.

    Predicates are keyed by address; registering by display name is resolved
    through the `resolve` callback (normally the address registry).
    """

    def __init__(self, resolve: Optional[Callable[[str], Optional[MonitoredAddress]]] = None):
        self._filters: Dict[str, AlertFilter] = {}
        self._resolve = resolve

    def add_filter(self, address_or_name: str, predicate: AlertFilter) -> None:
        """
        Register the predicate for an address, replacing any previous one.

        Args:
            address_or_name: Address, or display name if a resolver is set
            predicate: Called once per candidate alert; False suppresses it
        """
        key = address_or_name
        if self._resolve:
            monitored = self._resolve(address_or_name)
            if monitored:
                key = monitored.address
        self._filters[key] = predicate
        logger.info(f"Added alert filter for {address_or_name}")

    def remove_filter(self, address_or_name: str) -> None:
        key = address_or_name
        if self._resolve:
            monitored = self._resolve(address_or_name)
            if monitored:
                key = monitored.address
        self._filters.pop(key, None)

    def has_filter(self, address: str) -> bool:
        return address in self._filters

    def allows(self, monitored: MonitoredAddress, alert: Alert) -> bool:
        """
        Check if an alert should be delivered.

        A predicate that raises is treated as a veto.
        """
        if not monitored.deliver_to_feed:
            return False

        predicate = self._filters.get(monitored.address)
        if predicate is None:
            return True

        try:
            return bool(predicate(alert))
        except Exception as e:
            logger.error(f"Alert filter for {monitored.display_name} raised, suppressing {alert.type.value}: {e}")
            return False
