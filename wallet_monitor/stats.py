"""
Run Statistics

Process-lifetime counters. Reset only by restarting the process.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict

from .models import AlertType


@dataclass
class RunStats:
    cycles_run: int = 0
    addresses_polled: int = 0
    transactions_seen: int = 0
    alerts_by_type: Counter = field(default_factory=Counter)
    alerts_filtered: int = 0
    poll_errors: int = 0
    detail_errors: int = 0
    subscriber_errors: int = 0
    webhook_deliveries: int = 0
    delivery_errors: int = 0

    def record_alert(self, alert_type: AlertType) -> None:
        self.alerts_by_type[alert_type.value] += 1

    @property
    def alerts_emitted(self) -> int:
        return sum(self.alerts_by_type.values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycles_run": self.cycles_run,
            "addresses_polled": self.addresses_polled,
            "transactions_seen": self.transactions_seen,
            "alerts_emitted": self.alerts_emitted,
            "alerts_by_type": dict(self.alerts_by_type),
            "alerts_filtered": self.alerts_filtered,
            "poll_errors": self.poll_errors,
            "detail_errors": self.detail_errors,
            "subscriber_errors": self.subscriber_errors,
            "webhook_deliveries": self.webhook_deliveries,
            "delivery_errors": self.delivery_errors,
        }
