"""
Alert Logger

Feed subscriber that writes one human-readable line per alert, keeps the
alerts in memory and optionally appends the lines to a file.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple, Union

from ..config import config
from ..models import Alert, AlertType, BalanceChangeAlert, TransactionAlert
from ..models.alert import utc_now_iso

logger = logging.getLogger(__name__)


def _clock(timestamp: str) -> str:
    try:
        return datetime.fromisoformat(timestamp).strftime("%H:%M:%S")
    except (TypeError, ValueError):
        return timestamp


def format_alert(alert: Alert, unit: str = None) -> str:
    """Single-line summary of an alert."""
    unit = unit or config.native_unit
    time_str = _clock(alert.timestamp)
    wallet = f"{alert.address.icon} {alert.address.name}"

    if isinstance(alert, BalanceChangeAlert):
        change = alert.balance.change
        sign = "+" if change > 0 else ""
        return (
            f"[{time_str}] {wallet} Balance: {alert.balance.old:.4f} → {alert.balance.new:.4f} "
            f"({sign}{change:.4f} {unit})"
        )

    amount = alert.transaction.amount if isinstance(alert, TransactionAlert) else None
    amount_str = f"{amount:.4f}" if amount is not None else "?"

    if alert.type == AlertType.TRANSACTION_RECEIVED:
        return f"[{time_str}] {wallet} ← Received {amount_str} {unit}"
    if alert.type == AlertType.TRANSACTION_SENT:
        return f"[{time_str}] {wallet} → Sent {amount_str} {unit}"
    if alert.type == AlertType.LARGE_TRANSACTION:
        return f"[{time_str}] 🚨 {wallet} Large transaction: {amount_str} {unit}"
    if alert.type == AlertType.TOKEN_TRANSFER:
        return f"[{time_str}] {wallet} 🪙 Token transfer detected"
    return f"[{time_str}] {wallet} {alert.type.value}"


class AlertLogger:
    """
    Usage:
        alert_logger = AlertLogger("logs/alerts.log")
        feed.subscribe(alert_logger.log)
    """

    def __init__(self, output_path: Optional[Union[str, Path]] = None, unit: str = None):
        self.output_path = Path(output_path) if output_path else None
        self.unit = unit or config.native_unit
        self._alerts: List[Tuple[str, Alert]] = []

        if self.output_path:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def log(self, alert: Alert) -> str:
        self._alerts.append((utc_now_iso(), alert))

        line = format_alert(alert, self.unit)
        logger.info(line)

        if self.output_path:
            try:
                with open(self.output_path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.error(f"Could not write alert log {self.output_path}: {e}")

        return line

    __call__ = log

    def get_alerts(self) -> List[Tuple[str, Alert]]:
        """(logged_at, alert) pairs in arrival order."""
        return list(self._alerts)

    def clear(self) -> None:
        self._alerts.clear()
