"""
Telegram Alerts
===============

Telegram sink for wallet activity.

Subscribed to the local alert feed; selected alert types are rendered as
HTML and posted through the Bot API. Feed deliveries are queued on a single
background worker so the poll cycle never blocks on Telegram and messages
keep their dispatch order.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, FrozenSet, Optional
from zoneinfo import ZoneInfo

import requests

from ..config import config as monitor_config
from ..errors import ConfigurationError
from ..models import TRANSACTION_ALERT_TYPES, Alert, AlertType, BalanceChangeAlert, TransactionAlert

logger = logging.getLogger(__name__)

# Alert timestamps are shown in US Eastern
DISPLAY_TZ = ZoneInfo("America/New_York")

SEND_MESSAGE_URL = "https://api.telegram.org/bot{token}/sendMessage"
EXPLORER_TX_URL = "https://solscan.io/tx/{signature}"
EXPLORER_ACCOUNT_URL = "https://solscan.io/account/{address}"

DRY_RUN_MESSAGE_ID = 999999

DEFAULT_ALERT_TYPES = TRANSACTION_ALERT_TYPES


@dataclass
class AlertConfig:
    bot_token: str
    chat_id: str
    dry_run: bool = False
    max_message_length: int = 4000
    request_timeout: float = 10.0
    alert_types: FrozenSet[AlertType] = field(default_factory=lambda: DEFAULT_ALERT_TYPES)
    # Bot API allows ~30 msgs/sec; stay far below it
    min_message_interval: float = 1.0
    max_alerts_per_minute: int = 20


class _RateLimiter:
    """Sliding one-minute window plus a minimum gap between sends."""

    def __init__(self, min_interval: float, per_minute: int):
        self.min_interval = min_interval
        self.per_minute = per_minute
        self._sent: Deque[float] = deque()
        self._last_sent = 0.0

    def has_capacity(self) -> bool:
        cutoff = time.monotonic() - 60
        while self._sent and self._sent[0] <= cutoff:
            self._sent.popleft()
        return len(self._sent) < self.per_minute

    def wait_turn(self) -> None:
        remaining = self.min_interval - (time.monotonic() - self._last_sent)
        if remaining > 0:
            time.sleep(remaining)

    def record(self) -> None:
        self._last_sent = time.monotonic()
        self._sent.append(self._last_sent)


def _describe_request_error(error: requests.exceptions.RequestException) -> str:
    """Short, token-free description. The request URL embeds the bot token."""
    if isinstance(error, requests.exceptions.Timeout):
        return "timed out"
    if isinstance(error, requests.exceptions.HTTPError):
        status = error.response.status_code if error.response is not None else "unknown"
        return f"HTTP {status}"
    if isinstance(error, requests.exceptions.ConnectionError):
        return "connection error"
    return type(error).__name__


class TelegramAlerts:
    """
    Usage:
        telegram = TelegramAlerts.from_env()
        if telegram:
            monitor.on(telegram.handle_alert)
    """

    def __init__(self, config: AlertConfig):
        if not config.dry_run and not (config.bot_token and config.chat_id):
            raise ConfigurationError("Telegram needs a bot token and chat id (or dry run)")

        self.config = config
        self._limiter = _RateLimiter(config.min_message_interval, config.max_alerts_per_minute)
        self._lock = threading.Lock()
        self._worker: Optional[ThreadPoolExecutor] = None

    @classmethod
    def from_env(cls, dry_run: bool = False) -> Optional["TelegramAlerts"]:
        """TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID, or None if unset (dry run always works)."""
        token = monitor_config.telegram_bot_token
        chat_id = monitor_config.telegram_chat_id

        if dry_run:
            return cls(AlertConfig(bot_token=token or "", chat_id=chat_id or "", dry_run=True))

        if not token or not chat_id:
            logger.warning("Telegram disabled: TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID not set")
            return None

        return cls(AlertConfig(bot_token=token, chat_id=chat_id))

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _send_message(self, text: str, skip_rate_limit: bool = False) -> Optional[int]:
        """
        Post one HTML message.

        Args:
            text: HTML message body (truncated to the configured limit)
            skip_rate_limit: Bypass the per-minute window (operational messages)

        Returns:
            Telegram message_id, or None if dropped or failed
        """
        text = self._truncate_message(text)

        if self.config.dry_run:
            logger.info(f"[DRY RUN] Telegram message:\n{text}")
            return DRY_RUN_MESSAGE_ID

        with self._lock:
            if not skip_rate_limit and not self._limiter.has_capacity():
                logger.warning(f"Telegram alert dropped: {self.config.max_alerts_per_minute}/min limit reached")
                return None

            self._limiter.wait_turn()

            try:
                response = requests.post(
                    SEND_MESSAGE_URL.format(token=self.config.bot_token),
                    json={
                        "chat_id": self.config.chat_id,
                        "text": text,
                        "parse_mode": "HTML",
                        "disable_web_page_preview": True,
                    },
                    timeout=self.config.request_timeout,
                )
                response.raise_for_status()
                message_id = response.json().get("result", {}).get("message_id")
            except requests.exceptions.RequestException as e:
                reason = _describe_request_error(e)
                logger.error(f"Telegram send failed: {reason}")
                if reason == "HTTP 429":
                    logger.warning("Telegram is throttling this bot")
                return None
            except ValueError:
                logger.error("Telegram send failed: response was not JSON")
                return None

            self._limiter.record()

        logger.debug(f"Telegram message sent (message_id: {message_id})")
        return message_id

    def _enqueue(self, text: str) -> Future:
        """Send on the background worker. Order of calls is preserved."""
        if self._worker is None:
            self._worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="telegram")
        return self._worker.submit(self._send_message, text)

    def _truncate_message(self, text: str) -> str:
        limit = self.config.max_message_length
        if len(text) <= limit:
            return text
        return text[:limit - 20] + "\n... (truncated)"

    def close(self, wait: bool = True) -> None:
        """Stop the background worker, optionally flushing queued messages."""
        if self._worker is not None:
            self._worker.shutdown(wait=wait)
            self._worker = None

    # -------------------------------------------------------------------------
    # Formatting
    # -------------------------------------------------------------------------

    @staticmethod
    def _format_time(timestamp: str) -> str:
        try:
            ts = datetime.fromisoformat(timestamp)
        except (TypeError, ValueError):
            ts = datetime.now(timezone.utc)
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone(DISPLAY_TZ).strftime("%H:%M:%S %Z")

    def format_alert(self, alert: Alert) -> str:
        """HTML message for an alert."""
        unit = monitor_config.native_unit
        address = alert.address.address
        short = f"{address[:4]}...{address[-4:]}" if len(address) > 10 else address
        account_link = f"<a href=\"{EXPLORER_ACCOUNT_URL.format(address=address)}\">{short}</a>"
        header = f"{alert.address.icon} <b>{alert.address.name}</b> | {account_link}"
        time_str = self._format_time(alert.timestamp)

        if isinstance(alert, BalanceChangeAlert):
            change = alert.balance.change
            sign = "+" if change > 0 else ""
            return "\n".join([
                header,
                f"Balance {alert.balance.old:.4f} → {alert.balance.new:.4f} "
                f"(<b>{sign}{change:.4f} {unit}</b>)",
                time_str,
            ])

        tx = alert.transaction if isinstance(alert, TransactionAlert) else None
        amount_str = f"{tx.amount:.4f} {unit}" if tx is not None and tx.amount is not None else ""

        title = {
            AlertType.TRANSACTION_RECEIVED: f"🟢 Received <b>{amount_str}</b>",
            AlertType.TRANSACTION_SENT: f"🔴 Sent <b>{amount_str}</b>",
            AlertType.LARGE_TRANSACTION: f"🚨 Large transaction <b>{amount_str}</b>",
            AlertType.TOKEN_TRANSFER: f"🪙 Token transfer ({len(tx.token_transfers) if tx else 0} accounts)",
        }.get(alert.type, "📝 New transaction")

        lines = [header, title]
        if tx is not None:
            status = "" if tx.success else " | ❌ failed"
            tx_link = f"<a href=\"{EXPLORER_TX_URL.format(signature=tx.signature)}\">{tx.signature[:8]}...</a>"
            lines.append(f"{tx_link}{status} | {time_str}")
        else:
            lines.append(time_str)

        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Public Methods
    # -------------------------------------------------------------------------

    def wants(self, alert: Alert) -> bool:
        return alert.type in self.config.alert_types

    def send_alert(self, alert: Alert) -> Optional[int]:
        """Send and wait. Returns the message_id, or None if skipped or failed."""
        if not self.wants(alert):
            return None
        return self._send_message(self.format_alert(alert))

    def handle_alert(self, alert: Alert) -> None:
        """Feed subscriber: queue the message and return immediately."""
        if self.wants(alert):
            self._enqueue(self.format_alert(alert))

    def send_service_status(self, status: str, details: str = "") -> bool:
        """
        Operational notice ("started", "stopped", "error"). Not rate limited.

        Returns:
            True if sent
        """
        title = {
            "started": "Wallet monitor started",
            "stopped": "Wallet monitor stopped",
            "error": "Wallet monitor error",
        }.get(status, f"Wallet monitor: {status}")

        time_str = datetime.now(timezone.utc).astimezone(DISPLAY_TZ).strftime("%H:%M:%S %Z")
        text = f"<b>{title} at {time_str}</b>"
        if details:
            text += f"\n\n{details}"

        return self._send_message(text, skip_rate_limit=True) is not None
