"""
Event Classification

Turns a new transaction (or a balance move) of a monitored address into alerts.

Classification is additive: one transaction yields its primary alert
(received / sent / generic) plus LARGE_TRANSACTION and TOKEN_TRANSFER when
they apply, in that order.
"""

import logging
import math
from copy import deepcopy
from dataclasses import replace
from typing import Dict, List, Optional

from ..config import config
from ..models import (
    AlertAddress,
    AlertType,
    BalanceChangeAlert,
    BalancePayload,
    MonitoredAddress,
    SignatureInfo,
    TokenTransfer,
    TransactionAlert,
    TransactionDetails,
    TransactionPayload,
)
from ..models.alert import block_time_iso, utc_now_iso
from .detector import BalanceChange

logger = logging.getLogger(__name__)


def _as_number(value) -> Optional[float]:
    """Finite float or None. bool is not a balance."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class EventClassifier:
    """
    Maps transactions and balance changes to typed alerts.

    Never raises on bad input: a missing or malformed transaction detail
    degrades to a NEW_TRANSACTION alert so no activity is dropped.
    """

    def __init__(self, large_transaction_threshold: float = None):
        self.large_transaction_threshold = (
            large_transaction_threshold
            if large_transaction_threshold is not None
            else config.large_transaction_threshold
        )

    def classify_transaction(
        self,
        monitored: MonitoredAddress,
        signature: SignatureInfo,
        details: Optional[TransactionDetails],
    ) -> List[TransactionAlert]:
        """
        Classify one new transaction.

        Args:
            monitored: The address the transaction was listed for
            signature: Listing entry (used for timestamp and as fallback data)
            details: Parsed detail, or None if it could not be fetched

        Returns:
            Alerts in dispatch order
        """
        try:
            return self._classify(monitored, signature, details)
        except Exception as e:
            logger.warning(f"Classification failed for {signature.signature[:8]}..., sending generic alert: {e}")
            return [self._fallback_alert(monitored, signature)]

    def _classify(
        self,
        monitored: MonitoredAddress,
        signature: SignatureInfo,
        details: Optional[TransactionDetails],
    ) -> List[TransactionAlert]:
        if details is None:
            return [self._fallback_alert(monitored, signature)]

        balance_changes = self._clean_balance_changes(getattr(details, "balance_changes", None))
        token_transfers = self._clean_token_transfers(getattr(details, "token_transfers", None))
        wallet_delta = balance_changes.get(monitored.address)

        alert = TransactionAlert(
            type=AlertType.NEW_TRANSACTION,
            timestamp=block_time_iso(signature.block_time or getattr(details, "block_time", None)),
            address=AlertAddress.from_monitored(monitored),
            transaction=TransactionPayload(
                signature=signature.signature,
                slot=signature.slot if signature.slot is not None else getattr(details, "slot", None),
                success=bool(getattr(details, "success", signature.succeeded)),
                fee=_as_number(getattr(details, "fee", None)),
                balance_changes=balance_changes,
                token_transfers=token_transfers,
            ),
        )

        if wallet_delta:
            alert.type = AlertType.TRANSACTION_RECEIVED if wallet_delta > 0 else AlertType.TRANSACTION_SENT
            alert.transaction.amount = abs(wallet_delta)

        alerts = [alert]

        if wallet_delta and abs(wallet_delta) >= self.large_transaction_threshold:
            alerts.append(replace(alert, type=AlertType.LARGE_TRANSACTION, transaction=deepcopy(alert.transaction)))

        if token_transfers:
            logger.debug(f"{signature.signature[:8]}...: {len(token_transfers)} token transfers")
            alerts.append(replace(alert, type=AlertType.TOKEN_TRANSFER, transaction=deepcopy(alert.transaction)))

        return alerts

    def _fallback_alert(self, monitored: MonitoredAddress, signature: SignatureInfo) -> TransactionAlert:
        """Generic alert built from the signature listing alone."""
        return TransactionAlert(
            type=AlertType.NEW_TRANSACTION,
            timestamp=block_time_iso(signature.block_time),
            address=AlertAddress.from_monitored(monitored),
            transaction=TransactionPayload(
                signature=signature.signature,
                slot=signature.slot,
                success=signature.succeeded,
                fee=None,
            ),
        )

    @staticmethod
    def _clean_balance_changes(raw) -> Dict[str, float]:
        if not isinstance(raw, dict):
            return {}
        cleaned = {}
        for account, change in raw.items():
            number = _as_number(change)
            if number is not None:
                cleaned[str(account)] = number
        return cleaned

    @staticmethod
    def _clean_token_transfers(raw) -> List[TokenTransfer]:
        if not isinstance(raw, (list, tuple)):
            return []
        return [t for t in raw if isinstance(t, TokenTransfer)]

    def classify_balance_change(
        self,
        monitored: MonitoredAddress,
        change: BalanceChange,
    ) -> BalanceChangeAlert:
        """BALANCE_CHANGE alert carrying old/new/change."""
        return BalanceChangeAlert(
            timestamp=utc_now_iso(),
            address=AlertAddress.from_monitored(monitored),
            balance=BalancePayload(old=change.old, new=change.new, change=change.delta),
        )
