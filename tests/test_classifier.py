"""
Tests for EventClassifier.
"""

from datetime import datetime

from wallet_monitor.core.classifier import EventClassifier
from wallet_monitor.core.detector import BalanceChange
from wallet_monitor.models import (
    AlertType,
    BalanceChangeAlert,
    SignatureInfo,
    TokenTransfer,
    TransactionDetails,
)


def details_for(address, delta=None, token_transfers=None, **kwargs):
    return TransactionDetails(
        signature="SIG1",
        success=kwargs.get("success", True),
        fee=0.000005,
        slot=10,
        block_time=1_700_000_000,
        balance_changes={address: delta} if delta is not None else {},
        token_transfers=token_transfers or [],
    )


USDC = TokenTransfer(mint="EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", amount=25.0, decimals=6)


class TestEventClassifier:

    def setup_method(self):
        self.classifier = EventClassifier(large_transaction_threshold=10)
        self.signature = SignatureInfo(signature="SIG1", slot=10, block_time=1_700_000_000)

    def classify(self, monitored, details):
        return self.classifier.classify_transaction(monitored, self.signature, details)

    def test_received(self, wallet):
        alerts = self.classify(wallet, details_for(wallet.address, 5.0))
        assert [a.type for a in alerts] == [AlertType.TRANSACTION_RECEIVED]
        assert alerts[0].amount == 5.0
        assert alerts[0].transaction.signature == "SIG1"

    def test_sent_amount_is_absolute(self, wallet):
        alerts = self.classify(wallet, details_for(wallet.address, -3.0))
        assert [a.type for a in alerts] == [AlertType.TRANSACTION_SENT]
        assert alerts[0].amount == 3.0
        assert alerts[0].transaction.balance_changes[wallet.address] == -3.0

    def test_large_is_additive(self, wallet):
        alerts = self.classify(wallet, details_for(wallet.address, 30.0))
        assert [a.type for a in alerts] == [AlertType.TRANSACTION_RECEIVED, AlertType.LARGE_TRANSACTION]

    def test_threshold_is_inclusive(self, wallet):
        alerts = self.classify(wallet, details_for(wallet.address, -10.0))
        assert [a.type for a in alerts] == [AlertType.TRANSACTION_SENT, AlertType.LARGE_TRANSACTION]

    def test_received_large_and_token_gives_exactly_three(self, wallet):
        alerts = self.classify(wallet, details_for(wallet.address, 50.0, [USDC]))
        assert [a.type for a in alerts] == [
            AlertType.TRANSACTION_RECEIVED,
            AlertType.LARGE_TRANSACTION,
            AlertType.TOKEN_TRANSFER,
        ]
        assert all(a.amount == 50.0 for a in alerts)

    def test_token_only_transaction(self, wallet):
        alerts = self.classify(wallet, details_for(wallet.address, None, [USDC]))
        assert [a.type for a in alerts] == [AlertType.NEW_TRANSACTION, AlertType.TOKEN_TRANSFER]
        assert alerts[1].transaction.token_transfers == [USDC]

    def test_delta_for_other_account_only(self, wallet):
        alerts = self.classify(wallet, details_for("SomeoneElse", 99.0))
        assert [a.type for a in alerts] == [AlertType.NEW_TRANSACTION]
        assert alerts[0].amount is None

    def test_missing_details_falls_back(self, wallet):
        alerts = self.classify(wallet, None)
        assert [a.type for a in alerts] == [AlertType.NEW_TRANSACTION]
        assert alerts[0].transaction.fee is None
        assert alerts[0].transaction.slot == 10

    def test_malformed_details_degrade(self, wallet):
        details = details_for(wallet.address, 5.0)
        details.balance_changes = {wallet.address: "not-a-number", None: 1}
        details.token_transfers = "garbage"
        alerts = self.classify(wallet, details)
        assert [a.type for a in alerts] == [AlertType.NEW_TRANSACTION]

    def test_object_without_fields_degrades(self, wallet):
        alerts = self.classify(wallet, object())
        assert [a.type for a in alerts] == [AlertType.NEW_TRANSACTION]

    def test_failed_transaction_is_still_reported(self, wallet):
        alerts = self.classify(wallet, details_for(wallet.address, -0.01, success=False))
        assert alerts[0].type == AlertType.TRANSACTION_SENT
        assert alerts[0].transaction.success is False

    def test_payload_shape(self, wallet):
        alert = self.classify(wallet, details_for(wallet.address, 5.0))[0]
        payload = alert.to_dict()
        assert payload["type"] == "TRANSACTION_RECEIVED"
        assert payload["wallet"] == {"address": wallet.address, "name": "W", "icon": "🐋"}
        assert payload["transaction"]["signature"] == "SIG1"
        assert payload["transaction"]["amount"] == 5.0
        assert payload["timestamp"].startswith("2023-11-14T")

    def test_balance_change(self, wallet):
        alert = self.classifier.classify_balance_change(wallet, BalanceChange(old=100.0, new=135.0))
        assert isinstance(alert, BalanceChangeAlert)
        assert alert.type == AlertType.BALANCE_CHANGE
        assert (alert.balance.old, alert.balance.new, alert.balance.change) == (100.0, 135.0, 35.0)
        assert alert.amount is None
        assert alert.to_dict()["balance"] == {"old": 100.0, "new": 135.0, "change": 35.0}

    def test_unusable_block_time_uses_current_time(self, wallet):
        for block_time in (10 ** 13, "yesterday", -(10 ** 20)):
            signature = SignatureInfo(signature="SIG1", slot=10, block_time=block_time)
            details = details_for(wallet.address, 5.0)
            details.block_time = None
            alerts = self.classifier.classify_transaction(wallet, signature, details)
            assert [a.type for a in alerts] == [AlertType.TRANSACTION_RECEIVED]
            assert datetime.fromisoformat(alerts[0].timestamp).tzinfo is not None

    def test_fallback_survives_unusable_block_time(self, wallet):
        signature = SignatureInfo(signature="SIG1", block_time=10 ** 13)
        alerts = self.classifier.classify_transaction(wallet, signature, None)
        assert [a.type for a in alerts] == [AlertType.NEW_TRANSACTION]

    def test_additive_alerts_do_not_share_payload(self, wallet):
        received, large, token = self.classify(wallet, details_for(wallet.address, 50.0, [USDC]))

        received.transaction.amount = 0.0
        received.transaction.balance_changes.clear()
        received.transaction.token_transfers.clear()

        assert large.amount == 50.0
        assert token.transaction.balance_changes == {wallet.address: 50.0}
        assert token.transaction.token_transfers == [USDC]
