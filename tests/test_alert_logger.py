"""
Tests for AlertLogger and the one-line alert format.
"""

from wallet_monitor.alerts import AlertFeed, AlertLogger, format_alert
from wallet_monitor.core import EventClassifier
from wallet_monitor.core.detector import BalanceChange
from wallet_monitor.models import AlertType, SignatureInfo, TokenTransfer, TransactionDetails


def transaction_alerts(monitored, delta, token_transfers=None):
    details = TransactionDetails(
        signature="SIG1",
        success=True,
        fee=0.000005,
        balance_changes={monitored.address: delta},
        token_transfers=token_transfers or [],
    )
    signature = SignatureInfo(signature="SIG1", block_time=1_700_000_000)
    return EventClassifier(large_transaction_threshold=10).classify_transaction(monitored, signature, details)


class TestFormatAlert:

    def test_received_and_large(self, wallet):
        received, large = transaction_alerts(wallet, 12.5)
        assert format_alert(received) == "[22:13:20] 🐋 W ← Received 12.5000 SOL"
        assert format_alert(large) == "[22:13:20] 🚨 🐋 W Large transaction: 12.5000 SOL"

    def test_sent(self, wallet):
        sent = transaction_alerts(wallet, -0.25)[0]
        assert format_alert(sent) == "[22:13:20] 🐋 W → Sent 0.2500 SOL"

    def test_token_transfer(self, wallet):
        alerts = transaction_alerts(wallet, 1.0, [TokenTransfer(mint="MintA", amount=1.0)])
        assert alerts[-1].type == AlertType.TOKEN_TRANSFER
        assert format_alert(alerts[-1]).endswith("🐋 W 🪙 Token transfer detected")

    def test_balance_change(self, wallet):
        alert = EventClassifier().classify_balance_change(wallet, BalanceChange(old=100.0, new=97.5))
        assert "Balance: 100.0000 → 97.5000 (-2.5000 SOL)" in format_alert(alert)

    def test_custom_unit(self, wallet):
        received = transaction_alerts(wallet, 2.0)[0]
        assert format_alert(received, unit="ETH").endswith("Received 2.0000 ETH")


class TestAlertLogger:

    def test_keeps_alerts_and_writes_file(self, tmp_path, wallet):
        output = tmp_path / "logs" / "alerts.log"
        alert_logger = AlertLogger(output)
        feed = AlertFeed()
        feed.subscribe(alert_logger)

        for alert in transaction_alerts(wallet, 20.0):
            feed.publish(alert)

        logged = alert_logger.get_alerts()
        assert [a.type for _, a in logged] == [AlertType.TRANSACTION_RECEIVED, AlertType.LARGE_TRANSACTION]
        lines = output.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert "Received 20.0000 SOL" in lines[0]

    def test_clear(self, wallet):
        alert_logger = AlertLogger()
        alert_logger.log(transaction_alerts(wallet, 1.0)[0])
        alert_logger.clear()
        assert alert_logger.get_alerts() == []
