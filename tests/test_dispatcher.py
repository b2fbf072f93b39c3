"""
Tests for the feed + webhook Dispatcher.
"""

from conftest import FakeSession, failing_for, run
from wallet_monitor.alerts import Dispatcher, WebhookDispatcher, WebhookSubscription
from wallet_monitor.core import EventClassifier
from wallet_monitor.core.detector import BalanceChange
from wallet_monitor.errors import DeliveryFailure
from wallet_monitor.models import AlertType


def make_alert(monitored):
    return EventClassifier().classify_balance_change(monitored, BalanceChange(old=5.0, new=1.0))


class TestDispatcher:

    def test_local_only_without_webhooks(self, wallet):
        dispatcher = Dispatcher()
        received = []
        dispatcher.feed.subscribe(received.append)

        dispatcher.dispatch(make_alert(wallet))

        assert len(received) == 1
        assert dispatcher.pending == 0
        assert dispatcher.stats.alerts_by_type[AlertType.BALANCE_CHANGE.value] == 1

    def test_subscriber_errors_counted(self, wallet):
        dispatcher = Dispatcher()

        def broken(alert):
            raise RuntimeError("bad subscriber")

        dispatcher.feed.subscribe(broken)
        dispatcher.dispatch(make_alert(wallet))
        assert dispatcher.stats.subscriber_errors == 1

    def test_webhook_failure_reported_on_error_channel(self, wallet):
        session = FakeSession(failing_for("https://down.example.com/hook"))
        webhooks = WebhookDispatcher(
            [
                WebhookSubscription.create("https://down.example.com/hook"),
                WebhookSubscription.create("https://up.example.com/hook"),
            ],
            session=session,
        )
        dispatcher = Dispatcher(webhooks=webhooks)
        received, errors = [], []
        dispatcher.feed.subscribe(received.append)
        dispatcher.feed.subscribe_errors(errors.append)

        async def scenario():
            dispatcher.dispatch(make_alert(wallet))
            # Local delivery is done before any webhook call completes
            assert len(received) == 1
            assert dispatcher.pending == 1
            await dispatcher.drain()

        run(scenario())

        assert session.urls() == ["https://down.example.com/hook", "https://up.example.com/hook"]
        assert dispatcher.stats.webhook_deliveries == 1
        assert dispatcher.stats.delivery_errors == 1
        assert len(errors) == 1
        assert isinstance(errors[0].error, DeliveryFailure)
        assert errors[0].address == wallet.address

    def test_close_waits_for_deliveries(self, wallet):
        session = FakeSession()
        webhooks = WebhookDispatcher([WebhookSubscription.create("https://up.example.com/hook")], session=session)
        dispatcher = Dispatcher(webhooks=webhooks)

        async def scenario():
            dispatcher.dispatch(make_alert(wallet))
            await dispatcher.close()

        run(scenario())
        assert len(session.requests) == 1
        assert dispatcher.pending == 0

    def test_webhook_body_taken_before_subscribers_run(self, wallet):
        session = FakeSession()
        webhooks = WebhookDispatcher([WebhookSubscription.create("https://up.example.com/hook")], session=session)
        dispatcher = Dispatcher(webhooks=webhooks)

        def meddling(alert):
            alert.balance.new = 0.0
            alert.address.name = "changed"

        dispatcher.feed.subscribe(meddling)

        async def scenario():
            dispatcher.dispatch(make_alert(wallet))
            await dispatcher.drain()

        run(scenario())

        body = session.requests[0]["json"]
        assert body["balance"]["new"] == 1.0
        assert body["wallet"]["name"] == "W"
