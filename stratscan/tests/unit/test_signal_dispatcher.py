"""
Unit Tests for Signal Dispatch
==============================
Tests cover:
- Queue and callback subscribers
- Failure isolation between subscribers
- WebhookSignalSink over an httpx MockTransport

Run with: pytest stratscan/tests/unit/test_signal_dispatcher.py -v
"""
import json

import httpx
import pytest

from stratscan.exceptions import SignalDeliveryError
from stratscan.models.signals import MarketSession, SignalDirection, TradeSignal
from stratscan.services.signal_dispatcher import SignalDispatcher, WebhookSignalSink
from stratscan.tests.mocks.fixtures import SESSION_OPEN
from stratscan.tests.mocks.providers import RecordingSink


def make_signal(symbol: str = "TEST") -> TradeSignal:
    return TradeSignal(
        symbol=symbol,
        direction=SignalDirection.LONG,
        confidence=0.65,
        entry_price=102.8,
        stop_loss=98.505,
        take_profit=111.39,
        position_size=48.64,
        pattern_label="2D->2U",
        reasoning=["2D->2U reversal"],
        risk_reward_ratio=2.0,
        timestamp=SESSION_OPEN,
        session=MarketSession.INTRADAY,
        interval="5Min",
    )


@pytest.fixture
def dispatcher() -> SignalDispatcher:
    return SignalDispatcher()


# ============================================================
# Subscribers
# ============================================================

@pytest.mark.unit
class TestSubscribers:

    @pytest.mark.asyncio
    async def test_queue_receives_signal(self, dispatcher):
        queue = dispatcher.add_queue()
        signal = make_signal()

        dispatcher.dispatch(signal)

        assert queue.get_nowait() is signal
        assert dispatcher.dispatched == 1

    @pytest.mark.asyncio
    async def test_full_queue_counts_failure(self, dispatcher):
        queue = dispatcher.add_queue(maxsize=1)
        dispatcher.dispatch(make_signal("AAA"))
        dispatcher.dispatch(make_signal("BBB"))

        assert queue.qsize() == 1
        assert queue.get_nowait().symbol == "AAA"
        assert dispatcher.failures == 1

    @pytest.mark.asyncio
    async def test_async_callback(self, dispatcher):
        sink = RecordingSink()
        dispatcher.subscribe(sink)

        dispatcher.dispatch(make_signal())
        await dispatcher.drain(timeout=1)

        assert [s.symbol for s in sink.received] == ["TEST"]
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_sync_callback(self, dispatcher):
        received = []
        dispatcher.subscribe(received.append)

        dispatcher.dispatch(make_signal())
        await dispatcher.drain(timeout=1)

        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_affect_others(self, dispatcher, caplog):
        broken = RecordingSink(error=RuntimeError("boom"))
        healthy = RecordingSink()
        dispatcher.subscribe(broken)
        dispatcher.subscribe(healthy)

        dispatcher.dispatch(make_signal())
        await dispatcher.drain(timeout=1)

        assert len(healthy.received) == 1
        assert dispatcher.failures == 1
        assert "boom" in caplog.text

    @pytest.mark.asyncio
    async def test_delivery_error_logged(self, dispatcher, caplog):
        dispatcher.subscribe(RecordingSink(error=SignalDeliveryError("rejected", sink="test")))

        dispatcher.dispatch(make_signal())
        await dispatcher.drain(timeout=1)

        assert dispatcher.failures == 1
        assert "Signal delivery failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unsubscribe_and_remove_queue(self, dispatcher):
        sink = RecordingSink()
        queue = dispatcher.add_queue()
        dispatcher.subscribe(sink)
        dispatcher.unsubscribe(sink)
        dispatcher.remove_queue(queue)

        dispatcher.dispatch(make_signal())
        await dispatcher.drain(timeout=1)

        assert sink.received == []
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_drain_without_pending(self, dispatcher):
        await dispatcher.drain()

    def test_stats(self, dispatcher):
        dispatcher.subscribe(RecordingSink())
        dispatcher.add_queue()

        stats = dispatcher.get_stats()
        assert stats["subscribers"] == 1
        assert stats["queues"] == 1
        assert stats["dispatched"] == 0


# ============================================================
# Webhook
# ============================================================

def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestWebhookSignalSink:

    @pytest.mark.asyncio
    async def test_posts_signal_json(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        async with _client(handler) as client:
            sink = WebhookSignalSink("https://hooks.example.test/signals", client=client)
            await sink(make_signal())

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.headers["content-type"] == "application/json"
        body = json.loads(request.content)
        assert body["symbol"] == "TEST"
        assert body["direction"] == "LONG"
        assert body["session"] == "intraday"

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        async with _client(lambda request: httpx.Response(503)) as client:
            sink = WebhookSignalSink("https://hooks.example.test/signals", client=client)
            with pytest.raises(SignalDeliveryError) as exc_info:
                await sink(make_signal())

        assert exc_info.value.status_code == 503
        assert exc_info.value.sink == "webhook:https://hooks.example.test/signals"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            sink = WebhookSignalSink("https://hooks.example.test/signals", client=client)
            with pytest.raises(SignalDeliveryError):
                await sink(make_signal())

    @pytest.mark.asyncio
    async def test_dispatcher_logs_webhook_failure(self, dispatcher):
        async with _client(lambda request: httpx.Response(500)) as client:
            dispatcher.subscribe(WebhookSignalSink("https://hooks.example.test/signals", client=client))
            dispatcher.dispatch(make_signal())
            await dispatcher.drain(timeout=1)

        assert dispatcher.failures == 1

    @pytest.mark.asyncio
    async def test_shared_client_not_closed(self):
        async with _client(lambda request: httpx.Response(200)) as client:
            sink = WebhookSignalSink("https://hooks.example.test/signals", client=client)
            await sink.aclose()
            assert not client.is_closed
