"""
Signal Dispatcher
Fire-and-forget delivery of TradeSignals to downstream consumers.

This service provides:
1. Callback subscribers (sync or async)
2. asyncio.Queue subscribers
3. WebhookSignalSink posting the JSON signal over HTTP

Delivery never blocks scanning: every callback runs in its own task and
failures are logged, not raised.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

import httpx

from ..exceptions import SignalDeliveryError
from ..models.signals import TradeSignal

logger = logging.getLogger(__name__)

SignalCallback = Callable[[TradeSignal], Union[None, Awaitable[None]]]


class WebhookSignalSink:
    """
    Posts each signal as JSON to a webhook URL.

    Usable directly as a dispatcher callback.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            url: Endpoint receiving the POST
            timeout: Request timeout in seconds
            headers: Extra headers (auth tokens etc.)
            client: Shared AsyncClient; one is created when omitted
        """
        self.url = url
        self.name = f"webhook:{url}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)

    async def __call__(self, signal: TradeSignal) -> None:
        try:
            response = await self._client.post(
                self.url,
                content=signal.model_dump_json(),
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as e:
            raise SignalDeliveryError(f"Webhook request failed: {e}", sink=self.name) from e

        if response.status_code >= 400:
            raise SignalDeliveryError(
                f"Webhook rejected signal for {signal.symbol}",
                sink=self.name,
                status_code=response.status_code,
            )
        logger.debug(f"Delivered {signal.symbol} {signal.direction.value} to {self.url}")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class SignalDispatcher:
    """
    Fans TradeSignals out to subscribers.

    Owned by the scanner; there is no process-wide registry.
    """

    def __init__(self):
        self._callbacks: List[SignalCallback] = []
        self._queues: List[asyncio.Queue] = []
        self._pending: Set[asyncio.Task] = set()

        # Stats
        self.dispatched = 0
        self.failures = 0

    # ==================== SUBSCRIPTIONS ====================

    def subscribe(self, callback: SignalCallback) -> None:
        self._callbacks.append(callback)

    def unsubscribe(self, callback: SignalCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def add_queue(self, maxsize: int = 0) -> asyncio.Queue:
        """Create and register a queue receiving every dispatched signal."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def remove_queue(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    @property
    def pending(self) -> int:
        return len(self._pending)

    # ==================== DISPATCH ====================

    def dispatch(self, signal: TradeSignal) -> None:
        """
        Hand a signal to every subscriber without waiting for them.

        Must be called from a running event loop.
        """
        self.dispatched += 1

        for queue in self._queues:
            try:
                queue.put_nowait(signal)
            except asyncio.QueueFull:
                self.failures += 1
                logger.warning(f"Signal queue full, dropping {signal.symbol} signal for that subscriber")

        for callback in self._callbacks:
            task = asyncio.get_running_loop().create_task(self._deliver(callback, signal))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, callback: SignalCallback, signal: TradeSignal) -> None:
        name = getattr(callback, "name", getattr(callback, "__qualname__", repr(callback)))
        try:
            result = callback(signal)
            if inspect.isawaitable(result):
                await result
        except SignalDeliveryError as e:
            self.failures += 1
            logger.error(f"Signal delivery failed for {signal.symbol} via {name}: {e}")
        except Exception as e:
            self.failures += 1
            logger.error(f"Signal subscriber {name} raised for {signal.symbol}: {e}", exc_info=True)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (used on shutdown)."""
        if not self._pending:
            return
        done, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if still_pending:
            logger.warning(f"{len(still_pending)} signal deliveries still pending after drain timeout")

    def get_stats(self) -> Dict[str, Any]:
        return {
            "subscribers": len(self._callbacks),
            "queues": len(self._queues),
            "dispatched": self.dispatched,
            "failures": self.failures,
            "pending": self.pending,
        }
