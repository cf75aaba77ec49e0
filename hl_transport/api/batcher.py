"""
Order batching.

Collects orders and cancels queued by many callers and sends them as a few
signed actions instead of one action per call:

    add_order() ─┐                 ┌─► cancel batch(es)
    add_cancel() ┴─► queue ─ flush ┼─► ALO order batch(es)
                                   └─► regular order batch(es)

A flush runs every `interval` seconds while work is queued, sooner when a
batch is full or the oldest item has waited `max_wait_time`. Cancels go
first, then post-only (ALO) orders so they reach the book ahead of takers
from the same flush.

Nonces are issued when a batch is submitted, not when an item is queued,
so queued items never age out of the nonce window.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from config.settings import BatchConfig

from . import actions
from .actions import Action, OrderRequest
from .dispatcher import ActionDispatcher, ActionOutcome
from .errors import BatcherClosed
from .order_tracker import OrderTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchResult:
    """What one queued order or cancel got back from its batch."""
    outcome: ActionOutcome
    status: Any = None  # This item's entry in outcome.statuses

    @property
    def ok(self) -> bool:
        if not self.outcome.ok:
            return False
        return not (isinstance(self.status, dict) and "error" in self.status)

    @property
    def error(self) -> Optional[str]:
        if not self.outcome.ok:
            return str(self.outcome.reason)
        if isinstance(self.status, dict) and "error" in self.status:
            return self.status["error"]
        return None


@dataclass
class BatchStats:
    batches_sent: int = 0
    orders_sent: int = 0
    cancels_sent: int = 0
    failed_batches: int = 0


@dataclass
class _Queued:
    item: Any  # OrderRequest or (asset, oid)
    future: asyncio.Future
    queued_at: float


def _chunks(items: List[_Queued], size: int) -> List[List[_Queued]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class OrderBatcher:
    """
    Queue orders and cancels, send them in batches through one dispatcher.

    Usage:
        async with OrderBatcher(dispatcher, config.batching) as batcher:
            fut = batcher.add_order(OrderRequest(...))
            result = await fut
            if not result.ok:
                logger.warning(result.error)

    Each queued item resolves to a BatchResult. If the batch carrying it
    raises (transport failure, local rate limit, nonce window), the same
    exception is set on every item of that batch.
    """

    def __init__(
        self,
        dispatcher: ActionDispatcher,
        config: Optional[BatchConfig] = None,
        vault_address: Optional[str] = None,
        tracker: Optional[OrderTracker] = None,
    ):
        self._dispatcher = dispatcher
        self.config = config or BatchConfig()
        self._vault_address = vault_address
        self._tracker = tracker

        self._orders: List[_Queued] = []
        self._cancels: List[_Queued] = []
        self._closed = False
        self._task: Optional[asyncio.Task] = None

        # Created on first use so they belong to the running loop
        self._has_work: Optional[asyncio.Event] = None
        self._changed: Optional[asyncio.Event] = None
        self._flush_lock: Optional[asyncio.Lock] = None

        self.stats = BatchStats()

    @property
    def pending(self) -> int:
        return len(self._orders) + len(self._cancels)

    @property
    def closed(self) -> bool:
        return self._closed

    # ==========================================
    # QUEUEING
    # ==========================================

    def add_order(self, order: OrderRequest) -> asyncio.Future:
        """
        Queue an order for the next flush.

        Returns:
            Future resolving to the order's BatchResult

        Raises:
            BatcherClosed: If close() has been called
        """
        if self._closed:
            raise BatcherClosed("Batcher is closed")
        if self._tracker is not None:
            order = self._tracker.track(order)
        return self._enqueue(self._orders, order)

    def add_cancel(self, asset: int, oid: int) -> asyncio.Future:
        """Queue a cancel by (asset, oid); resolves to its BatchResult."""
        return self._enqueue(self._cancels, (asset, oid))

    def _enqueue(self, queue: List[_Queued], item: Any) -> asyncio.Future:
        if self._closed:
            raise BatcherClosed("Batcher is closed")

        loop = asyncio.get_running_loop()
        self._ensure_started()

        future = loop.create_future()
        queue.append(_Queued(item, future, loop.time()))
        self._has_work.set()
        self._changed.set()
        return future

    def _ensure_started(self) -> None:
        if self._has_work is None:
            self._has_work = asyncio.Event()
            self._changed = asyncio.Event()
            self._flush_lock = asyncio.Lock()
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            logger.debug(
                f"Order batcher started (interval={self.config.interval}s, "
                f"max_batch_size={self.config.max_batch_size})"
            )

    def _batch_full(self) -> bool:
        size = self.config.max_batch_size
        return len(self._orders) >= size or len(self._cancels) >= size

    def _oldest_queued_at(self) -> Optional[float]:
        times = [q.queued_at for q in self._orders[:1] + self._cancels[:1]]
        return min(times) if times else None

    # ==========================================
    # RUN LOOP
    # ==========================================

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()

        while True:
            await self._has_work.wait()
            if self._closed:
                break

            deadline = loop.time() + self.config.interval
            oldest = self._oldest_queued_at()
            if oldest is not None:
                deadline = min(deadline, oldest + self.config.max_wait_time)

            while not self._closed and not self._batch_full():
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                self._changed.clear()
                try:
                    await asyncio.wait_for(self._changed.wait(), remaining)
                except asyncio.TimeoutError:
                    break

            if self._closed:
                break
            await self.flush()

    async def flush(self) -> int:
        """
        Send everything queued now.

        Returns:
            Number of items sent (cancelled futures are skipped)
        """
        if self._flush_lock is None:
            return 0

        async with self._flush_lock:
            cancels, orders = self._cancels, self._orders
            self._cancels, self._orders = [], []
            self._has_work.clear()

            cancels = [q for q in cancels if not q.future.cancelled()]
            orders = [q for q in orders if not q.future.cancelled()]
            size = self.config.max_batch_size

            for chunk in _chunks(cancels, size):
                await self._submit(chunk, is_cancel=True)

            if self.config.prioritize_alo:
                groups = [
                    [q for q in orders if q.item.is_alo],
                    [q for q in orders if not q.item.is_alo],
                ]
            else:
                groups = [orders]

            for group in groups:
                for chunk in _chunks(group, size):
                    await self._submit(chunk, is_cancel=False)

            return len(cancels) + len(orders)

    def _build(self, batch: Sequence[_Queued], is_cancel: bool) -> Action:
        items = [q.item for q in batch]
        if is_cancel:
            return actions.cancel(items, self._vault_address)
        return actions.order(items, vault_address=self._vault_address)

    async def _submit(self, batch: Sequence[_Queued], is_cancel: bool) -> None:
        kind = "cancel" if is_cancel else "order"
        orders = [] if is_cancel else [q.item for q in batch]

        try:
            outcome = await self._dispatcher.submit(self._build(batch, is_cancel))
        except Exception as e:
            # Forwarded to every waiter of this batch
            self.stats.failed_batches += 1
            logger.error(f"{kind.capitalize()} batch of {len(batch)} failed: {e}")
            if self._tracker is not None and orders:
                self._tracker.record_error(orders, e)
            for q in batch:
                if not q.future.done():
                    q.future.set_exception(e)
            return

        self.stats.batches_sent += 1
        if is_cancel:
            self.stats.cancels_sent += len(batch)
        else:
            self.stats.orders_sent += len(batch)
        if not outcome.ok:
            logger.warning(f"{kind.capitalize()} batch of {len(batch)} rejected: {outcome.reason}")
        if self._tracker is not None and orders:
            self._tracker.record_outcome(orders, outcome)

        statuses = outcome.statuses
        for i, q in enumerate(batch):
            status = statuses[i] if i < len(statuses) else None
            if not q.future.done():
                q.future.set_result(BatchResult(outcome, status))

        logger.debug(f"Sent {kind} batch of {len(batch)} (nonce={outcome.nonce})")

    # ==========================================
    # LIFECYCLE
    # ==========================================

    async def close(self) -> None:
        """Stop the run loop and flush whatever is still queued."""
        if self._closed:
            return
        self._closed = True

        if self._task is not None:
            self._has_work.set()
            self._changed.set()
            await self._task
            self._task = None

        sent = await self.flush()
        logger.info(f"Order batcher closed ({sent} items flushed on close)")

    async def __aenter__(self) -> "OrderBatcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
