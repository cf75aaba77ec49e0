"""
Client-side order tracking by cloid.

Every tracked order carries a client order id (generated when the caller
did not set one), so a submission can be correlated with the venue's
per-order status even when the outcome arrives late or the request fails.

Lifecycle:
    PENDING    queued or in flight
    SUBMITTED  accepted by the venue (resting or filled)
    FAILED     rejected, errored at item level, or never delivered

Usage:
    tracker = OrderTracker()
    order = tracker.track(OrderRequest(...))   # order.cloid now set
    outcome = await dispatcher.submit(actions.order([order]))
    tracker.record_outcome([order], outcome)
    tracker.get_order(order.cloid).status
"""

import logging
import threading
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .actions import OrderRequest
from .clock import Clock, SYSTEM_CLOCK
from .dispatcher import ActionOutcome

logger = logging.getLogger(__name__)


class TrackingStatus(Enum):
    """Tracked order states."""
    PENDING = "pending"
    SUBMITTED = "submitted"
    FAILED = "failed"


def new_cloid() -> str:
    """Random 16-byte client order id."""
    return "0x" + uuid.uuid4().hex


@dataclass
class TrackedOrder:
    """An order followed by its cloid."""
    cloid: str
    order: OrderRequest
    created_at_ms: int
    status: TrackingStatus = TrackingStatus.PENDING
    updated_at_ms: Optional[int] = None
    response: Any = None  # Venue's per-order status
    last_error: Optional[str] = None

    @property
    def oid(self) -> Optional[int]:
        """Venue order id, once the order rests or fills."""
        if not isinstance(self.response, dict):
            return None
        for state in ("resting", "filled"):
            detail = self.response.get(state)
            if isinstance(detail, dict) and "oid" in detail:
                return detail["oid"]
        return None


class OrderTracker:
    """
    Thread-safe registry of tracked orders.

    Orders are kept until clear() or clear_completed(); the tracker never
    evicts on its own.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SYSTEM_CLOCK
        self._orders: Dict[str, TrackedOrder] = {}
        self._lock = threading.Lock()

    def track(self, order: OrderRequest) -> OrderRequest:
        """
        Start tracking an order as PENDING.

        Returns:
            The order, with a generated cloid if it had none
        """
        if order.cloid is None:
            order = replace(order, cloid=new_cloid())

        tracked = TrackedOrder(
            cloid=order.cloid,
            order=order,
            created_at_ms=self._clock.time_ms(),
        )
        with self._lock:
            self._orders[order.cloid.lower()] = tracked

        logger.debug(f"Tracking order {order.cloid} (asset={order.asset})")
        return order

    def _update(
        self,
        cloid: str,
        status: TrackingStatus,
        response: Any = None,
        error: Optional[str] = None,
    ) -> None:
        with self._lock:
            tracked = self._orders.get(cloid.lower())
            if tracked is None:
                return
            tracked.status = status
            tracked.updated_at_ms = self._clock.time_ms()
            tracked.response = response
            tracked.last_error = error

        if status == TrackingStatus.FAILED:
            logger.warning(f"Order {cloid} failed: {error}")

    def mark_submitted(self, cloid: str, response: Any = None) -> None:
        self._update(cloid, TrackingStatus.SUBMITTED, response=response)

    def mark_failed(self, cloid: str, error: str, response: Any = None) -> None:
        self._update(cloid, TrackingStatus.FAILED, response=response, error=error)

    def record_outcome(self, orders: Sequence[OrderRequest], outcome: ActionOutcome) -> None:
        """
        Apply an order action's outcome to the orders it carried.

        Per-order statuses line up with the orders of the action; an item
        carrying an "error" fails on its own while its siblings succeed.
        """
        if not outcome.ok:
            for order in orders:
                self.mark_failed(order.cloid, str(outcome.reason), outcome.response)
            return

        statuses = outcome.statuses
        for i, order in enumerate(orders):
            status = statuses[i] if i < len(statuses) else None
            if isinstance(status, dict) and "error" in status:
                self.mark_failed(order.cloid, status["error"], status)
            else:
                self.mark_submitted(order.cloid, status)

    def record_error(self, orders: Sequence[OrderRequest], error: Exception) -> None:
        """Mark orders failed after their submission raised."""
        for order in orders:
            self.mark_failed(order.cloid, f"{type(error).__name__}: {error}")

    # ==========================================
    # QUERIES
    # ==========================================

    def get_order(self, cloid: str) -> Optional[TrackedOrder]:
        return self._orders.get(cloid.lower())

    def get_all_orders(self) -> List[TrackedOrder]:
        with self._lock:
            return list(self._orders.values())

    def get_orders_by_status(self, status: TrackingStatus) -> List[TrackedOrder]:
        return [o for o in self.get_all_orders() if o.status == status]

    def get_pending_orders(self) -> List[TrackedOrder]:
        return self.get_orders_by_status(TrackingStatus.PENDING)

    def get_submitted_orders(self) -> List[TrackedOrder]:
        return self.get_orders_by_status(TrackingStatus.SUBMITTED)

    def get_failed_orders(self) -> List[TrackedOrder]:
        return self.get_orders_by_status(TrackingStatus.FAILED)

    def clear(self) -> None:
        with self._lock:
            self._orders.clear()

    def clear_completed(self) -> int:
        """
        Drop orders that are no longer pending.

        Returns:
            Number of orders removed
        """
        with self._lock:
            done = [c for c, o in self._orders.items() if o.status != TrackingStatus.PENDING]
            for cloid in done:
                del self._orders[cloid]
        logger.debug(f"Cleared {len(done)} completed orders")
        return len(done)

    def __len__(self) -> int:
        return len(self._orders)
