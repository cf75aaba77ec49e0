"""
Tests for cloid order tracking.
"""

import pytest

from hl_transport.api import actions
from hl_transport.api.actions import LimitOrder, OrderRequest, SigningDomain
from hl_transport.api.auth import SignedRequest
from hl_transport.api.dispatcher import ActionOutcome, OutcomeStatus
from hl_transport.api.errors import TransportError
from hl_transport.api.order_tracker import OrderTracker, TrackingStatus, new_cloid

CLOID = "0x" + "0f" * 16


def order(cloid=None, px=100):
    return OrderRequest(asset=0, is_buy=True, limit_px=px, sz="1", order_type=LimitOrder("Gtc"), cloid=cloid)


def outcome(*statuses, status=OutcomeStatus.OK, reason=None):
    request = SignedRequest(actions.order([]), 1, {}, SigningDomain.L1, b"{}")
    response = {"type": "order", "data": {"statuses": list(statuses)}}
    return ActionOutcome(status, request, response=response, reason=reason)


class TestNewCloid:
    """Tests for new_cloid."""

    def test_format(self):
        cloid = new_cloid()
        assert cloid.startswith("0x")
        assert len(cloid) == 34
        int(cloid, 16)

    def test_unique(self):
        assert len({new_cloid() for _ in range(100)}) == 100


class TestOrderTracker:
    """Tests for OrderTracker."""

    def test_track_assigns_cloid(self, clock):
        tracker = OrderTracker(clock)

        tracked = tracker.track(order())

        assert tracked.cloid is not None
        entry = tracker.get_order(tracked.cloid)
        assert entry.status == TrackingStatus.PENDING
        assert entry.created_at_ms == clock.time_ms()
        assert entry.oid is None

    def test_track_keeps_caller_cloid(self, clock):
        tracker = OrderTracker(clock)

        tracked = tracker.track(order(cloid=CLOID))

        assert tracked.cloid == CLOID
        assert tracker.get_order(CLOID.upper().replace("0X", "0x")) is not None
        assert len(tracker) == 1

    def test_record_outcome_per_item(self, clock):
        """Test that one item's error does not fail its siblings."""
        tracker = OrderTracker(clock)
        orders = [tracker.track(order(px=p)) for p in (100, 101, 102)]
        clock.advance(0.5)

        tracker.record_outcome(orders, outcome(
            {"resting": {"oid": 1}},
            {"error": "Order has invalid price."},
            {"filled": {"totalSz": "1", "avgPx": "102", "oid": 3}},
        ))

        resting, failed, filled = (tracker.get_order(o.cloid) for o in orders)
        assert resting.status == TrackingStatus.SUBMITTED
        assert resting.oid == 1
        assert resting.updated_at_ms == clock.time_ms()
        assert failed.status == TrackingStatus.FAILED
        assert failed.last_error == "Order has invalid price."
        assert filled.oid == 3

    def test_rejected_outcome_fails_all(self, clock):
        tracker = OrderTracker(clock)
        orders = [tracker.track(order(px=p)) for p in (100, 101)]

        tracker.record_outcome(orders, outcome(status=OutcomeStatus.REJECTED, reason="Vault not registered"))

        failed = tracker.get_failed_orders()
        assert len(failed) == 2
        assert all(o.last_error == "Vault not registered" for o in failed)

    def test_record_error(self, clock):
        tracker = OrderTracker(clock)
        orders = [tracker.track(order())]

        tracker.record_error(orders, TransportError("timeout"))

        (failed,) = tracker.get_failed_orders()
        assert failed.last_error == "TransportError: timeout"

    def test_unknown_cloid_ignored(self, clock):
        tracker = OrderTracker(clock)
        tracker.mark_submitted(CLOID, {"resting": {"oid": 1}})
        assert tracker.get_order(CLOID) is None

    def test_views_and_clear_completed(self, clock):
        tracker = OrderTracker(clock)
        pending = tracker.track(order(px=100))
        done = tracker.track(order(px=101))
        tracker.mark_submitted(done.cloid)

        assert [o.cloid for o in tracker.get_pending_orders()] == [pending.cloid]
        assert [o.cloid for o in tracker.get_submitted_orders()] == [done.cloid]
        assert tracker.get_orders_by_status(TrackingStatus.FAILED) == []

        assert tracker.clear_completed() == 1
        assert len(tracker) == 1

        tracker.clear()
        assert tracker.get_all_orders() == []

    @pytest.mark.parametrize("response", [None, "success", {"resting": {}}])
    def test_oid_absent(self, clock, response):
        tracker = OrderTracker(clock)
        tracked = tracker.track(order())
        tracker.mark_submitted(tracked.cloid, response)
        assert tracker.get_order(tracked.cloid).oid is None
