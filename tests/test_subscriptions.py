"""
Tests for subscription keys and inbound frame routing.
"""

import pytest

from hl_transport.api import subscriptions
from hl_transport.api.errors import ProtocolAnomaly
from hl_transport.api.subscriptions import (
    SubscriptionKey,
    resolve_key,
    subscribe_frame,
    unsubscribe_frame,
)

USER = "0x" + "Ab" * 20


def keys(*subs):
    return {SubscriptionKey.from_subscription(s): None for s in subs}


class TestSubscriptionKey:
    """Tests for SubscriptionKey normalization."""

    def test_parameter_order_irrelevant(self):
        first = SubscriptionKey.from_subscription({"type": "candle", "coin": "BTC", "interval": "1m"})
        second = SubscriptionKey.from_subscription({"interval": "1m", "type": "candle", "coin": "BTC"})
        assert first == second
        assert hash(first) == hash(second)

    def test_user_case_insensitive(self):
        upper = SubscriptionKey.from_subscription(subscriptions.user_fills(USER))
        lower = SubscriptionKey.from_subscription(subscriptions.user_fills(USER.lower()))
        assert upper == lower
        assert upper.param("user") == USER.lower()

    def test_none_parameters_dropped(self):
        key = SubscriptionKey.from_subscription({"type": "l2Book", "coin": "ETH", "nSigFigs": None})
        assert key == SubscriptionKey.from_subscription(subscriptions.l2_book("ETH"))

    def test_distinct_params_distinct_keys(self):
        assert SubscriptionKey.from_subscription(subscriptions.trades("BTC")) != (
            SubscriptionKey.from_subscription(subscriptions.trades("ETH"))
        )

    def test_type_required(self):
        with pytest.raises(ValueError):
            SubscriptionKey.from_subscription({"coin": "BTC"})

    def test_frames(self):
        key = SubscriptionKey.from_subscription(subscriptions.candle("BTC", "1h"))
        assert subscribe_frame(key) == {
            "method": "subscribe",
            "subscription": {"type": "candle", "coin": "BTC", "interval": "1h"},
        }
        assert unsubscribe_frame(key)["method"] == "unsubscribe"

    def test_str(self):
        assert str(SubscriptionKey.from_subscription(subscriptions.all_mids())) == "allMids"
        assert str(SubscriptionKey.from_subscription(subscriptions.bbo("SOL"))) == "bbo(coin=SOL)"


class TestCatalog:
    """Tests for the channel catalog builders."""

    def test_l2_book_aggregation(self):
        assert subscriptions.l2_book("BTC", n_sig_figs=5, mantissa=2) == {
            "type": "l2Book", "coin": "BTC", "nSigFigs": 5, "mantissa": 2,
        }

    def test_user_channels(self):
        assert subscriptions.order_updates(USER) == {"type": "orderUpdates", "user": USER}
        assert subscriptions.web_data2(USER)["type"] == "webData2"
        assert subscriptions.user_non_funding_ledger_updates.__name__ == "userNonFundingLedgerUpdates"


class TestResolveKey:
    """Tests for resolve_key()."""

    def test_echoed_coin(self):
        registered = keys(subscriptions.l2_book("BTC"), subscriptions.l2_book("ETH"))
        key = resolve_key("l2Book", {"coin": "ETH", "levels": [[], []]}, registered)
        assert key.param("coin") == "ETH"

    def test_trades_use_first_trade_coin(self):
        registered = keys(subscriptions.trades("BTC"), subscriptions.trades("ETH"))
        key = resolve_key("trades", [{"coin": "BTC", "px": "1"}], registered)
        assert key.param("coin") == "BTC"

    def test_candle_fields(self):
        registered = keys(subscriptions.candle("BTC", "1m"), subscriptions.candle("BTC", "5m"))
        key = resolve_key("candle", {"s": "BTC", "i": "5m", "c": "1"}, registered)
        assert key.param("interval") == "5m"

    def test_user_echo_case_insensitive(self):
        registered = keys(subscriptions.user_fills(USER))
        key = resolve_key("userFills", {"user": USER.upper().replace("0X", "0x"), "fills": []}, registered)
        assert key.channel == "userFills"

    def test_no_param_channel(self):
        """Test that channels echoing nothing route to their only subscription."""
        registered = keys(subscriptions.order_updates(USER), subscriptions.all_mids())
        assert resolve_key("orderUpdates", [{"status": "open"}], registered).channel == "orderUpdates"
        assert resolve_key("allMids", {"mids": {}}, registered).channel == "allMids"

    def test_user_events_alias(self):
        """Test that inbound 'user' frames belong to userEvents subscriptions."""
        registered = keys(subscriptions.user_events(USER))
        assert resolve_key("user", {"fills": []}, registered).channel == "userEvents"

    def test_unechoed_parameters_matched(self):
        """Test that l2Book aggregation params the venue does not echo still route."""
        registered = keys(subscriptions.l2_book("BTC", n_sig_figs=5))
        key = resolve_key("l2Book", {"coin": "BTC", "levels": []}, registered)
        assert key.param("nSigFigs") == 5

    def test_ambiguous(self):
        """Test that a frame matching two subscriptions is an anomaly."""
        registered = keys(
            subscriptions.l2_book("BTC", n_sig_figs=5),
            subscriptions.l2_book("BTC", n_sig_figs=4),
        )
        with pytest.raises(ProtocolAnomaly, match="matches 2"):
            resolve_key("l2Book", {"coin": "BTC", "levels": []}, registered)

    def test_plain_and_aggregated_book_ambiguous(self):
        """Test that an exact parameter match does not hide an aggregated book."""
        registered = keys(
            subscriptions.l2_book("BTC"),
            subscriptions.l2_book("BTC", n_sig_figs=5),
        )
        with pytest.raises(ProtocolAnomaly, match="matches 2"):
            resolve_key("l2Book", {"coin": "BTC", "levels": []}, registered)

    def test_plain_book_alongside_other_coin(self):
        registered = keys(
            subscriptions.l2_book("BTC"),
            subscriptions.l2_book("ETH", n_sig_figs=5),
        )
        key = resolve_key("l2Book", {"coin": "BTC", "levels": []}, registered)
        assert key == SubscriptionKey.from_subscription(subscriptions.l2_book("BTC"))

    def test_ambiguous_no_param_channel(self):
        registered = keys(
            subscriptions.order_updates(USER),
            subscriptions.order_updates("0x" + "11" * 20),
        )
        with pytest.raises(ProtocolAnomaly):
            resolve_key("orderUpdates", [], registered)

    def test_unknown_channel(self):
        with pytest.raises(ProtocolAnomaly, match="Unknown channel"):
            resolve_key("mystery", {}, keys(subscriptions.all_mids()))

    def test_missing_field(self):
        with pytest.raises(ProtocolAnomaly, match="no 'coin'"):
            resolve_key("l2Book", {"levels": []}, keys(subscriptions.l2_book("BTC")))

    def test_not_subscribed(self):
        with pytest.raises(ProtocolAnomaly, match="No subscription"):
            resolve_key("bbo", {"coin": "DOGE"}, keys(subscriptions.bbo("BTC")))

    def test_empty_trades(self):
        with pytest.raises(ProtocolAnomaly):
            resolve_key("trades", [], keys(subscriptions.trades("BTC")))
