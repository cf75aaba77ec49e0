"""
Hyperliquid streaming subscriptions.

Subscription requests are {"type": <channel>, ...params}. Inbound frames
are {"channel": <name>, "data": ...} and echo only some parameters, so each
channel has a route describing where its parameters live in the payload:
- coin: data.coin, data.s (candles) or data[0].coin (trades)
- interval: data.i (candles)
- user: data.user
Channels that echo nothing (notification, orderUpdates, userEvents) are
resolved to the single registered subscription of that type.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from .errors import ProtocolAnomaly

# Frames that are protocol traffic, not subscription data
CONTROL_CHANNELS = frozenset({"subscriptionResponse", "pong", "error"})

PING_FRAME = {"method": "ping"}


@dataclass(frozen=True)
class SubscriptionKey:
    """
    Normalized identity of a subscription.

    Parameter order does not matter and user addresses are compared
    case-insensitively, so equivalent requests produce equal keys.
    """

    channel: str
    params: Tuple[Tuple[str, Any], ...] = ()

    @classmethod
    def from_subscription(cls, subscription: Mapping[str, Any]) -> "SubscriptionKey":
        channel = subscription.get("type")
        if not channel:
            raise ValueError(f"Subscription needs a 'type': {dict(subscription)}")

        params = []
        for name, value in subscription.items():
            if name == "type" or value is None:
                continue
            if name == "user" and isinstance(value, str):
                value = value.lower()
            params.append((name, value))

        return cls(channel, tuple(sorted(params, key=lambda p: p[0])))

    def param(self, name: str) -> Any:
        for key, value in self.params:
            if key == name:
                return value
        return None

    def to_subscription(self) -> Dict[str, Any]:
        subscription: Dict[str, Any] = {"type": self.channel}
        subscription.update(self.params)
        return subscription

    def __str__(self) -> str:
        if not self.params:
            return self.channel
        args = ",".join(f"{k}={v}" for k, v in self.params)
        return f"{self.channel}({args})"


def subscribe_frame(key: SubscriptionKey) -> Dict[str, Any]:
    return {"method": "subscribe", "subscription": key.to_subscription()}


def unsubscribe_frame(key: SubscriptionKey) -> Dict[str, Any]:
    return {"method": "unsubscribe", "subscription": key.to_subscription()}


# ==========================================
# CHANNEL CATALOG
# ==========================================

def all_mids() -> Dict[str, Any]:
    return {"type": "allMids"}


def l2_book(
    coin: str,
    n_sig_figs: Optional[int] = None,
    mantissa: Optional[int] = None,
) -> Dict[str, Any]:
    """Order book levels; optional price aggregation."""
    subscription: Dict[str, Any] = {"type": "l2Book", "coin": coin}
    if n_sig_figs is not None:
        subscription["nSigFigs"] = n_sig_figs
    if mantissa is not None:
        subscription["mantissa"] = mantissa
    return subscription


def trades(coin: str) -> Dict[str, Any]:
    return {"type": "trades", "coin": coin}


def candle(coin: str, interval: str) -> Dict[str, Any]:
    """Candles; interval is one of 1m 3m 5m 15m 30m 1h 2h 4h 8h 12h 1d 3d 1w 1M."""
    return {"type": "candle", "coin": coin, "interval": interval}


def bbo(coin: str) -> Dict[str, Any]:
    return {"type": "bbo", "coin": coin}


def active_asset_ctx(coin: str) -> Dict[str, Any]:
    return {"type": "activeAssetCtx", "coin": coin}


def active_asset_data(user: str, coin: str) -> Dict[str, Any]:
    return {"type": "activeAssetData", "user": user, "coin": coin}


def _user_channel(channel: str) -> Callable[[str], Dict[str, Any]]:
    def build(user: str) -> Dict[str, Any]:
        return {"type": channel, "user": user}
    build.__name__ = channel
    build.__doc__ = f"{channel} updates for one user."
    return build


notification = _user_channel("notification")
web_data2 = _user_channel("webData2")
web_data3 = _user_channel("webData3")
order_updates = _user_channel("orderUpdates")
user_events = _user_channel("userEvents")
user_fills = _user_channel("userFills")
user_fundings = _user_channel("userFundings")
user_non_funding_ledger_updates = _user_channel("userNonFundingLedgerUpdates")
open_orders = _user_channel("openOrders")
clearinghouse_state = _user_channel("clearinghouseState")
twap_states = _user_channel("twapStates")
user_twap_slice_fills = _user_channel("userTwapSliceFills")
user_twap_history = _user_channel("userTwapHistory")


# ==========================================
# INBOUND ROUTING
# ==========================================

Extractor = Callable[[Any], Dict[str, Any]]


def _field(data: Any, source: str) -> Any:
    if not isinstance(data, dict) or source not in data:
        raise ProtocolAnomaly(f"Frame data has no '{source}' field", data)
    return data[source]


def _echo(**sources: str) -> Extractor:
    """Extractor reading echoed parameters from fields of data."""
    def extract(data: Any) -> Dict[str, Any]:
        return {param: _field(data, source) for param, source in sources.items()}
    return extract


def _first_coin(data: Any) -> Dict[str, Any]:
    if not isinstance(data, list) or not data:
        raise ProtocolAnomaly("Trades frame without trades", data)
    return {"coin": _field(data[0], "coin")}


def _nothing(data: Any) -> Dict[str, Any]:
    return {}


@dataclass(frozen=True)
class ChannelRoute:
    """How to find the subscription an inbound channel belongs to."""
    subscription_type: str
    extract: Extractor


CHANNEL_ROUTES: Dict[str, ChannelRoute] = {
    "allMids": ChannelRoute("allMids", _nothing),
    "l2Book": ChannelRoute("l2Book", _echo(coin="coin")),
    "trades": ChannelRoute("trades", _first_coin),
    "candle": ChannelRoute("candle", _echo(coin="s", interval="i")),
    "bbo": ChannelRoute("bbo", _echo(coin="coin")),
    "activeAssetCtx": ChannelRoute("activeAssetCtx", _echo(coin="coin")),
    "activeAssetData": ChannelRoute("activeAssetData", _echo(user="user", coin="coin")),
    "notification": ChannelRoute("notification", _nothing),
    "orderUpdates": ChannelRoute("orderUpdates", _nothing),
    "user": ChannelRoute("userEvents", _nothing),
    "webData2": ChannelRoute("webData2", _echo(user="user")),
    "webData3": ChannelRoute("webData3", _echo(user="user")),
    "userFills": ChannelRoute("userFills", _echo(user="user")),
    "userFundings": ChannelRoute("userFundings", _echo(user="user")),
    "userNonFundingLedgerUpdates": ChannelRoute(
        "userNonFundingLedgerUpdates", _echo(user="user")
    ),
    "openOrders": ChannelRoute("openOrders", _echo(user="user")),
    "clearinghouseState": ChannelRoute("clearinghouseState", _echo(user="user")),
    "twapStates": ChannelRoute("twapStates", _echo(user="user")),
    "userTwapSliceFills": ChannelRoute("userTwapSliceFills", _echo(user="user")),
    "userTwapHistory": ChannelRoute("userTwapHistory", _echo(user="user")),
}


def resolve_key(
    channel: str,
    data: Any,
    registered: Mapping[SubscriptionKey, Any],
) -> SubscriptionKey:
    """
    Find the registered subscription an inbound frame belongs to.

    Args:
        channel: Frame's channel name
        data: Frame's data member
        registered: Active subscriptions (keys are looked up directly)

    Returns:
        The matching SubscriptionKey

    Raises:
        ProtocolAnomaly: Unknown channel, missing fields, no match, or
            more than one match
    """
    route = CHANNEL_ROUTES.get(channel)
    if route is None:
        raise ProtocolAnomaly(f"Unknown channel '{channel}'", data)

    echoed = route.extract(data)
    if "user" in echoed and isinstance(echoed["user"], str):
        echoed["user"] = echoed["user"].lower()

    direct = SubscriptionKey.from_subscription({"type": route.subscription_type, **echoed})

    # A key whose unechoed parameters differ (nSigFigs, mantissa) matches too,
    # so an exact hit only wins when it is the only candidate
    candidates = _matching(route.subscription_type, echoed, registered)
    if len(candidates) == 1:
        return candidates[0]
    if not candidates:
        raise ProtocolAnomaly(f"No subscription for {direct}", data)
    raise ProtocolAnomaly(
        f"Frame for {direct} matches {len(candidates)} subscriptions", data
    )


def _matching(
    subscription_type: str,
    echoed: Dict[str, Any],
    keys: Iterable[SubscriptionKey],
) -> list:
    return [
        key for key in keys
        if key.channel == subscription_type
        and all(key.param(name) == value for name, value in echoed.items())
    ]
