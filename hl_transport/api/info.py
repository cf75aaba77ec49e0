"""
Hyperliquid info endpoint client.

Unsigned queries POSTed to {base}/info. Each query type carries a weight
charged against the QUERY rate bucket, mirroring the venue's accounting:
- weight 2: l2Book, allMids, clearinghouseState, orderStatus,
  spotClearinghouseState, exchangeStatus
- weight 60: userRole
- weight 20: everything else

Queries are idempotent, so transient failures are retried with backoff.
Responses are returned as decoded JSON; no per-query schema is imposed.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from config.settings import DispatchConfig, NetworkConfig

from .errors import (
    HyperliquidError,
    ErrorCategory,
    RetryConfig,
    TransportError,
    VenueRateLimited,
    with_async_retry,
)
from .rate_limiter import RateGovernor, RequestClass
from .transport import HttpTransport, RequestTransport

logger = logging.getLogger(__name__)

DEFAULT_QUERY_WEIGHT = 20

QUERY_WEIGHTS: Dict[str, int] = {
    "l2Book": 2,
    "allMids": 2,
    "clearinghouseState": 2,
    "orderStatus": 2,
    "spotClearinghouseState": 2,
    "exchangeStatus": 2,
    "userRole": 60,
}


class QueryFailed(HyperliquidError):
    """The info endpoint refused the query (bad type, bad parameters)."""
    category = ErrorCategory.REJECTED

    def __init__(self, status: int, payload: Any):
        self.status = status
        self.payload = payload
        super().__init__(f"Query failed with HTTP {status}: {payload}")


def query_weight(query_type: str) -> int:
    return QUERY_WEIGHTS.get(query_type, DEFAULT_QUERY_WEIGHT)


class InfoClient:
    """
    Client for the info endpoint.

    Usage:
        info = InfoClient.from_config(config.network, governor)
        mids = await info.all_mids()
        book = await info.l2_snapshot("BTC")
    """

    def __init__(
        self,
        transport: RequestTransport,
        governor: RateGovernor,
        retry: Optional[RetryConfig] = None,
    ):
        """
        Initialize info client.

        Args:
            transport: Transport bound to the info endpoint
            governor: Rate governor (QUERY bucket is charged)
            retry: Retry settings for transient failures
        """
        self._transport = transport
        self._governor = governor
        self._query = with_async_retry(retry or RetryConfig())(self._query_once)

    @classmethod
    def from_config(
        cls,
        network: NetworkConfig,
        governor: RateGovernor,
        dispatch: Optional[DispatchConfig] = None,
    ) -> "InfoClient":
        dispatch = dispatch or DispatchConfig()
        retry = RetryConfig(
            max_retries=dispatch.max_retries,
            base_delay=dispatch.base_delay,
            max_delay=dispatch.max_delay,
            exponential_base=dispatch.exponential_base,
            jitter=dispatch.jitter,
        )
        transport = HttpTransport(network.info_url, timeout=network.request_timeout)
        return cls(transport, governor, retry)

    async def query(self, body: Dict[str, Any]) -> Any:
        """
        Run an arbitrary info query.

        Args:
            body: Query body, e.g. {"type": "meta"}

        Returns:
            Decoded JSON response

        Raises:
            QueryFailed: The venue refused the query
            RateLimited: Local QUERY budget exhausted
            TransportError / VenueRateLimited: Retries exhausted
        """
        if "type" not in body:
            raise ValueError("Info query needs a 'type'")
        return await self._query(body)

    async def _query_once(self, body: Dict[str, Any]) -> Any:
        await self._governor.acquire(RequestClass.QUERY, query_weight(body["type"]))

        response = await self._transport.post(
            json.dumps(body, separators=(",", ":")).encode("utf-8")
        )

        if response.status == 429:
            raise VenueRateLimited(f"Venue rate limit on {body['type']} query")
        if response.status >= 500:
            raise TransportError(f"Server error {response.status} on {body['type']} query")
        if response.status != 200:
            raise QueryFailed(response.status, response.payload)

        logger.debug(f"Info query {body['type']} ok")
        return response.payload

    # ==========================================
    # MARKET DATA
    # ==========================================

    async def all_mids(self) -> Dict[str, str]:
        """Mid price of every coin."""
        return await self.query({"type": "allMids"})

    async def meta(self) -> Dict[str, Any]:
        """Perp universe (asset index = position in "universe")."""
        return await self.query({"type": "meta"})

    async def spot_meta(self) -> Dict[str, Any]:
        return await self.query({"type": "spotMeta"})

    async def l2_snapshot(self, coin: str) -> Dict[str, Any]:
        return await self.query({"type": "l2Book", "coin": coin})

    async def candles_snapshot(
        self,
        coin: str,
        interval: str,
        start_time: int,
        end_time: int,
    ) -> List[Dict[str, Any]]:
        """
        Candles between two timestamps.

        Args:
            coin: Coin name
            interval: Candle interval (e.g. "1m", "1h")
            start_time: Start, epoch milliseconds
            end_time: End, epoch milliseconds
        """
        return await self.query({
            "type": "candleSnapshot",
            "req": {"coin": coin, "interval": interval, "startTime": start_time, "endTime": end_time},
        })

    # ==========================================
    # ACCOUNT STATE
    # ==========================================

    async def user_state(self, address: str) -> Dict[str, Any]:
        """Perp positions and margin summary."""
        return await self.query({"type": "clearinghouseState", "user": address})

    async def spot_user_state(self, address: str) -> Dict[str, Any]:
        return await self.query({"type": "spotClearinghouseState", "user": address})

    async def open_orders(self, address: str) -> List[Dict[str, Any]]:
        return await self.query({"type": "openOrders", "user": address})

    async def user_fills(self, address: str) -> List[Dict[str, Any]]:
        return await self.query({"type": "userFills", "user": address})

    async def order_status(self, address: str, oid: Any) -> Dict[str, Any]:
        """Status of one order by oid or cloid (reconciles unconfirmed sends)."""
        return await self.query({"type": "orderStatus", "user": address, "oid": oid})

    async def user_rate_limit(self, address: str) -> Dict[str, Any]:
        return await self.query({"type": "userRateLimit", "user": address})

    async def user_role(self, address: str) -> Dict[str, Any]:
        return await self.query({"type": "userRole", "user": address})

    async def multi_sig_signers(self, address: str) -> Optional[Dict[str, Any]]:
        """Authorized users and threshold of a multi-sig account (None if not one)."""
        return await self.query({"type": "userToMultiSigSigners", "user": address})

    async def asset_index(self, coin: str) -> int:
        """
        Resolve a perp coin name to its asset index.

        Raises:
            KeyError: If the coin is not listed
        """
        universe = (await self.meta()).get("universe", [])
        for index, asset in enumerate(universe):
            if asset.get("name") == coin:
                return index
        raise KeyError(f"Unknown coin: {coin}")

    def close(self) -> None:
        close = getattr(self._transport, "close", None)
        if close is not None:
            close()
