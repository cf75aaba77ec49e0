"""
Hyperliquid exchange client.

Facade over the signed-action path for one key:

    ActionSigner ─┐
    NonceSequencer├─► ActionDispatcher ─► HttpTransport (/exchange)
    RateGovernor ─┘

Keys that share a process should share one NonceRegistry and one
RateGovernor; from_config() accepts both.

Optional layers, switched on in ClientConfig:
- track_orders: every placed order is tracked by cloid (OrderTracker)
- batching.enabled: queue_order() / queue_cancel() go through an OrderBatcher
"""

import asyncio
import logging
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from eth_account import Account

from config.settings import ClientConfig

from . import actions
from .actions import Action, OrderRequest
from .auth import ActionSigner, KeyProvider
from .batcher import OrderBatcher
from .clock import Clock
from .dispatcher import ActionDispatcher, ActionOutcome
from .errors import HyperliquidError
from .nonce import NonceRegistry
from .order_tracker import OrderTracker, TrackedOrder, TrackingStatus
from .rate_limiter import RateGovernor
from .transport import HttpTransport, RequestTransport

logger = logging.getLogger(__name__)

Amount = Union[float, Decimal, str]


class ExchangeClient:
    """
    Signed actions for one account.

    Usage:
        client = ExchangeClient.from_config(config, EnvKeyProvider())

        outcome = await client.place_orders([
            OrderRequest(asset=0, is_buy=True, limit_px=65000, sz=0.01,
                         order_type=LimitOrder("Gtc")),
        ])
        for status in outcome.statuses:
            ...

    L1 actions are sent on behalf of vault_address when one is configured.
    """

    def __init__(
        self,
        dispatcher: ActionDispatcher,
        vault_address: Optional[str] = None,
        tracker: Optional[OrderTracker] = None,
        batcher: Optional[OrderBatcher] = None,
    ):
        self._dispatcher = dispatcher
        self._vault_address = vault_address
        self._tracker = tracker
        self._batcher = batcher

        # Set by from_config(); builds clients for other keys on the same wiring
        self._factory: Optional[Callable[[KeyProvider], "ExchangeClient"]] = None

        logger.info(
            f"Initialized exchange client for {self.address} "
            f"(vault={vault_address or 'none'})"
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        key_provider: KeyProvider,
        transport: Optional[RequestTransport] = None,
        clock: Optional[Clock] = None,
        registry: Optional[NonceRegistry] = None,
        governor: Optional[RateGovernor] = None,
    ) -> "ExchangeClient":
        """
        Wire a client from configuration.

        Args:
            config: Client configuration
            key_provider: Source of the signing key
            transport: Exchange transport (HTTP by default)
            clock: Time source for nonces and rate limiting
            registry: Shared per-key nonce registry
            governor: Shared rate governor

        Raises:
            ValueError: If the configuration is invalid
            SigningError: If the key cannot be loaded
        """
        errors = config.validate()
        if errors:
            raise ValueError(f"Invalid configuration: {'; '.join(errors)}")

        signer = ActionSigner(key_provider, config.network)
        registry = registry or NonceRegistry(config.nonce.window_ms, clock)
        governor = governor or RateGovernor.from_config(config.rate_limits, clock)
        transport = transport or HttpTransport(
            config.network.exchange_url, timeout=config.network.request_timeout
        )

        dispatcher = ActionDispatcher(
            signer,
            registry.sequencer_for(signer.address),
            governor,
            transport,
            config.dispatch,
        )

        tracker = OrderTracker(clock) if config.track_orders else None
        batcher = None
        if config.batching.enabled:
            batcher = OrderBatcher(dispatcher, config.batching, config.vault_address, tracker)

        client = cls(dispatcher, vault_address=config.vault_address, tracker=tracker, batcher=batcher)
        client._factory = partial(
            cls.from_config,
            config,
            transport=transport,
            clock=clock,
            registry=registry,
            governor=governor,
        )
        return client

    def for_key(self, key_provider: KeyProvider) -> "ExchangeClient":
        """
        Client for another key sharing this client's transport, nonce
        registry and rate governor.

        Raises:
            ValueError: If this client was not built by from_config()
        """
        if self._factory is None:
            raise ValueError("Client was not built from configuration")
        return self._factory(key_provider)

    @property
    def address(self) -> str:
        return self._dispatcher.signer.address

    @property
    def dispatcher(self) -> ActionDispatcher:
        return self._dispatcher

    async def submit(self, action: Action) -> ActionOutcome:
        """Submit any action (see actions module for builders)."""
        return await self._dispatcher.submit(action)

    # ==========================================
    # TRADING (L1)
    # ==========================================

    async def place_orders(
        self,
        orders: Sequence[OrderRequest],
        grouping: str = "na",
        builder: Optional[Tuple[str, int]] = None,
    ) -> ActionOutcome:
        if self._tracker is None:
            return await self.submit(actions.order(orders, grouping, builder, self._vault_address))

        orders = [self._tracker.track(o) for o in orders]
        try:
            outcome = await self.submit(actions.order(orders, grouping, builder, self._vault_address))
        except HyperliquidError as e:
            self._tracker.record_error(orders, e)
            raise
        self._tracker.record_outcome(orders, outcome)
        return outcome

    async def cancel_orders(self, cancels: Sequence[Tuple[int, int]]) -> ActionOutcome:
        """Cancel by (asset, oid)."""
        return await self.submit(actions.cancel(cancels, self._vault_address))

    async def cancel_orders_by_cloid(self, cancels: Sequence[Tuple[int, str]]) -> ActionOutcome:
        return await self.submit(actions.cancel_by_cloid(cancels, self._vault_address))

    async def modify_order(self, oid: Union[int, str], new_order: OrderRequest) -> ActionOutcome:
        return await self.submit(actions.modify(oid, new_order, self._vault_address))

    async def modify_orders(
        self,
        modifies: Sequence[Tuple[Union[int, str], OrderRequest]],
    ) -> ActionOutcome:
        return await self.submit(actions.batch_modify(modifies, self._vault_address))

    async def update_leverage(self, asset: int, leverage: int, is_cross: bool = True) -> ActionOutcome:
        return await self.submit(
            actions.update_leverage(asset, leverage, is_cross, self._vault_address)
        )

    async def update_isolated_margin(self, asset: int, amount_usd: Amount) -> ActionOutcome:
        return await self.submit(
            actions.update_isolated_margin(asset, amount_usd, self._vault_address)
        )

    async def schedule_cancel(self, time_ms: Optional[int] = None) -> ActionOutcome:
        """Dead man's switch: cancel all orders at time_ms (None clears it)."""
        return await self.submit(actions.schedule_cancel(time_ms, self._vault_address))

    async def twap_order(
        self,
        asset: int,
        is_buy: bool,
        sz: Amount,
        minutes: int,
        reduce_only: bool = False,
        randomize: bool = False,
    ) -> ActionOutcome:
        return await self.submit(
            actions.twap_order(asset, is_buy, sz, minutes, reduce_only, randomize, self._vault_address)
        )

    async def twap_cancel(self, asset: int, twap_id: int) -> ActionOutcome:
        return await self.submit(actions.twap_cancel(asset, twap_id, self._vault_address))

    # ==========================================
    # ACCOUNT (USER-SIGNED)
    # ==========================================

    async def usd_send(self, destination: str, amount: Amount) -> ActionOutcome:
        return await self.submit(actions.usd_send(destination, amount))

    async def spot_send(self, destination: str, token: str, amount: Amount) -> ActionOutcome:
        return await self.submit(actions.spot_send(destination, token, amount))

    async def withdraw(self, destination: str, amount: Amount) -> ActionOutcome:
        """Withdraw USDC to an address on Arbitrum."""
        return await self.submit(actions.withdraw(destination, amount))

    async def usd_class_transfer(self, amount: Amount, to_perp: bool) -> ActionOutcome:
        return await self.submit(actions.usd_class_transfer(amount, to_perp))

    async def approve_agent(self, agent_address: str, agent_name: Optional[str] = None) -> ActionOutcome:
        return await self.submit(actions.approve_agent(agent_address, agent_name))

    async def approve_agent_new(self, agent_name: Optional[str] = None) -> Tuple[str, ActionOutcome]:
        """
        Generate a fresh agent key and approve it.

        Returns:
            (agent private key as 0x-hex, approval outcome)
        """
        agent = Account.create()
        private_key = "0x" + bytes(agent.key).hex()
        outcome = await self.approve_agent(agent.address, agent_name)
        logger.info(f"Approved new agent {agent.address} (name={agent_name or 'none'}, ok={outcome.ok})")
        return private_key, outcome

    async def approve_builder_fee(self, builder: str, max_fee_rate: str) -> ActionOutcome:
        return await self.submit(actions.approve_builder_fee(builder, max_fee_rate))

    # ==========================================
    # BATCHING
    # ==========================================

    def _require_batcher(self) -> OrderBatcher:
        if self._batcher is None:
            raise ValueError("Batching is not enabled for this client")
        return self._batcher

    def queue_order(self, order: OrderRequest) -> asyncio.Future:
        """Queue an order for the next batch; the future resolves to a BatchResult."""
        return self._require_batcher().add_order(order)

    def queue_cancel(self, asset: int, oid: int) -> asyncio.Future:
        return self._require_batcher().add_cancel(asset, oid)

    async def flush(self) -> int:
        """Send queued orders and cancels now."""
        return await self._require_batcher().flush()

    async def close(self) -> None:
        """Flush and stop the batcher, if any."""
        if self._batcher is not None:
            await self._batcher.close()

    # ==========================================
    # ORDER TRACKING
    # ==========================================

    def _require_tracker(self) -> OrderTracker:
        if self._tracker is None:
            raise ValueError("Order tracking is not enabled for this client")
        return self._tracker

    def get_tracked_order(self, cloid: str) -> Optional[TrackedOrder]:
        return self._require_tracker().get_order(cloid)

    def get_orders_by_status(self, status: TrackingStatus) -> List[TrackedOrder]:
        return self._require_tracker().get_orders_by_status(status)

    def get_pending_orders(self) -> List[TrackedOrder]:
        return self._require_tracker().get_pending_orders()

    def get_submitted_orders(self) -> List[TrackedOrder]:
        return self._require_tracker().get_submitted_orders()

    def get_failed_orders(self) -> List[TrackedOrder]:
        return self._require_tracker().get_failed_orders()

    # ==========================================
    # MULTI-SIG
    # ==========================================

    def reserve_nonce(self) -> int:
        """Fix the nonce for a multi-sig round before collecting co-signatures."""
        return self._dispatcher.reserve_nonce()

    def co_sign(self, inner: Action, nonce: int, multi_sig_user: str, outer_signer: str) -> Dict[str, Any]:
        """This key's co-signature for another account's multi-sig submission."""
        return self._dispatcher.signer.co_sign(inner, nonce, multi_sig_user, outer_signer)

    async def submit_multi_sig(
        self,
        multi_sig_user: str,
        inner: Action,
        signatures: Sequence[Mapping[str, Any]],
        nonce: int,
    ) -> ActionOutcome:
        """
        Submit an action for a multi-sig account, this key being the outer signer.

        Args:
            multi_sig_user: The multi-sig account
            inner: Action co-signed by the authorized users
            signatures: Their co-signatures
            nonce: Nonce from reserve_nonce() that they signed over
        """
        action = actions.multi_sig(
            multi_sig_user,
            self.address,
            inner,
            signatures,
            nonce,
            inner.vault_address,
        )
        return await self.submit(action)
