"""
Hyperliquid API Module.

Authenticated transport core for the Hyperliquid venue:
- Nonce sequencing (per key, bounded acceptance window)
- EIP-712 action signing (L1, user-signed, multi-sig)
- Rate governance (trading / account / query buckets)
- Action dispatch (sign once, retry identical bytes)
- Order tracking by cloid and order batching
- Agent wallet approval and rotation
- Subscription multiplexing over one streaming connection
- Error handling (taxonomy, retry/backoff)

Usage:
    # Signed actions
    from hl_transport.api import ExchangeClient, EnvKeyProvider, OrderRequest, LimitOrder

    client = ExchangeClient.from_config(config, EnvKeyProvider())  # Uses HL_PRIVATE_KEY
    outcome = await client.place_orders([
        OrderRequest(asset=0, is_buy=True, limit_px=65000, sz=0.01,
                     order_type=LimitOrder("Gtc")),
    ])
    outcome.raise_for_status()

    # Info queries (unsigned)
    from hl_transport.api import InfoClient, RateGovernor

    info = InfoClient.from_config(config.network, RateGovernor.from_config())
    mids = await info.all_mids()

    # Streaming
    from hl_transport.api import SubscriptionMultiplexer, subscriptions

    async with SubscriptionMultiplexer(config.ws_url, config.websocket) as mux:
        trades = await mux.subscribe(subscriptions.trades("ETH"))
        async for frame in trades:
            print(frame["data"])
"""

# Time
from .clock import (
    Clock,
    SystemClock,
    SYSTEM_CLOCK,
)

# Nonces
from .nonce import (
    NonceSequencer,
    NonceRegistry,
    is_valid_nonce,
)

# Actions
from . import actions
from .actions import (
    Action,
    SigningDomain,
    UserSchema,
    OrderRequest,
    LimitOrder,
    TriggerOrder,
    float_to_wire,
)

# Signing
from .auth import (
    ActionSigner,
    SignedRequest,
    KeyProvider,
    StaticKeyProvider,
    EnvKeyProvider,
    FileKeyProvider,
    action_hash,
)

# Rate limiting
from .rate_limiter import (
    RateGovernor,
    TokenBucket,
    RequestClass,
    Decision,
    Admission,
)

# Error handling
from .errors import (
    # Base errors
    HyperliquidError,
    NonceWindowExceeded,
    SigningError,
    InvalidAction,
    RateLimited,
    VenueRateLimited,
    ActionRejected,
    TransportError,
    ConnectionLost,
    FatalProtocolError,
    MultiplexerClosed,
    BatcherClosed,
    ProtocolAnomaly,
    # Classification
    ErrorCategory,
    # Retry utilities
    RetryConfig,
    RetryStrategy,
    with_async_retry,
    calculate_backoff,
)

# Transports
from .transport import (
    HttpTransport,
    TransportResponse,
    RequestTransport,
    StreamConnection,
    StreamingTransport,
    WebsocketsTransport,
)

# Dispatch
from .dispatcher import (
    ActionDispatcher,
    ActionOutcome,
    OutcomeStatus,
)

# Order tracking and batching
from .order_tracker import (
    OrderTracker,
    TrackedOrder,
    TrackingStatus,
    new_cloid,
)
from .batcher import (
    OrderBatcher,
    BatchResult,
    BatchStats,
)

# Streaming
from . import subscriptions
from .subscriptions import SubscriptionKey
from .multiplexer import (
    SubscriptionMultiplexer,
    SubscriptionHandle,
    ConnectionState,
    MultiplexerStats,
)

# Clients
from .info import InfoClient, QueryFailed
from .exchange import ExchangeClient
from .agents import AgentManager, AgentWallet


__all__ = [
    # Time
    "Clock",
    "SystemClock",
    "SYSTEM_CLOCK",
    # Nonces
    "NonceSequencer",
    "NonceRegistry",
    "is_valid_nonce",
    # Actions
    "actions",
    "Action",
    "SigningDomain",
    "UserSchema",
    "OrderRequest",
    "LimitOrder",
    "TriggerOrder",
    "float_to_wire",
    # Signing
    "ActionSigner",
    "SignedRequest",
    "KeyProvider",
    "StaticKeyProvider",
    "EnvKeyProvider",
    "FileKeyProvider",
    "action_hash",
    # Rate limiting
    "RateGovernor",
    "TokenBucket",
    "RequestClass",
    "Decision",
    "Admission",
    # Errors
    "HyperliquidError",
    "NonceWindowExceeded",
    "SigningError",
    "InvalidAction",
    "RateLimited",
    "VenueRateLimited",
    "ActionRejected",
    "TransportError",
    "ConnectionLost",
    "FatalProtocolError",
    "MultiplexerClosed",
    "BatcherClosed",
    "ProtocolAnomaly",
    "ErrorCategory",
    "RetryConfig",
    "RetryStrategy",
    "with_async_retry",
    "calculate_backoff",
    # Transports
    "HttpTransport",
    "TransportResponse",
    "RequestTransport",
    "StreamConnection",
    "StreamingTransport",
    "WebsocketsTransport",
    # Dispatch
    "ActionDispatcher",
    "ActionOutcome",
    "OutcomeStatus",
    # Order tracking and batching
    "OrderTracker",
    "TrackedOrder",
    "TrackingStatus",
    "new_cloid",
    "OrderBatcher",
    "BatchResult",
    "BatchStats",
    # Streaming
    "subscriptions",
    "SubscriptionKey",
    "SubscriptionMultiplexer",
    "SubscriptionHandle",
    "ConnectionState",
    "MultiplexerStats",
    # Clients
    "InfoClient",
    "QueryFailed",
    "ExchangeClient",
    "AgentManager",
    "AgentWallet",
]
