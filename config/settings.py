"""
Configuration dataclasses for the Hyperliquid transport client.

All configuration parameters are defined here with sensible defaults.
Values can be overridden via config.yaml or environment variables.
"""

from dataclasses import dataclass, field
from typing import List, Optional
from enum import Enum


class Network(Enum):
    """Venue networks."""
    MAINNET = "mainnet"
    TESTNET = "testnet"


class OverflowPolicy(Enum):
    """What a subscription handle does when its buffer is full."""
    DROP_OLDEST = "drop_oldest"  # Evict the oldest buffered message
    BLOCK = "block"  # Receive loop waits for the consumer


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# ===========================================
# NETWORK / SIGNING DOMAIN CONFIGURATION
# ===========================================

@dataclass
class NetworkConfig:
    """Endpoints and signing domain parameters."""

    network: Network = Network.MAINNET

    mainnet_api_url: str = "https://api.hyperliquid.xyz"
    testnet_api_url: str = "https://api.hyperliquid-testnet.xyz"

    # EIP-712 domain parameters
    l1_chain_id: int = 1337
    signature_chain_id: int = 0x66EEE  # Arbitrum Sepolia, used for both networks
    verifying_contract: str = ZERO_ADDRESS

    request_timeout: float = 10.0  # seconds

    @property
    def is_mainnet(self) -> bool:
        return self.network == Network.MAINNET

    @property
    def api_url(self) -> str:
        return self.mainnet_api_url if self.is_mainnet else self.testnet_api_url

    @property
    def exchange_url(self) -> str:
        return f"{self.api_url}/exchange"

    @property
    def info_url(self) -> str:
        return f"{self.api_url}/info"

    @property
    def ws_url(self) -> str:
        return self.api_url.replace("https://", "wss://", 1) + "/ws"

    @property
    def agent_source(self) -> str:
        """Phantom agent source tag for L1 signatures."""
        return "a" if self.is_mainnet else "b"

    @property
    def chain_name(self) -> str:
        """Value of the hyperliquidChain field on user-signed actions."""
        return "Mainnet" if self.is_mainnet else "Testnet"


@dataclass
class NonceConfig:
    """Nonce acceptance window."""

    window_ms: int = 86_400_000  # Venue accepts nonces up to 1 day ahead


# ===========================================
# RATE LIMITING CONFIGURATION
# ===========================================

@dataclass
class BucketConfig:
    """Token bucket parameters for one request class."""

    capacity: float = 20.0  # Burst size
    refill_per_second: float = 10.0
    max_wait: float = 5.0  # Longest a caller may be delayed before RateLimited


@dataclass
class RateLimitConfig:
    """Independent buckets per request class."""

    trading: BucketConfig = field(
        default_factory=lambda: BucketConfig(capacity=20.0, refill_per_second=10.0)
    )
    account: BucketConfig = field(
        default_factory=lambda: BucketConfig(capacity=10.0, refill_per_second=2.0)
    )
    query: BucketConfig = field(
        default_factory=lambda: BucketConfig(capacity=1200.0, refill_per_second=20.0)
    )


@dataclass
class DispatchConfig:
    """Retry behaviour for signed action submission."""

    max_retries: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    exponential_base: float = 2.0
    jitter: bool = True


@dataclass
class BatchConfig:
    """Order batching: many queued orders and cancels per signed action."""

    enabled: bool = False
    interval: float = 0.1  # Seconds between flushes
    max_batch_size: int = 100  # Items per action
    prioritize_alo: bool = True  # Send ALO orders in their own batch, before others
    max_wait_time: float = 0.5  # Longest an item may wait for a flush


@dataclass
class AgentConfig:
    """Agent wallet lifecycle."""

    name: str = "default"  # Named agent slot, replaced on rotation
    ttl: float = 86_400.0  # Seconds before an agent is rotated


# ===========================================
# WEBSOCKET CONFIGURATION
# ===========================================

@dataclass
class WebSocketConfig:
    """Streaming connection configuration."""

    url: Optional[str] = None  # Derived from NetworkConfig when None
    ping_interval: float = 50.0  # Venue closes idle sockets after 60s
    open_timeout: float = 10.0
    reconnect_delay: float = 1.0  # Initial delay
    max_reconnect_delay: float = 60.0  # Max backoff
    reconnect_multiplier: float = 2.0
    max_reconnect_attempts: int = 10  # 0 = unlimited
    handle_buffer_size: int = 1000  # Max buffered messages per handle (0 = unbounded)
    overflow_policy: OverflowPolicy = OverflowPolicy.DROP_OLDEST


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    file_path: Optional[str] = None


# ===========================================
# MAIN CLIENT CONFIGURATION
# ===========================================

@dataclass
class ClientConfig:
    """Complete client configuration combining all sub-configs."""

    network: NetworkConfig = field(default_factory=NetworkConfig)
    nonce: NonceConfig = field(default_factory=NonceConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    websocket: WebSocketConfig = field(default_factory=WebSocketConfig)
    batching: BatchConfig = field(default_factory=BatchConfig)
    agents: AgentConfig = field(default_factory=AgentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Follow every order by cloid (see hl_transport.api.order_tracker)
    track_orders: bool = False

    # Optional vault / sub-account that L1 actions trade on behalf of
    vault_address: Optional[str] = None

    @property
    def ws_url(self) -> str:
        return self.websocket.url or self.network.ws_url

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if self.nonce.window_ms <= 0:
            errors.append("Nonce window must be positive")

        for name in ("trading", "account", "query"):
            bucket = getattr(self.rate_limits, name)
            if bucket.capacity <= 0 or bucket.refill_per_second <= 0:
                errors.append(f"Rate limit bucket '{name}' needs positive capacity and refill")
            if bucket.max_wait < 0:
                errors.append(f"Rate limit bucket '{name}' has negative max_wait")

        if self.dispatch.max_retries < 0:
            errors.append("Dispatch max_retries cannot be negative")

        if self.batching.interval <= 0 or self.batching.max_wait_time <= 0:
            errors.append("Batch interval and max_wait_time must be positive")

        if self.batching.max_batch_size < 1:
            errors.append("Batch max_batch_size must be at least 1")

        if self.agents.ttl <= 0:
            errors.append("Agent ttl must be positive")

        if self.websocket.handle_buffer_size < 0:
            errors.append("WebSocket handle_buffer_size cannot be negative")

        if self.websocket.max_reconnect_attempts < 0:
            errors.append("WebSocket max_reconnect_attempts cannot be negative")

        if self.vault_address is not None and not _looks_like_address(self.vault_address):
            errors.append(f"Invalid vault address: {self.vault_address}")

        return errors


def _looks_like_address(value: str) -> bool:
    if not value.startswith("0x") or len(value) != 42:
        return False
    try:
        int(value[2:], 16)
    except ValueError:
        return False
    return True
