"""Configuration module for the Hyperliquid transport client."""

from .settings import (
    Network,
    OverflowPolicy,
    NetworkConfig,
    NonceConfig,
    BucketConfig,
    RateLimitConfig,
    DispatchConfig,
    BatchConfig,
    AgentConfig,
    WebSocketConfig,
    LoggingConfig,
    ClientConfig,
    ZERO_ADDRESS,
)

__all__ = [
    "Network",
    "OverflowPolicy",
    "NetworkConfig",
    "NonceConfig",
    "BucketConfig",
    "RateLimitConfig",
    "DispatchConfig",
    "BatchConfig",
    "AgentConfig",
    "WebSocketConfig",
    "LoggingConfig",
    "ClientConfig",
    "ZERO_ADDRESS",
]
