"""
Hyperliquid transport error handling.

Error taxonomy for the signing, dispatch and streaming layers:
- Classification (category + retry strategy) on every error
- Exponential backoff helpers shared by the dispatcher and the multiplexer

Propagation rules:
- NonceWindowExceeded: retryable after a delay, caller driven
- SigningError / InvalidAction: fatal, configuration or key problem
- RateLimited (local) / VenueRateLimited (remote): retryable with backoff
- ActionRejected: business rejection, never retried
- TransportError: retried up to a bound, then surfaced
- ConnectionLost: terminal for subscription handles only
- ProtocolAnomaly: recorded and dropped, never raised to stream consumers
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum, auto
from functools import wraps
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorCategory(Enum):
    """Categories of transport errors."""
    NONCE = "nonce"
    SIGNING = "signing"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    REJECTED = "rejected"
    NETWORK = "network"
    PROTOCOL = "protocol"
    CLOSED = "closed"


class RetryStrategy(Enum):
    """Retry strategies for different error types."""
    NO_RETRY = auto()             # Do not retry
    IMMEDIATE = auto()            # Retry immediately
    LINEAR_BACKOFF = auto()       # Constant wait time
    EXPONENTIAL_BACKOFF = auto()  # Exponential wait
    RATE_LIMIT_WAIT = auto()      # Wait for rate limit reset


class HyperliquidError(Exception):
    """Base exception for the transport layer."""

    category: ErrorCategory = ErrorCategory.NETWORK
    retry_strategy: RetryStrategy = RetryStrategy.NO_RETRY

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.message = message
        self.retry_after = retry_after
        super().__init__(message)

    @property
    def should_retry(self) -> bool:
        """Check if the failed operation may be retried."""
        return self.retry_strategy != RetryStrategy.NO_RETRY


class NonceWindowExceeded(HyperliquidError):
    """Nonce would fall outside the venue's acceptance window."""
    category = ErrorCategory.NONCE
    retry_strategy = RetryStrategy.LINEAR_BACKOFF

    def __init__(self, nonce: int, now_ms: int, window_ms: int):
        self.nonce = nonce
        self.now_ms = now_ms
        self.window_ms = window_ms
        super().__init__(
            f"Nonce {nonce} outside acceptance window "
            f"(now={now_ms}, window={window_ms}ms)"
        )


class SigningError(HyperliquidError):
    """Key material unavailable or signing failed."""
    category = ErrorCategory.SIGNING


class InvalidAction(SigningError):
    """Action failed structural validation for its signing domain."""
    category = ErrorCategory.VALIDATION

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Invalid action: {'; '.join(errors)}")


class RateLimited(HyperliquidError):
    """Local rate governor refused the request."""
    category = ErrorCategory.RATE_LIMIT
    retry_strategy = RetryStrategy.RATE_LIMIT_WAIT


class VenueRateLimited(HyperliquidError):
    """The venue rejected the request for exceeding its rate limit."""
    category = ErrorCategory.RATE_LIMIT
    retry_strategy = RetryStrategy.EXPONENTIAL_BACKOFF


class ActionRejected(HyperliquidError):
    """The venue rejected the action (invalid parameters, margin, etc)."""
    category = ErrorCategory.REJECTED

    def __init__(self, reason: Any, response: Any = None):
        self.reason = reason
        self.response = response
        super().__init__(f"Action rejected: {reason}")


class TransportError(HyperliquidError):
    """Network or server failure; the request may be retried unchanged."""
    category = ErrorCategory.NETWORK
    retry_strategy = RetryStrategy.EXPONENTIAL_BACKOFF


class ConnectionLost(HyperliquidError):
    """Streaming connection could not be re-established."""
    category = ErrorCategory.NETWORK


class FatalProtocolError(HyperliquidError):
    """Streaming peer violated the protocol; the connection cannot be reused."""
    category = ErrorCategory.PROTOCOL


class MultiplexerClosed(HyperliquidError):
    """Subscription requested from a multiplexer that is draining or closed."""
    category = ErrorCategory.CLOSED


class BatcherClosed(HyperliquidError):
    """Order or cancel queued on a batcher that has been closed."""
    category = ErrorCategory.CLOSED


class ProtocolAnomaly(HyperliquidError):
    """Inbound frame that could not be routed to any subscription."""
    category = ErrorCategory.PROTOCOL

    def __init__(self, message: str, frame: Any = None):
        self.frame = frame
        super().__init__(message)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True  # Add randomness to prevent thundering herd


def calculate_backoff(
    attempt: int,
    strategy: RetryStrategy,
    config: RetryConfig,
    retry_after: Optional[float] = None,
) -> float:
    """
    Calculate backoff time for retry.

    Args:
        attempt: Current attempt number (0-indexed)
        strategy: Retry strategy to use
        config: Retry configuration
        retry_after: Explicit wait time from error

    Returns:
        Seconds to wait before retry
    """
    if strategy == RetryStrategy.NO_RETRY:
        return 0.0

    if strategy == RetryStrategy.RATE_LIMIT_WAIT and retry_after:
        delay = retry_after
    elif strategy == RetryStrategy.LINEAR_BACKOFF:
        delay = config.base_delay
    elif strategy == RetryStrategy.EXPONENTIAL_BACKOFF:
        delay = config.base_delay * (config.exponential_base ** attempt)
    elif strategy == RetryStrategy.IMMEDIATE:
        delay = 0.1
    else:
        delay = config.base_delay

    # Apply max delay cap
    delay = min(delay, config.max_delay)

    # Add jitter (up to 25% of delay)
    if config.jitter and delay > 0:
        delay += delay * 0.25 * random.random()

    return delay


def with_async_retry(
    config: Optional[RetryConfig] = None,
) -> Callable:
    """
    Decorator for idempotent async calls, retrying errors whose strategy allows it.

    Signed actions must not use this: their retries go through the
    dispatcher, which resends identical bytes.

    Usage:
        @with_async_retry(RetryConfig(max_retries=5))
        async def query():
            ...
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)

                except HyperliquidError as e:
                    if not e.should_retry or attempt >= config.max_retries:
                        raise

                    backoff = calculate_backoff(
                        attempt,
                        e.retry_strategy,
                        config,
                        e.retry_after,
                    )

                    logger.warning(
                        f"Async retry {attempt + 1}/{config.max_retries} for "
                        f"{type(e).__name__}: {e}, waiting {backoff:.1f}s"
                    )
                    await asyncio.sleep(backoff)
                    attempt += 1

        return wrapper
    return decorator
