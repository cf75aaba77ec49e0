"""
Rate governance for Hyperliquid requests.

Token bucket per request class. The venue limits trading actions,
account actions and info queries independently, so each class gets its
own bucket:
- Bucket refills continuously up to its capacity
- A call that finds enough tokens proceeds immediately
- Otherwise it reserves tokens and waits, unless the wait would exceed
  the class's max_wait, in which case it is rejected with RateLimited

The governor is advisory: the venue can still answer with a rate-limit
error, which surfaces as VenueRateLimited.

Usage:
    governor = RateGovernor.from_config(config.rate_limits)
    await governor.acquire(RequestClass.TRADING)  # Waits or raises RateLimited
    response = await send()
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Awaitable, Callable, Dict, Optional

from config.settings import BucketConfig, RateLimitConfig

from .clock import Clock, SYSTEM_CLOCK
from .errors import RateLimited

logger = logging.getLogger(__name__)


class RequestClass(Enum):
    """Independent rate-limit classes."""
    TRADING = "trading"
    ACCOUNT = "account"
    QUERY = "query"


class Decision(Enum):
    """Admission decision."""
    PROCEED = auto()
    WAIT_UNTIL = auto()
    REJECT = auto()


@dataclass(frozen=True)
class Admission:
    """Outcome of RateGovernor.admit."""
    decision: Decision
    until: float = 0.0  # Monotonic time the caller may proceed at (WAIT_UNTIL)
    wait: float = 0.0  # Seconds to wait (WAIT_UNTIL) or that would be needed (REJECT)


class TokenBucket:
    """
    Continuously refilling token bucket.

    Tokens may go negative: a caller told to wait has already reserved its
    tokens, so later callers queue behind it instead of overtaking it.
    """

    def __init__(
        self,
        capacity: float,
        refill_per_second: float,
        max_wait: float,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize token bucket.

        Args:
            capacity: Maximum burst size
            refill_per_second: Tokens added per second
            max_wait: Longest acceptable wait before rejecting
            clock: Time source (system clock by default)
        """
        if capacity <= 0 or refill_per_second <= 0:
            raise ValueError("capacity and refill_per_second must be positive")
        self._capacity = capacity
        self._rate = refill_per_second
        self._max_wait = max_wait
        self._clock = clock or SYSTEM_CLOCK

        self._tokens = capacity
        self._last_update = self._clock.monotonic()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._last_update)
        self._tokens = min(self._capacity, self._tokens + elapsed * self._rate)
        self._last_update = now

    def admit(self, cost: float = 1.0) -> Admission:
        """Decide whether a request of this cost may go now, later, or not at all."""
        if cost > self._capacity:
            return Admission(Decision.REJECT, wait=float("inf"))

        now = self._clock.monotonic()
        self._refill(now)

        if self._tokens >= cost:
            self._tokens -= cost
            return Admission(Decision.PROCEED)

        wait = (cost - self._tokens) / self._rate
        if wait > self._max_wait:
            return Admission(Decision.REJECT, wait=wait)

        self._tokens -= cost
        return Admission(Decision.WAIT_UNTIL, until=now + wait, wait=wait)

    @property
    def available(self) -> float:
        """Tokens available right now (negative while callers are queued)."""
        self._refill(self._clock.monotonic())
        return self._tokens

    def reset(self) -> None:
        self._tokens = self._capacity
        self._last_update = self._clock.monotonic()


class RateGovernor:
    """
    Per-class admission control for outbound requests.

    All bucket arithmetic is synchronous, so concurrent tasks on one event
    loop cannot interleave inside admit().
    """

    def __init__(
        self,
        buckets: Dict[RequestClass, TokenBucket],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        missing = set(RequestClass) - set(buckets)
        if missing:
            raise ValueError(f"No bucket configured for {sorted(c.value for c in missing)}")
        self._buckets = buckets
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        config: Optional[RateLimitConfig] = None,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "RateGovernor":
        """Create a governor with one bucket per request class."""
        config = config or RateLimitConfig()

        def bucket(cfg: BucketConfig) -> TokenBucket:
            return TokenBucket(cfg.capacity, cfg.refill_per_second, cfg.max_wait, clock)

        return cls(
            {
                RequestClass.TRADING: bucket(config.trading),
                RequestClass.ACCOUNT: bucket(config.account),
                RequestClass.QUERY: bucket(config.query),
            },
            sleep=sleep,
        )

    def admit(self, request_class: RequestClass, cost: float = 1.0) -> Admission:
        """
        Admission decision without waiting.

        A WAIT_UNTIL decision has already reserved the tokens; the caller
        must honour it.
        """
        return self._buckets[request_class].admit(cost)

    async def acquire(self, request_class: RequestClass, cost: float = 1.0) -> float:
        """
        Wait until the request may be sent.

        Args:
            request_class: Bucket to charge
            cost: Tokens the request consumes

        Returns:
            Wait time in seconds (0 if no wait needed)

        Raises:
            RateLimited: If the required wait exceeds the class's max_wait
        """
        admission = self.admit(request_class, cost)

        if admission.decision == Decision.REJECT:
            raise RateLimited(
                f"{request_class.value} rate limit: would need to wait "
                f"{admission.wait:.2f}s",
                retry_after=admission.wait,
            )

        if admission.decision == Decision.WAIT_UNTIL:
            logger.debug(
                f"Rate limiting {request_class.value}: cost={cost}, "
                f"waiting {admission.wait:.2f}s"
            )
            await self._sleep(admission.wait)

        return admission.wait

    def available(self, request_class: RequestClass) -> float:
        """Get remaining tokens for a class (for monitoring)."""
        return self._buckets[request_class].available

    def reset(self) -> None:
        """Refill every bucket (e.g. after a long pause)."""
        for bucket in self._buckets.values():
            bucket.reset()
