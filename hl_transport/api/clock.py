"""Time sources for nonce generation and rate governance."""

import time
from typing import Protocol


class Clock(Protocol):
    """Wall clock in epoch milliseconds plus a monotonic clock in seconds."""

    def time_ms(self) -> int:
        ...

    def monotonic(self) -> float:
        ...


class SystemClock:
    """Clock backed by the operating system."""

    def time_ms(self) -> int:
        return int(time.time() * 1000)

    def monotonic(self) -> float:
        return time.monotonic()


SYSTEM_CLOCK = SystemClock()
