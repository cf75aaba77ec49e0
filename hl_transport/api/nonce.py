"""
Nonce sequencing for signed actions.

Hyperliquid nonces are millisecond timestamps. Each signing key keeps a
set of recently used nonces and accepts new ones only inside a window
around the current time, so a nonce must be:
- unique per signing key
- strictly increasing in issuance order
- within (now - window, now + window)

Usage:
    registry = NonceRegistry(window_ms=60_000)
    sequencer = registry.sequencer_for(signer.address)
    nonce = sequencer.next_nonce()
"""

import asyncio
import logging
import threading
from typing import Dict, Optional

from .clock import Clock, SYSTEM_CLOCK
from .errors import NonceWindowExceeded

logger = logging.getLogger(__name__)

# Absolute validity bounds enforced by the venue
MAX_NONCE_AGE_MS = 2 * 24 * 60 * 60 * 1000
MAX_NONCE_LEAD_MS = 24 * 60 * 60 * 1000


def is_valid_nonce(nonce: int, now_ms: int) -> bool:
    """Check a nonce against the venue's absolute bounds."""
    if nonce <= 0:
        return False
    return now_ms - MAX_NONCE_AGE_MS < nonce < now_ms + MAX_NONCE_LEAD_MS


class NonceSequencer:
    """
    Thread-safe nonce issuer for one signing key.

    The critical section is a plain threading.Lock with no I/O inside, so
    it serializes threads and asyncio tasks alike.

    send_lock is the asyncio lock every dispatcher for this key holds from
    nonce issuance until its request is finished with the transport, so
    requests for one key reach the wire in nonce order. It belongs to the
    event loop that first uses it.
    """

    def __init__(
        self,
        window_ms: int = MAX_NONCE_LEAD_MS,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize nonce sequencer.

        Args:
            window_ms: Maximum distance between a nonce and the current time
            clock: Time source (system clock by default)
        """
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self._window_ms = window_ms
        self._clock = clock or SYSTEM_CLOCK
        self._last_nonce = 0
        self._issued = 0
        self._lock = threading.Lock()
        self._send_lock: Optional[asyncio.Lock] = None

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def send_lock(self) -> asyncio.Lock:
        """Per-key lock serializing sends across dispatchers."""
        with self._lock:
            if self._send_lock is None:
                self._send_lock = asyncio.Lock()
            return self._send_lock

    @property
    def last_issued(self) -> int:
        """Last nonce handed out (0 if none)."""
        return self._last_nonce

    @property
    def issued_count(self) -> int:
        """Number of nonces issued since creation or reset."""
        return self._issued

    def next_nonce(self) -> int:
        """
        Get next nonce value (thread-safe).

        Returns:
            Strictly increasing nonce

        Raises:
            NonceWindowExceeded: If the next nonce would run ahead of the
                acceptance window (issuance outpaced the clock, or the
                clock stepped backwards). Retry after a delay.
        """
        with self._lock:
            now = self._clock.time_ms()
            nonce = max(self._last_nonce + 1, now)
            if nonce > now + self._window_ms:
                raise NonceWindowExceeded(nonce, now, self._window_ms)
            self._last_nonce = nonce
            self._issued += 1
            return nonce

    def is_within_window(self, nonce: int) -> bool:
        """Check whether a previously issued nonce is still acceptable."""
        now = self._clock.time_ms()
        return now - self._window_ms <= nonce <= now + self._window_ms

    def check_window(self, nonce: int) -> None:
        """Raise NonceWindowExceeded if the nonce has left the window."""
        if not self.is_within_window(nonce):
            raise NonceWindowExceeded(nonce, self._clock.time_ms(), self._window_ms)

    def reset(self) -> None:
        """Forget issued nonces (e.g. after rotating the signing key)."""
        with self._lock:
            self._last_nonce = 0
            self._issued = 0


class NonceRegistry:
    """
    One NonceSequencer per signing address.

    Keys are isolated: nonces issued for one address never advance the
    counter of another.
    """

    def __init__(
        self,
        window_ms: int = MAX_NONCE_LEAD_MS,
        clock: Optional[Clock] = None,
    ):
        self._window_ms = window_ms
        self._clock = clock or SYSTEM_CLOCK
        self._sequencers: Dict[str, NonceSequencer] = {}
        self._lock = threading.Lock()

    def sequencer_for(self, address: str) -> NonceSequencer:
        """Get (or create) the sequencer owning this address's nonces."""
        key = address.lower()
        with self._lock:
            sequencer = self._sequencers.get(key)
            if sequencer is None:
                sequencer = NonceSequencer(self._window_ms, self._clock)
                self._sequencers[key] = sequencer
                logger.debug(f"Created nonce sequencer for {key}")
            return sequencer

    def next_nonce(self, address: str) -> int:
        return self.sequencer_for(address).next_nonce()

    def get_counter(self, address: str) -> int:
        """Number of nonces issued for an address."""
        with self._lock:
            sequencer = self._sequencers.get(address.lower())
        return sequencer.issued_count if sequencer else 0

    def reset_address(self, address: str) -> None:
        with self._lock:
            sequencer = self._sequencers.get(address.lower())
        if sequencer:
            sequencer.reset()
