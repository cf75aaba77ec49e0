"""
Hyperliquid subscription multiplexer.

Serves any number of logical subscriptions over one streaming connection:
- Equivalent subscription requests share one key and one subscribe frame
- Each caller gets its own SubscriptionHandle (async iterator)
- The last handle of a key to close sends the unsubscribe frame
- Reconnects with capped exponential backoff and replays every key in the
  order it was first registered before any data is delivered
- Heartbeat ping while LIVE; the venue drops idle sockets after 60s

State machine:
    DISCONNECTED → CONNECTING → LIVE → DRAINING → DISCONNECTED

A dropped connection is a gap, not the end of a subscription: handles stay
open across reconnects and simply see no messages while CONNECTING. Only
when reconnect attempts are exhausted do handles fail with ConnectionLost.

Usage:
    async with SubscriptionMultiplexer(config.ws_url, config.websocket) as mux:
        async with await mux.subscribe(subscriptions.l2_book("BTC")) as book:
            async for frame in book:
                process(frame["data"])
"""

import asyncio
import json
import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Deque, Dict, List, Mapping, Optional

from config.settings import OverflowPolicy, WebSocketConfig

from .errors import (
    ConnectionLost,
    FatalProtocolError,
    MultiplexerClosed,
    ProtocolAnomaly,
    TransportError,
)
from .subscriptions import (
    CONTROL_CHANNELS,
    PING_FRAME,
    SubscriptionKey,
    resolve_key,
    subscribe_frame,
    unsubscribe_frame,
)
from .transport import StreamConnection, StreamingTransport, WebsocketsTransport, encode_frame

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Multiplexer connection states."""
    DISCONNECTED = auto()
    CONNECTING = auto()
    LIVE = auto()
    DRAINING = auto()


@dataclass
class MultiplexerStats:
    """Counters for monitoring."""
    frames_received: int = 0
    anomalies: int = 0
    dropped_messages: int = 0
    reconnects: int = 0


# Type aliases for callbacks
StateCallback = Callable[[ConnectionState], Awaitable[None]]
AnomalyCallback = Callable[[ProtocolAnomaly], Awaitable[None]]


class SubscriptionHandle:
    """
    One caller's view of a subscription.

    Iterate to receive frames ({"channel": ..., "data": ...}) in the order
    they arrived. Iteration ends when the handle or the multiplexer is
    closed, and raises ConnectionLost if the connection could not be
    re-established.
    """

    def __init__(
        self,
        multiplexer: "SubscriptionMultiplexer",
        key: SubscriptionKey,
        buffer_size: int,
        overflow_policy: OverflowPolicy,
    ):
        self._multiplexer = multiplexer
        self._key = key
        self._buffer_size = buffer_size
        self._overflow_policy = overflow_policy

        self._buffer: Deque[Dict[str, Any]] = deque()
        self._ready = asyncio.Event()
        self._space = asyncio.Event()
        self._space.set()

        self._closed = False  # Closed by the consumer
        self._ended = False  # End of stream (multiplexer drained)
        self._error: Optional[Exception] = None
        self.dropped = 0

    @property
    def key(self) -> SubscriptionKey:
        return self._key

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Buffered messages not yet consumed."""
        return len(self._buffer)

    # ==========================================
    # PRODUCER SIDE (multiplexer receive loop)
    # ==========================================

    def _is_full(self) -> bool:
        return self._buffer_size > 0 and len(self._buffer) >= self._buffer_size

    async def _deliver(self, message: Dict[str, Any]) -> bool:
        """Buffer a message; returns True if an older one was dropped for it."""
        dropped = False
        if self._closed or self._ended or self._error:
            return dropped

        if self._overflow_policy == OverflowPolicy.BLOCK:
            while self._is_full() and not self._closed:
                self._space.clear()
                await self._space.wait()
            if self._closed:
                return dropped
        elif self._is_full():
            self._buffer.popleft()
            self.dropped += 1
            dropped = True
            if self.dropped == 1 or self.dropped % 100 == 0:
                logger.warning(f"Handle for {self._key} is full, dropped {self.dropped} messages")

        self._buffer.append(message)
        self._ready.set()
        return dropped

    def _end(self) -> None:
        self._ended = True
        self._ready.set()
        self._space.set()

    def _fail(self, error: Exception) -> None:
        self._error = error
        self._ready.set()
        self._space.set()

    # ==========================================
    # CONSUMER SIDE
    # ==========================================

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        while True:
            if self._closed:
                raise StopAsyncIteration

            if self._buffer:
                message = self._buffer.popleft()
                self._space.set()
                return message

            if self._error is not None:
                raise self._error

            if self._ended:
                raise StopAsyncIteration

            self._ready.clear()
            await self._ready.wait()

    def get_nowait(self) -> Optional[Dict[str, Any]]:
        """Next buffered message without waiting (None if empty)."""
        if self._closed or not self._buffer:
            return None
        message = self._buffer.popleft()
        self._space.set()
        return message

    async def close(self) -> None:
        """Stop receiving; buffered messages are discarded."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._ready.set()
        self._space.set()
        await self._multiplexer._release(self)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class SubscriptionMultiplexer:
    """
    Multiplexes subscriptions over a single streaming connection.

    The connection is opened lazily by the first subscribe() and kept
    alive by a background task until close().
    """

    def __init__(
        self,
        url: str,
        config: Optional[WebSocketConfig] = None,
        transport: Optional[StreamingTransport] = None,
        on_state_change: Optional[StateCallback] = None,
        on_anomaly: Optional[AnomalyCallback] = None,
    ):
        """
        Initialize multiplexer.

        Args:
            url: Stream URL (e.g. wss://api.hyperliquid.xyz/ws)
            config: WebSocket configuration
            transport: Streaming transport (websockets by default)
            on_state_change: Callback for state changes
            on_anomaly: Callback for dropped, unroutable frames
        """
        self._url = url
        self._config = config or WebSocketConfig()
        self._transport = transport or WebsocketsTransport(open_timeout=self._config.open_timeout)
        self._on_state_change = on_state_change
        self._on_anomaly = on_anomaly

        # Connection state
        self._state = ConnectionState.DISCONNECTED
        self._connection: Optional[StreamConnection] = None
        self._live = asyncio.Event()
        self._closing = False
        self._failure: Optional[Exception] = None

        # Key table: insertion order is replay order
        self._entries: Dict[SubscriptionKey, List[SubscriptionHandle]] = {}
        self._lock = asyncio.Lock()

        # Tasks
        self._runner: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

        self.stats = MultiplexerStats()

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_live(self) -> bool:
        return self._state == ConnectionState.LIVE

    @property
    def keys(self) -> List[SubscriptionKey]:
        """Registered keys in replay order."""
        return list(self._entries)

    def handle_count(self, key: Optional[SubscriptionKey] = None) -> int:
        """Open handles for one key, or for all keys."""
        if key is not None:
            return len(self._entries.get(key, []))
        return sum(len(handles) for handles in self._entries.values())

    async def _set_state(self, state: ConnectionState) -> None:
        """Update state and notify callback."""
        if state != self._state:
            old_state = self._state
            self._state = state
            logger.debug(f"Multiplexer state: {old_state.name} -> {state.name}")

            if self._on_state_change:
                try:
                    await self._on_state_change(state)
                except Exception as e:
                    logger.error(f"State callback error: {e}")

    # ==========================================
    # SUBSCRIPTIONS
    # ==========================================

    async def subscribe(self, subscription: Mapping[str, Any]) -> SubscriptionHandle:
        """
        Subscribe to a channel.

        Waits for the connection to be LIVE. A key that is already
        registered gets another handle without a new subscribe frame.

        Args:
            subscription: Subscription dict (see subscriptions module)

        Returns:
            New SubscriptionHandle

        Raises:
            MultiplexerClosed: If the multiplexer is draining or closed
            ConnectionLost: If the connection could not be established
        """
        key = SubscriptionKey.from_subscription(subscription)

        while True:
            if self._closing:
                raise MultiplexerClosed("Multiplexer is closed")

            await self._wait_live()

            async with self._lock:
                if self._closing:
                    raise MultiplexerClosed("Multiplexer is closed")
                # Runner gave up between LIVE and here; start a new cycle
                if self._runner is None or self._runner.done():
                    continue

                handle = SubscriptionHandle(
                    self,
                    key,
                    self._config.handle_buffer_size,
                    self._config.overflow_policy,
                )
                handles = self._entries.get(key)
                if handles is not None:
                    handles.append(handle)
                    logger.debug(f"Shared subscription {key} ({len(handles)} handles)")
                    return handle

                self._entries[key] = [handle]
                if self._state == ConnectionState.LIVE:
                    await self._send_control(subscribe_frame(key))
                logger.info(f"Subscribed to {key}")
                return handle

    async def _release(self, handle: SubscriptionHandle) -> None:
        """Drop a closed handle; the last one for a key unsubscribes."""
        async with self._lock:
            handles = self._entries.get(handle.key)
            if handles is None or handle not in handles:
                return

            handles.remove(handle)
            if handles:
                return

            del self._entries[handle.key]
            logger.info(f"Unsubscribed from {handle.key}")

            if self._state == ConnectionState.LIVE:
                await self._send_control(unsubscribe_frame(handle.key))

    async def _send_control(self, frame: Dict[str, Any]) -> None:
        """Send a subscribe/unsubscribe frame; a lost connection is handled by the runner."""
        if self._connection is None:
            return
        try:
            await self._connection.send(encode_frame(frame))
        except TransportError as e:
            logger.warning(f"Could not send {frame['method']}, connection is dropping: {e}")

    # ==========================================
    # CONNECTION MANAGEMENT
    # ==========================================

    def _ensure_running(self) -> None:
        if self._runner is None or self._runner.done():
            self._failure = None
            self._runner = asyncio.create_task(self._run())

    async def _wait_live(self) -> None:
        """Wait until LIVE, starting the connection if needed."""
        self._ensure_running()
        if self._live.is_set():
            return

        runner = self._runner
        live_wait = asyncio.ensure_future(self._live.wait())
        try:
            await asyncio.wait({live_wait, runner}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            live_wait.cancel()

        if live_wait.done() and not live_wait.cancelled():
            return
        if self._closing:
            raise MultiplexerClosed("Multiplexer is closed")
        raise self._failure or ConnectionLost("Stream connection ended")

    def _reconnect_delay(self, attempt: int) -> float:
        return min(
            self._config.reconnect_delay * (self._config.reconnect_multiplier ** (attempt - 1)),
            self._config.max_reconnect_delay,
        )

    async def _run(self) -> None:
        """Background task: connect, replay, receive, reconnect."""
        attempts = 0
        fatal = False

        while not self._closing:
            await self._set_state(ConnectionState.CONNECTING)

            try:
                connection = await self._transport.connect(self._url)
            except TransportError as e:
                attempts += 1
                max_attempts = self._config.max_reconnect_attempts
                if max_attempts > 0 and attempts >= max_attempts:
                    await self._give_up(
                        ConnectionLost(f"Could not connect after {attempts} attempts: {e}")
                    )
                    return

                delay = self._reconnect_delay(attempts)
                logger.warning(f"Connection failed: {e}; retrying in {delay:.1f}s (attempt {attempts})")
                await self._set_state(ConnectionState.DISCONNECTED)
                await asyncio.sleep(delay)
                continue

            attempts = 0
            self._connection = connection

            try:
                await self._go_live(connection)
                await self._receive_loop(connection)
            except FatalProtocolError as e:
                logger.error(f"Fatal protocol error, draining: {e}")
                fatal = True
            except TransportError as e:
                logger.warning(f"Stream connection lost: {e}")
            finally:
                self._live.clear()
                await self._stop_heartbeat()
                await connection.close()
                self._connection = None

            if fatal:
                await self._drain()
                return
            if self._closing:
                return

            self.stats.reconnects += 1
            await self._set_state(ConnectionState.DISCONNECTED)
            delay = self._reconnect_delay(1)
            logger.info(f"Reconnecting in {delay:.1f}s")
            await asyncio.sleep(delay)

    async def _go_live(self, connection: StreamConnection) -> None:
        """Replay registered keys, then open the gate for callers and data."""
        await self._set_state(ConnectionState.LIVE)

        async with self._lock:
            for key in self._entries:
                await connection.send(encode_frame(subscribe_frame(key)))
            if self._entries:
                logger.info(f"Resubscribed {len(self._entries)} subscriptions")

        self._live.set()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(connection))
        logger.info(f"Stream live: {self._url}")

    async def _give_up(self, error: ConnectionLost) -> None:
        """Terminate every handle and forget the key table."""
        logger.error(str(error))
        async with self._lock:
            self._failure = error
            for handles in self._entries.values():
                for handle in handles:
                    handle._fail(error)
            self._entries.clear()
        await self._set_state(ConnectionState.DISCONNECTED)

    async def _heartbeat_loop(self, connection: StreamConnection) -> None:
        """Background task for heartbeat/ping."""
        while True:
            await asyncio.sleep(self._config.ping_interval)
            try:
                await connection.send(encode_frame(PING_FRAME))
            except TransportError as e:
                # Receive loop sees the close and reconnects
                logger.warning(f"Heartbeat error: {e}")
                return

    async def _stop_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ==========================================
    # MESSAGE HANDLING
    # ==========================================

    async def _receive_loop(self, connection: StreamConnection) -> None:
        """Route inbound frames until the connection closes."""
        while True:
            raw = await connection.receive()
            if raw is None:
                logger.info("Stream closed by peer")
                return

            self.stats.frames_received += 1
            await self._handle_frame(raw)

    async def _handle_frame(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            await self._record_anomaly(ProtocolAnomaly("Invalid JSON frame", raw))
            return

        if not isinstance(message, dict) or "channel" not in message:
            await self._record_anomaly(ProtocolAnomaly("Frame has no channel", message))
            return

        channel = message["channel"]
        if channel in CONTROL_CHANNELS:
            if channel == "error":
                logger.error(f"Stream error: {message.get('data')}")
            return

        try:
            key = resolve_key(channel, message.get("data"), self._entries)
        except ProtocolAnomaly as e:
            await self._record_anomaly(e)
            return

        for handle in list(self._entries.get(key, [])):
            if await handle._deliver(message):
                self.stats.dropped_messages += 1

    async def _record_anomaly(self, anomaly: ProtocolAnomaly) -> None:
        self.stats.anomalies += 1
        logger.warning(f"Dropped frame: {anomaly}")

        if self._on_anomaly:
            try:
                await self._on_anomaly(anomaly)
            except Exception as e:
                logger.error(f"Anomaly callback error: {e}")

    # ==========================================
    # SHUTDOWN
    # ==========================================

    async def close(self) -> None:
        """Drain: end every handle and close the connection."""
        if self._closing:
            return
        await self._drain()

    async def _drain(self) -> None:
        self._closing = True
        await self._set_state(ConnectionState.DRAINING)

        runner = self._runner
        if runner is not None and runner is not asyncio.current_task() and not runner.done():
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                pass

        await self._stop_heartbeat()

        async with self._lock:
            for handles in self._entries.values():
                for handle in handles:
                    handle._end()
            self._entries.clear()

        if self._connection is not None:
            await self._connection.close()
            self._connection = None

        self._live.clear()
        await self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Multiplexer closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
