"""
Shared fixtures: a manual clock, a scripted exchange transport and an
in-memory streaming transport.
"""

import asyncio
import json
from typing import Any, Callable, List, Optional, Union

import pytest

from config.settings import NetworkConfig, WebSocketConfig
from hl_transport.api.auth import ActionSigner, StaticKeyProvider
from hl_transport.api.errors import TransportError
from hl_transport.api.transport import TransportResponse

# Test keys (not real - for testing only)
TEST_PRIVATE_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
OTHER_PRIVATE_KEY = "0x" + "22" * 32
THIRD_PRIVATE_KEY = "0x" + "33" * 32

START_MS = 1_700_000_000_000


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, time_ms: int = START_MS, monotonic: float = 1000.0):
        self._time_ms = time_ms
        self._monotonic = monotonic

    def time_ms(self) -> int:
        return self._time_ms

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, seconds: float) -> None:
        self._time_ms += int(seconds * 1000)
        self._monotonic += seconds


class ScriptedTransport:
    """RequestTransport replaying queued responses (or raising queued errors)."""

    def __init__(self, responses: Optional[List[Union[TransportResponse, Exception]]] = None):
        self.responses = list(responses or [])
        self.bodies: List[bytes] = []

    def queue(self, status: int = 200, payload: Any = None) -> None:
        self.responses.append(TransportResponse(status, payload))

    def queue_ok(self, response: Any = None) -> None:
        self.queue(200, {"status": "ok", "response": response or {"type": "default"}})

    async def post(self, body: bytes) -> TransportResponse:
        self.bodies.append(body)
        if not self.responses:
            raise AssertionError("Unexpected request")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def payloads(self) -> List[dict]:
        return [json.loads(body) for body in self.bodies]


class FakeStreamConnection:
    """StreamConnection fed from a queue."""

    def __init__(self):
        self.sent: List[dict] = []
        self.closed = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def send(self, frame: str) -> None:
        if self.closed:
            raise TransportError("Connection closed")
        self.sent.append(json.loads(frame))

    async def receive(self) -> Optional[str]:
        item = await self._inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(None)

    def push(self, message: Any) -> None:
        self._inbound.put_nowait(message if isinstance(message, str) else json.dumps(message))

    def push_error(self, error: Exception) -> None:
        self._inbound.put_nowait(error)

    def drop(self) -> None:
        """Simulate the peer going away."""
        self._inbound.put_nowait(None)

    def frames(self, method: str) -> List[dict]:
        return [frame for frame in self.sent if frame.get("method") == method]


class FakeStreamingTransport:
    """StreamingTransport handing out FakeStreamConnections."""

    def __init__(self):
        self.connections: List[FakeStreamConnection] = []
        self.connect_calls = 0
        self.fail_connects = 0

    async def connect(self, url: str) -> FakeStreamConnection:
        self.connect_calls += 1
        if self.fail_connects > 0:
            self.fail_connects -= 1
            raise TransportError(f"Could not connect to {url}")
        connection = FakeStreamConnection()
        self.connections.append(connection)
        return connection

    @property
    def latest(self) -> FakeStreamConnection:
        return self.connections[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the event loop until predicate() holds."""
    async def poll():
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def network():
    return NetworkConfig()


@pytest.fixture
def signer(network):
    return ActionSigner(StaticKeyProvider(TEST_PRIVATE_KEY), network)


@pytest.fixture
def exchange_transport():
    return ScriptedTransport()


@pytest.fixture
def stream_transport():
    return FakeStreamingTransport()


@pytest.fixture
def ws_config():
    return WebSocketConfig(
        ping_interval=3600.0,
        reconnect_delay=0.0,
        max_reconnect_delay=0.0,
        max_reconnect_attempts=3,
        handle_buffer_size=100,
    )


@pytest.fixture
def eventually():
    return wait_until
