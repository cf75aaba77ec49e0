"""
Transports for the Hyperliquid client.

- HttpTransport: JSON POST to the exchange / info endpoints over a
  requests Session, run off the event loop with asyncio.to_thread
- WebsocketsTransport: duplex streaming connection built on websockets

Both map library failures to TransportError so callers only ever see the
transport-layer taxonomy.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import requests
import websockets
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    ConnectionClosedOK,
    InvalidHandshake,
)

from .errors import FatalProtocolError, TransportError

logger = logging.getLogger(__name__)

# Close code the venue uses for malformed or abusive traffic
POLICY_VIOLATION = 1008


@dataclass(frozen=True)
class TransportResponse:
    """HTTP status plus decoded body (JSON when possible, text otherwise)."""
    status: int
    payload: Any


class RequestTransport(Protocol):
    """Request/response transport used by the dispatcher and query caller."""

    async def post(self, body: bytes) -> TransportResponse:
        ...


class HttpTransport:
    """
    POSTs pre-encoded JSON bodies to one endpoint.

    Only connection establishment is retried by urllib3 (nothing has been
    sent yet at that point); everything after the request leaves is the
    caller's decision.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize HTTP transport.

        Args:
            url: Endpoint URL (e.g. https://api.hyperliquid.xyz/exchange)
            timeout: Request timeout in seconds
            session: Optional preconfigured session
        """
        self._url = url
        self._timeout = timeout

        if session is None:
            session = requests.Session()
            retry_strategy = Retry(
                total=2,
                connect=2,
                read=0,
                status=0,
                other=0,
                allowed_methods=frozenset(["POST"]),
                backoff_factor=0.2,
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session

    @property
    def url(self) -> str:
        return self._url

    async def post(self, body: bytes) -> TransportResponse:
        """Send body and wait for the response without blocking the loop."""
        return await asyncio.to_thread(self._post_sync, body)

    def _post_sync(self, body: bytes) -> TransportResponse:
        try:
            response = self._session.post(
                self._url,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"Request timeout: {self._url}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Connection error: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = response.text

        return TransportResponse(status=response.status_code, payload=payload)

    def close(self) -> None:
        self._session.close()


# ==========================================
# STREAMING
# ==========================================

class StreamConnection(Protocol):
    """One established duplex connection."""

    async def send(self, frame: str) -> None:
        ...

    async def receive(self) -> Optional[str]:
        """Next inbound frame, or None once the connection has closed."""
        ...

    async def close(self) -> None:
        ...


class StreamingTransport(Protocol):
    """Factory for duplex connections."""

    async def connect(self, url: str) -> StreamConnection:
        ...


class WebsocketsConnection:
    """StreamConnection over a websockets client connection."""

    def __init__(self, ws):
        self._ws = ws

    async def send(self, frame: str) -> None:
        try:
            await self._ws.send(frame)
        except ConnectionClosed as e:
            raise TransportError(f"WebSocket closed while sending: {e}") from e

    async def receive(self) -> Optional[str]:
        try:
            message = await self._ws.recv()
        except ConnectionClosedOK:
            logger.info("WebSocket closed normally")
            return None
        except ConnectionClosedError as e:
            if e.rcvd is not None and e.rcvd.code == POLICY_VIOLATION:
                raise FatalProtocolError(f"Venue closed the stream: {e.rcvd.reason}") from e
            logger.warning(f"WebSocket connection lost: {e}")
            return None

        if isinstance(message, bytes):
            message = message.decode("utf-8")
        return message

    async def close(self) -> None:
        try:
            await self._ws.close()
        except ConnectionClosed:
            # Already gone
            return


class WebsocketsTransport:
    """StreamingTransport built on the websockets library."""

    def __init__(self, open_timeout: float = 10.0, close_timeout: float = 10.0):
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout

    async def connect(self, url: str) -> WebsocketsConnection:
        try:
            ws = await websockets.connect(
                url,
                ping_interval=None,  # Venue-level ping frames are sent by the multiplexer
                open_timeout=self._open_timeout,
                close_timeout=self._close_timeout,
            )
        except (OSError, asyncio.TimeoutError, InvalidHandshake) as e:
            raise TransportError(f"Could not connect to {url}: {e}") from e

        logger.info(f"WebSocket connected to {url}")
        return WebsocketsConnection(ws)


def encode_frame(frame: Any) -> str:
    return json.dumps(frame, separators=(",", ":"))
