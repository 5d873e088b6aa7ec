"""WebSocket transport for devices that push JSON (Artisan-style).

Each text message is parsed with parse_json_message(); anything that is
not a JSON object with a temperature field is ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from roast_scope.parsing.line_parser import parse_json_message
from roast_scope.transports.base import Transport, TransportHandshakeError

logger = logging.getLogger(__name__)

OPEN_TIMEOUT = 10.0


def normalize_url(url: str) -> str:
    """Add the ``ws://`` scheme when the address has none."""
    url = url.strip()
    return url if "://" in url else f"ws://{url}"


class WebSocketTransport(Transport):
    """Client connection to a device WebSocket server."""

    def __init__(self, url: str) -> None:
        super().__init__()
        if not url or not url.strip():
            raise ValueError("WebSocket URL must not be empty")
        self._url = normalize_url(url)
        self._ws: Any = None
        self._receiver: asyncio.Task | None = None

    @property
    def source_name(self) -> str:
        return "websocket"

    @property
    def url(self) -> str:
        return self._url

    async def _open(self) -> str:
        logger.info("Connecting to WebSocket: %s", self._url)
        try:
            self._ws = await websockets.connect(self._url, open_timeout=OPEN_TIMEOUT)
        except (OSError, InvalidHandshake, InvalidURI, asyncio.TimeoutError) as exc:
            logger.error("WebSocket connection failed: %s", exc)
            raise TransportHandshakeError(
                f"WebSocket connection to {self._url} failed; check the address and network"
            ) from exc

        self._receiver = asyncio.get_running_loop().create_task(
            self._receive_loop(), name="websocket-receive"
        )
        return f"WS: {self._url}"

    async def _close(self) -> None:
        if self._receiver is not None and self._receiver is not asyncio.current_task():
            self._receiver.cancel()
        self._receiver = None
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()

    def handle_message(self, message: str | bytes) -> None:
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="ignore")
        self._emit(parse_json_message(message))

    async def _receive_loop(self) -> None:
        try:
            async for message in self._ws:
                self.handle_message(message)
            logger.info("WebSocket closed by peer")
        except ConnectionClosed as exc:
            logger.warning("WebSocket closed: %s", exc)
        self._ws = None
        self._receiver = None
        self._signal_disconnect()
