"""Abstract base for device transports.

A transport delivers readings from one roasting device and reports when
the link goes away.  The core depends only on this contract; how a link
is negotiated (GATT, serial port, WebSocket handshake) stays inside the
adapter.

Architectural rules:
    1. connect() either returns a human-readable device label or raises a
       TransportError.  It never leaves a half-open link behind.
    2. on_reading is called with normalised Readings only; parsing and
       line framing happen inside the adapter.
    3. on_disconnect fires at most once per connection, whether the link
       dropped or disconnect() was called.
    4. disconnect() is idempotent, and marks the link down even when
       closing it fails.
    5. No transport touches the RoastSession directly.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from roast_scope.domain.sample import Reading

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[Reading], None]
DisconnectCallback = Callable[[], None]


class TransportError(Exception):
    """Base class for connect-time transport failures."""


class TransportUnavailableError(TransportError):
    """The platform lacks the capability (library, adapter, OS support)."""


class TransportHandshakeError(TransportError):
    """The device, port, service or characteristic could not be opened."""


class Transport(ABC):
    """Base class for BLE / serial / WebSocket / simulated devices."""

    def __init__(self) -> None:
        self._on_reading: ReadingCallback | None = None
        self._on_disconnect: DisconnectCallback | None = None
        self._connected = False

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Short name of the transport kind."""
        ...

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(
        self,
        on_reading: ReadingCallback,
        on_disconnect: DisconnectCallback,
    ) -> str:
        """Open the link and start delivering readings.

        Returns:
            A label describing the connected device.

        Raises:
            TransportUnavailableError: Capability missing on this platform.
            TransportHandshakeError: Device could not be opened.
        """
        self._on_reading = on_reading
        self._on_disconnect = on_disconnect
        label = await self._open()
        self._connected = True
        logger.info("%s connected: %s", self.source_name, label)
        return label

    async def disconnect(self) -> None:
        """Close the link; safe to call more than once."""
        if not self._connected:
            return
        try:
            await self._close()
        finally:
            self._signal_disconnect()

    # ── Adapter hooks ────────────────────────────────────────────────────

    @abstractmethod
    async def _open(self) -> str:
        ...

    @abstractmethod
    async def _close(self) -> None:
        ...

    # ── Helpers for subclasses ───────────────────────────────────────────

    def _emit(self, reading: Reading | None) -> None:
        if reading is not None and self._on_reading is not None:
            self._on_reading(reading)

    def _signal_disconnect(self) -> None:
        """Mark the link down and notify the owner exactly once."""
        if not self._connected:
            return
        self._connected = False
        logger.info("%s disconnected", self.source_name)
        if self._on_disconnect is not None:
            self._on_disconnect()
