"""Bluetooth LE transport over the Nordic UART service.

TC4 boards with a BLE bridge expose the Nordic UART service: readings
arrive as notifications on the RX characteristic, commands are written to
the TX characteristic.  The board is polled with ``READ\\r\\n``.

bleak is an optional dependency (``roast-scope[ble]``) and is imported
only when a BLE connection is requested.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from roast_scope.parsing.line_parser import LineFramer, LineParser
from roast_scope.services.tasks import PeriodicTask
from roast_scope.transports.base import (
    Transport,
    TransportHandshakeError,
    TransportUnavailableError,
)

logger = logging.getLogger(__name__)

NUS_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
NUS_TX_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"  # write
NUS_RX_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"  # notify

POLL_COMMAND = b"READ\r\n"
SCAN_TIMEOUT = 10.0


class BleTransport(Transport):
    """Receives device lines as GATT notifications."""

    def __init__(
        self,
        service_uuid: str = NUS_SERVICE_UUID,
        tx_uuid: str = NUS_TX_UUID,
        rx_uuid: str = NUS_RX_UUID,
        device_name: str | None = None,
        parser: LineParser | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        super().__init__()
        self._service_uuid = service_uuid.lower()
        self._tx_uuid = tx_uuid
        self._rx_uuid = rx_uuid
        self._device_name = device_name
        self._parser = parser or LineParser()
        self._framer = LineFramer()
        self._client: Any = None
        self._poller = PeriodicTask("ble-poll", poll_interval, self._poll)

    @property
    def source_name(self) -> str:
        return "ble"

    async def _open(self) -> str:
        try:
            from bleak import BleakClient, BleakScanner
            from bleak.exc import BleakError
        except ImportError as exc:
            raise TransportUnavailableError(
                "Bluetooth LE support needs the 'bleak' package "
                "(install roast-scope[ble])"
            ) from exc

        try:
            if self._device_name:
                device = await BleakScanner.find_device_by_name(
                    self._device_name, timeout=SCAN_TIMEOUT
                )
            else:
                device = await BleakScanner.find_device_by_filter(
                    lambda _d, adv: self._service_uuid
                    in [u.lower() for u in adv.service_uuids],
                    timeout=SCAN_TIMEOUT,
                )
            if device is None:
                raise TransportHandshakeError(
                    "No device found advertising the UART service; "
                    "check device power and pairing"
                )

            client = BleakClient(device, disconnected_callback=self._on_link_lost)
            await client.connect()
            try:
                await client.start_notify(self._rx_uuid, self._on_notify)
            except (BleakError, asyncio.TimeoutError, OSError):
                await client.disconnect()
                raise
        except (BleakError, asyncio.TimeoutError, OSError) as exc:
            logger.error("BLE connection failed: %s", exc)
            raise TransportHandshakeError(
                f"Bluetooth connection failed: {exc or type(exc).__name__}"
            ) from exc

        self._client = client
        self._framer.clear()
        self._poller.start()
        return device.name or "TC4 Device"

    async def _close(self) -> None:
        self._poller.cancel()
        client, self._client = self._client, None
        if client is not None and client.is_connected:
            try:
                await client.stop_notify(self._rx_uuid)
                await client.disconnect()
            except Exception as exc:
                logger.warning("Error during BLE disconnect: %s", exc)
        self._framer.clear()

    # ── Callbacks ────────────────────────────────────────────────────────

    def handle_chunk(self, chunk: str) -> None:
        for line in self._framer.feed(chunk):
            self._emit(self._parser.parse(line))

    def _on_notify(self, _sender: Any, data: bytearray) -> None:
        self.handle_chunk(bytes(data).decode("utf-8", errors="ignore"))

    def _on_link_lost(self, _client: Any) -> None:
        if self._client is None:
            return  # our own disconnect()
        logger.warning("BLE device disconnected")
        self._poller.cancel()
        self._client = None
        self._framer.clear()
        self._signal_disconnect()

    async def _poll(self) -> None:
        client = self._client
        if client is None or not client.is_connected:
            self._poller.cancel()
            return
        try:
            await client.write_gatt_char(self._tx_uuid, POLL_COMMAND, response=False)
        except Exception as exc:
            logger.warning("Failed to write READ command: %s", exc)
