"""Serial / USB / SPP transport for TC4-style thermocouple boards.

The board is polled with a literal ``READ\\n`` once per poll interval and
answers with one text line per sample.  Boards that stream unsolicited
are unaffected: every complete line received is parsed.

pyserial is blocking, so reads and writes run in worker threads via
asyncio.to_thread; the event loop only ever sees complete chunks.
"""

from __future__ import annotations

import asyncio
import logging

from serial import Serial, SerialException
from serial.tools import list_ports

from roast_scope.parsing.line_parser import LineFramer, LineParser
from roast_scope.services.tasks import PeriodicTask
from roast_scope.transports.base import Transport, TransportHandshakeError

logger = logging.getLogger(__name__)

POLL_COMMAND = b"READ\n"
READ_TIMEOUT = 0.2


class SerialTransport(Transport):
    """Reads device lines from a serial port.

    Args:
        port: Device path (``/dev/ttyUSB0``, ``COM3``).  When None the first
            port the OS reports is used.
        baudrate: 115200 suits most aArtisan/TC4 sketches; some HC-05
            modules default to 9600.
        parser: LineParser shared across reconnects (keeps the ET cache).
        poll_interval: Seconds between READ commands.
    """

    def __init__(
        self,
        port: str | None = None,
        baudrate: int = 115200,
        parser: LineParser | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        super().__init__()
        self._port = port
        self._baudrate = baudrate
        self._parser = parser or LineParser()
        self._framer = LineFramer()
        self._serial: Serial | None = None
        self._reader: asyncio.Task | None = None
        self._poller = PeriodicTask("serial-poll", poll_interval, self._poll)

    @property
    def source_name(self) -> str:
        return "serial"

    async def _open(self) -> str:
        port = self._port or self._discover_port()
        try:
            self._serial = await asyncio.to_thread(
                Serial, port, self._baudrate, timeout=READ_TIMEOUT
            )
        except (SerialException, OSError) as exc:
            logger.error("Error opening serial port %s: %s", port, exc)
            raise TransportHandshakeError(f"Cannot open serial port {port}: {exc}") from exc

        self._framer.clear()
        self._reader = asyncio.get_running_loop().create_task(
            self._read_loop(), name="serial-read"
        )
        self._poller.start()
        return f"Serial/SPP Device ({port})"

    async def _close(self) -> None:
        self._poller.cancel()
        if self._reader is not None and self._reader is not asyncio.current_task():
            self._reader.cancel()
        self._reader = None
        if self._serial is not None:
            try:
                await asyncio.to_thread(self._serial.close)
            except (SerialException, OSError) as exc:
                logger.warning("Error closing serial port: %s", exc)
            self._serial = None
        self._framer.clear()

    @staticmethod
    def _discover_port() -> str:
        ports = list_ports.comports()
        if not ports:
            raise TransportHandshakeError("No serial port found; is the device plugged in?")
        logger.info("Using first available serial port %s", ports[0].device)
        return ports[0].device

    # ── I/O ──────────────────────────────────────────────────────────────

    def handle_chunk(self, chunk: str) -> None:
        """Frame a decoded chunk and emit a reading for each complete line."""
        for line in self._framer.feed(chunk):
            self._emit(self._parser.parse(line))

    def _read_chunk(self) -> bytes:
        assert self._serial is not None
        return self._serial.read(self._serial.in_waiting or 1)

    async def _read_loop(self) -> None:
        try:
            while self._serial is not None:
                data = await asyncio.to_thread(self._read_chunk)
                if data:
                    self.handle_chunk(data.decode("utf-8", errors="ignore"))
        except (SerialException, OSError) as exc:
            logger.error("Serial read error: %s", exc)
            await self._close()
            self._signal_disconnect()

    async def _poll(self) -> None:
        if self._serial is None:
            return
        try:
            await asyncio.to_thread(self._serial.write, POLL_COMMAND)
        except (SerialException, OSError) as exc:
            logger.warning("Failed to write READ command: %s", exc)
