"""Transport Registry — builds transports by kind.

The registry maps a kind string ("serial", "ble", "websocket",
"simulator") to a factory.  Connect requests name a kind plus optional
overrides; the registry fills the rest from settings.

No guessing.  Fail fast if the kind is unknown.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from roast_scope.config import Settings
from roast_scope.parsing.line_parser import LineParser
from roast_scope.transports.base import Transport
from roast_scope.transports.ble import BleTransport
from roast_scope.transports.serial_port import SerialTransport
from roast_scope.transports.simulator import SimulatorTransport, ThermalModel
from roast_scope.transports.websocket import WebSocketTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[..., Transport]


class TransportStats:
    """Per-kind connection statistics for observability."""

    __slots__ = ("kind", "connected_count", "failed_count")

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.connected_count: int = 0
        self.failed_count: int = 0

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "connected_count": self.connected_count,
            "failed_count": self.failed_count,
        }


class UnknownTransportError(Exception):
    """Raised when no factory is registered for the requested kind."""


class TransportRegistry:
    """Registry of transport factories with connection stats.

    Usage:
        registry = TransportRegistry()
        registry.register("simulator", lambda **kw: SimulatorTransport())

        transport = registry.create("simulator")
    """

    def __init__(self) -> None:
        self._factories: dict[str, TransportFactory] = {}
        self._stats: dict[str, TransportStats] = {}

    def register(self, kind: str, factory: TransportFactory) -> None:
        self._factories[kind] = factory
        self._stats[kind] = TransportStats(kind)
        logger.info("Registered transport: %s", kind)

    def create(self, kind: str, **options: Any) -> Transport:
        """Build a transport of *kind*; *options* override settings.

        Raises:
            UnknownTransportError: If *kind* is not registered.
            ValueError: If the options are unusable (e.g. empty URL).
        """
        factory = self._factories.get(kind)
        if factory is None:
            raise UnknownTransportError(
                f"Unknown transport '{kind}'; expected one of {self.kinds}"
            )
        try:
            return factory(**{k: v for k, v in options.items() if v is not None})
        except TypeError as exc:
            raise ValueError(f"Invalid options for transport '{kind}': {exc}") from exc

    def record(self, kind: str, connected: bool) -> None:
        stats = self._stats.get(kind)
        if stats is None:
            return
        if connected:
            stats.connected_count += 1
        else:
            stats.failed_count += 1

    @property
    def kinds(self) -> list[str]:
        return list(self._factories)

    @property
    def stats(self) -> list[dict]:
        return [s.to_dict() for s in self._stats.values()]


def build_default_registry(settings: Settings, parser: LineParser) -> TransportRegistry:
    """Registry with the four built-in transports, configured from *settings*.

    Serial and BLE share *parser* so the last-known-ET cache survives a
    reconnect.
    """
    registry = TransportRegistry()

    def serial_factory(port: str | None = None, baudrate: int | None = None) -> Transport:
        return SerialTransport(
            port=port or settings.serial_port,
            baudrate=baudrate or settings.serial_baudrate,
            parser=parser,
            poll_interval=settings.poll_interval_seconds,
        )

    def ble_factory(device_name: str | None = None) -> Transport:
        return BleTransport(
            service_uuid=settings.ble_service_uuid,
            tx_uuid=settings.ble_tx_uuid,
            rx_uuid=settings.ble_rx_uuid,
            device_name=device_name or settings.ble_device_name,
            parser=parser,
            poll_interval=settings.poll_interval_seconds,
        )

    def websocket_factory(url: str | None = None) -> Transport:
        return WebSocketTransport(url or settings.websocket_url or "")

    def simulator_factory(target_et: float | None = None) -> Transport:
        model = ThermalModel(
            start_bt=settings.simulator_start_bt,
            start_et=settings.simulator_start_et,
            target_et=target_et if target_et is not None else settings.simulator_target_et,
        )
        return SimulatorTransport(model=model, interval=settings.sample_interval_seconds)

    registry.register("serial", serial_factory)
    registry.register("ble", ble_factory)
    registry.register("websocket", websocket_factory)
    registry.register("simulator", simulator_factory)
    return registry
