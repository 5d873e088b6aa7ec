"""RoastController — wires transports, timers and the session together.

Data flow:
    Transport ──reading──▶ LiveReading cell
                                 │ (read every tick)
    PeriodicTask 1 Hz ──tick──▶ RoastSession.record_sample ──▶ listeners

The controller is the only writer of the session.  Everything runs on one
event loop, so session mutation is serialised without locks.  Both timers
(sampling tick, drop finalize) are cancelled deterministically by every
transition that supersedes them.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from roast_scope.domain.enums import RoastStatus
from roast_scope.domain.sample import DataPoint, LiveReading, Reading
from roast_scope.domain.session import RoastSession
from roast_scope.profile.export import export_csv
from roast_scope.profile.importer import ImportedProfile, ImportNormalizer
from roast_scope.services.tasks import OneShotTask, PeriodicTask
from roast_scope.transports.base import Transport, TransportError
from roast_scope.transports.registry import TransportRegistry

logger = logging.getLogger(__name__)

Listener = Callable[[str], Awaitable[None]]


class RoastInProgressError(Exception):
    """Raised when an operation would overwrite a live roast."""


class DeviceBusyError(TransportError):
    """Raised when connecting while another device is connected."""


class RoastController:
    """Async façade over the session used by the API layer.

    Args:
        session: The long-lived RoastSession.
        registry: Builds transports by kind.
        importer: Parses uploaded roast logs.
        sample_interval: Seconds between sampling ticks.
        drop_grace_seconds: Undo window after a drop.
        temp_unit: Unit written into CSV exports.
    """

    def __init__(
        self,
        session: RoastSession,
        registry: TransportRegistry,
        importer: ImportNormalizer | None = None,
        sample_interval: float = 1.0,
        drop_grace_seconds: float = 5.0,
        temp_unit: str = "C",
    ) -> None:
        self.session = session
        self.live = LiveReading()
        self._registry = registry
        self._importer = importer or ImportNormalizer()
        self._temp_unit = temp_unit
        self._transport: Transport | None = None
        self._device_label: str | None = None
        self._closing = False
        self.last_notice: str | None = None
        self._listeners: list[Listener] = []
        self._background: set[asyncio.Task] = set()
        self._ticker = PeriodicTask("sampling-tick", sample_interval, self.tick)
        self._drop_timer = OneShotTask("drop-finalize", drop_grace_seconds, self._finalize_drop)

    # ── Listeners ────────────────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        """Register an async callback invoked (in background) after each change."""
        self._listeners.append(listener)

    def _notify(self, reason: str) -> None:
        if not self._listeners:
            return
        loop = asyncio.get_running_loop()
        for listener in self._listeners:
            task = loop.create_task(listener(reason))
            self._background.add(task)
            task.add_done_callback(self._background.discard)

    # ── Device ───────────────────────────────────────────────────────────

    @property
    def transport(self) -> Transport | None:
        return self._transport

    @property
    def device_label(self) -> str | None:
        return self._device_label

    @property
    def ticking(self) -> bool:
        return self._ticker.running

    async def connect(self, kind: str, **options: Any) -> str:
        """Open a transport of *kind* and move the session to preheating.

        Raises:
            DeviceBusyError: A device is already connected.
            UnknownTransportError: *kind* is not registered.
            TransportError: The transport could not be opened; the session
                stays idle.
        """
        if self._transport is not None:
            raise DeviceBusyError(
                f"Already connected to {self._device_label}; disconnect first"
            )
        transport = self._registry.create(kind, **options)
        try:
            label = await transport.connect(self._on_reading, self._on_transport_lost)
        except TransportError as exc:
            self._registry.record(kind, connected=False)
            self.last_notice = str(exc)
            logger.error("Connect via %s failed: %s", kind, exc)
            raise

        self._registry.record(kind, connected=True)
        self._transport = transport
        self._device_label = label
        self.last_notice = None
        self.live.clear()
        self.session.device_connected()
        self._notify("connected")
        return label

    async def disconnect(self) -> bool:
        """Close the active transport; the session drops to idle."""
        transport = self._transport
        if transport is None:
            return False
        self._closing = True
        try:
            await transport.disconnect()
        except Exception as exc:
            # The link is treated as closed either way
            logger.warning("Error while closing %s: %s", transport.source_name, exc)
        finally:
            self._closing = False
        # A transport that never reported the link down still counts as gone
        if self._transport is transport:
            self._on_transport_lost()
        return True

    def _on_reading(self, reading: Reading) -> None:
        self.live.update(reading)
        self._notify("reading")

    def _on_transport_lost(self) -> None:
        """Hard interrupt from any state: stop timers, keep roast data."""
        expected = self._closing
        self._ticker.cancel()
        self._drop_timer.cancel()
        self._transport = None
        self._device_label = None
        self.session.device_lost()
        if expected:
            self.last_notice = None
        else:
            self.last_notice = "Device connection lost"
            logger.warning("Transport lost unexpectedly; session forced to idle")
        self._notify("disconnected")

    # ── Roast lifecycle ──────────────────────────────────────────────────

    async def start_roast(self) -> bool:
        if not self.session.start_roast(self.live.bt):
            return False
        self._drop_timer.cancel()
        self._ticker.start()
        self._notify("started")
        return True

    async def stop_roast(self) -> bool:
        if self.session.stop_roast(self.live.bt) is None:
            return False
        self._ticker.cancel()
        self._drop_timer.start()
        self._notify("dropped")
        return True

    async def undo_drop(self) -> bool:
        if not self.session.undo_drop():
            return False
        self._drop_timer.cancel()
        self._ticker.start()
        self._notify("drop_undone")
        return True

    async def reset(self) -> bool:
        if not self.session.reset():
            return False
        self._ticker.cancel()
        self._drop_timer.cancel()
        self._notify("reset")
        return True

    async def toggle_event(self, label: str) -> bool:
        if not self.session.toggle_event(label, self.live.bt):
            return False
        self._notify("event")
        return True

    def tick(self) -> DataPoint | None:
        """One sampling step: read the live cell, append a point."""
        point = self.session.record_sample(self.live.bt, self.live.et)
        if point is None and self.session.status != RoastStatus.ROASTING:
            self._ticker.cancel()
            return None
        if point is not None:
            self._notify("sample")
        return point

    def _finalize_drop(self) -> None:
        if self.session.finalize_drop():
            self._notify("drop_finalized")

    # ── Import / export ──────────────────────────────────────────────────

    async def import_profile(self, filename: str, content: bytes | str) -> ImportedProfile:
        """Parse a roast log and, only if that fully succeeds, load it.

        Raises:
            RoastInProgressError: A roast is being recorded.
            ImportFormatError: The file could not be parsed.
        """
        if self.session.status == RoastStatus.ROASTING:
            raise RoastInProgressError("Cannot import while a roast is in progress")
        profile = self._importer.normalize(filename, content)
        self._drop_timer.cancel()
        self.session.load_profile(profile.samples, profile.events)
        self._notify("imported")
        return profile

    def export_csv(self) -> str:
        """CSV text for the current log.

        Raises:
            EmptyRoastError: No samples recorded.
        """
        return export_csv(
            self.session.samples,
            self.session.events,
            start_time=self.session.start_time,
            unit=self._temp_unit,
        )

    # ── Snapshot / shutdown ──────────────────────────────────────────────

    def snapshot(self, include_logs: bool = True) -> dict:
        data = self.session.snapshot() if include_logs else self.session.summary()
        data["live"] = self.live.to_dict()
        data["device"] = {
            "connected": self._transport is not None,
            "kind": self._transport.source_name if self._transport else None,
            "label": self._device_label,
        }
        data["notice"] = self.last_notice
        return data

    async def shutdown(self) -> None:
        self._ticker.cancel()
        self._drop_timer.cancel()
        await self.disconnect()
