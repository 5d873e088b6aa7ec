"""Tests for RoastController — transports, timers and session wiring."""

from __future__ import annotations

import asyncio
import sys
from unittest.mock import patch

import pytest

from roast_scope.config import Settings
from roast_scope.domain.enums import RoastStatus
from roast_scope.domain.session import RoastSession
from roast_scope.parsing.line_parser import LineParser
from roast_scope.profile.export import EmptyRoastError
from roast_scope.profile.importer import ImportFormatError
from roast_scope.services.controller import (
    DeviceBusyError,
    RoastController,
    RoastInProgressError,
)
from roast_scope.transports.base import TransportHandshakeError
from roast_scope.transports.ble import BleTransport
from roast_scope.transports.registry import TransportRegistry, build_default_registry
from tests.test_transports import FakeTransport, _bleak_modules


# ── Helpers ──────────────────────────────────────────────────────────────────

_CSV = "Time,BT,ET,Event\n0,100,200,\n3,110,205,CHARGE\n6,120,210,\n"


def _controller(
    transport: FakeTransport | None = None,
    grace: float = 5.0,
    **kwargs,
) -> tuple[RoastController, FakeTransport]:
    transport = transport or FakeTransport()
    registry = TransportRegistry()
    registry.register("fake", lambda: transport)
    kwargs.setdefault("sample_interval", 60.0)
    controller = RoastController(
        RoastSession(drop_grace_seconds=grace),
        registry,
        drop_grace_seconds=grace,
        **kwargs,
    )
    return controller, transport


async def _roasting(**kwargs) -> tuple[RoastController, FakeTransport]:
    controller, transport = _controller(**kwargs)
    await controller.connect("fake")
    transport.push(120.0, 210.0)
    assert await controller.start_roast()
    return controller, transport


# ── Device link ──────────────────────────────────────────────────────────────


class TestDeviceLink:
    @pytest.mark.asyncio
    async def test_connect_moves_to_preheating(self) -> None:
        controller, _ = _controller(FakeTransport("TC4 Board"))
        label = await controller.connect("fake")
        assert label == "TC4 Board"
        assert controller.session.status == RoastStatus.PREHEATING
        snapshot = controller.snapshot(include_logs=False)
        assert snapshot["device"] == {"connected": True, "kind": "fake", "label": "TC4 Board"}

    @pytest.mark.asyncio
    async def test_failed_connect_stays_idle(self) -> None:
        controller, _ = _controller(FakeTransport(fail=True))
        with pytest.raises(TransportHandshakeError):
            await controller.connect("fake")
        assert controller.session.status == RoastStatus.IDLE
        assert controller.transport is None
        assert "refused" in controller.last_notice
        assert controller._registry.stats[0]["failed_count"] == 1

    @pytest.mark.asyncio
    async def test_second_connect_is_refused(self) -> None:
        controller, _ = _controller()
        await controller.connect("fake")
        with pytest.raises(DeviceBusyError):
            await controller.connect("fake")

    @pytest.mark.asyncio
    async def test_readings_update_live_cell(self) -> None:
        controller, transport = _controller()
        await controller.connect("fake")
        transport.push(150.5, 201.0)
        assert controller.live.bt == 150.5
        assert controller.live.et == 201.0
        assert controller.live.count == 1

    @pytest.mark.asyncio
    async def test_link_lost_mid_roast(self) -> None:
        controller, transport = await _roasting()
        controller.tick()
        transport.drop_link()
        assert controller.session.status == RoastStatus.IDLE
        assert controller.session.sample_count == 1
        assert controller.transport is None
        assert not controller.ticking
        assert controller.last_notice == "Device connection lost"

    @pytest.mark.asyncio
    async def test_explicit_disconnect(self) -> None:
        controller, transport = await _roasting()
        assert await controller.disconnect() is True
        assert controller.session.status == RoastStatus.IDLE
        assert controller.last_notice is None
        assert transport.close_calls == 1
        assert await controller.disconnect() is False

    @pytest.mark.asyncio
    async def test_disconnect_with_failing_close_still_goes_idle(self) -> None:
        controller, transport = await _roasting(
            transport=FakeTransport(close_error=OSError("broken pipe"))
        )
        assert await controller.disconnect() is True
        assert controller.session.status == RoastStatus.IDLE
        assert controller.transport is None
        assert not controller.ticking
        assert controller.last_notice is None
        assert not transport.connected

    @pytest.mark.asyncio
    async def test_ble_connect_timeout_is_a_handshake_failure(self) -> None:
        registry = TransportRegistry()
        registry.register("ble", lambda: BleTransport(device_name="TC4"))
        controller = RoastController(RoastSession(), registry)
        with patch.dict(sys.modules, _bleak_modules(asyncio.TimeoutError())):
            with pytest.raises(TransportHandshakeError):
                await controller.connect("ble")
        assert controller.session.status == RoastStatus.IDLE
        assert controller.transport is None
        assert "Bluetooth connection failed" in controller.last_notice
        assert registry.stats == [{"kind": "ble", "connected_count": 0, "failed_count": 1}]


# ── Roast lifecycle ──────────────────────────────────────────────────────────


class TestRoastLifecycle:
    @pytest.mark.asyncio
    async def test_start_requires_device(self) -> None:
        controller, _ = _controller()
        assert await controller.start_roast() is False
        assert not controller.ticking

    @pytest.mark.asyncio
    async def test_start_uses_live_bt_and_ticks(self) -> None:
        controller, transport = await _roasting()
        assert controller.session.events[0].temp == 120.0
        assert controller.ticking
        transport.push(125.0, 212.0)
        point = controller.tick()
        assert point is not None
        assert (point.bt, point.et) == (125.0, 212.0)

    @pytest.mark.asyncio
    async def test_stop_and_undo(self) -> None:
        controller, _ = await _roasting()
        assert await controller.stop_roast() is True
        assert not controller.ticking
        assert controller.session.drop_undo_pending
        assert await controller.undo_drop() is True
        assert controller.ticking
        assert controller.session.status == RoastStatus.ROASTING

    @pytest.mark.asyncio
    async def test_drop_finalizes_after_grace(self) -> None:
        controller, _ = await _roasting(grace=0.05)
        reasons: list[str] = []

        async def listener(reason: str) -> None:
            reasons.append(reason)

        controller.add_listener(listener)
        await controller.stop_roast()
        await asyncio.sleep(0.2)
        assert controller.session.drop_deadline is None
        assert await controller.undo_drop() is False
        assert "drop_finalized" in reasons

    @pytest.mark.asyncio
    async def test_reset_cancels_timers(self) -> None:
        controller, _ = await _roasting()
        await controller.stop_roast()
        assert await controller.reset() is True
        assert controller.session.status == RoastStatus.PREHEATING
        assert controller.session.is_cleared
        assert await controller.undo_drop() is False

    @pytest.mark.asyncio
    async def test_toggle_event_uses_live_bt(self) -> None:
        controller, transport = await _roasting()
        transport.push(160.0, 220.0)
        assert await controller.toggle_event("charge") is True
        assert controller.session.events[-1].temp == 160.0
        assert await controller.toggle_event("drop") is False

    @pytest.mark.asyncio
    async def test_tick_outside_roasting_stops_ticker(self) -> None:
        controller, _ = await _roasting()
        controller.session.device_lost()
        assert controller.tick() is None
        assert not controller.ticking

    @pytest.mark.asyncio
    async def test_sampling_runs_on_its_own(self) -> None:
        controller, _ = await _roasting(sample_interval=0.02)
        await asyncio.sleep(0.15)
        await controller.stop_roast()
        count = controller.session.sample_count
        assert count >= 3
        await asyncio.sleep(0.05)
        assert controller.session.sample_count == count

    @pytest.mark.asyncio
    async def test_listeners_see_transitions(self) -> None:
        controller, transport = _controller()
        reasons: list[str] = []

        async def listener(reason: str) -> None:
            reasons.append(reason)

        controller.add_listener(listener)
        await controller.connect("fake")
        transport.push(100.0)
        await controller.start_roast()
        controller.tick()
        await asyncio.sleep(0)
        assert reasons == ["connected", "reading", "started", "sample"]


# ── Import / export ──────────────────────────────────────────────────────────


class TestImportExport:
    @pytest.mark.asyncio
    async def test_import_loads_profile(self) -> None:
        controller, _ = _controller()
        profile = await controller.import_profile("roast.csv", _CSV)
        assert len(profile.samples) == 3
        assert controller.session.status == RoastStatus.FINISHED
        assert controller.session.events[0].label == "charge"

    @pytest.mark.asyncio
    async def test_import_refused_while_roasting(self) -> None:
        controller, _ = await _roasting()
        with pytest.raises(RoastInProgressError):
            await controller.import_profile("roast.csv", _CSV)
        assert controller.session.status == RoastStatus.ROASTING

    @pytest.mark.asyncio
    async def test_failed_import_changes_nothing(self) -> None:
        controller, _ = await _roasting()
        controller.tick()
        await controller.stop_roast()
        with pytest.raises(ImportFormatError):
            await controller.import_profile("roast.csv", "garbage\n")
        assert controller.session.sample_count == 1
        assert controller.session.drop_undo_pending

    @pytest.mark.asyncio
    async def test_export(self) -> None:
        controller, _ = _controller()
        with pytest.raises(EmptyRoastError):
            controller.export_csv()
        await controller.import_profile("roast.csv", _CSV)
        lines = controller.export_csv().splitlines()
        assert lines[0].startswith("Date:")
        assert "CHARGE:00:03" in lines[0]
        assert len(lines) == 5


# ── End to end ───────────────────────────────────────────────────────────────


class TestSimulatedRoast:
    @pytest.mark.asyncio
    async def test_simulator_roast(self) -> None:
        config = Settings(sample_interval_seconds=0.01)
        controller = RoastController(
            RoastSession(),
            build_default_registry(config, LineParser()),
            sample_interval=0.01,
        )
        assert await controller.connect("simulator") == "Simulator"
        await asyncio.sleep(0.05)
        assert controller.live.count > 0
        assert controller.live.bt > 150.0

        await controller.start_roast()
        await asyncio.sleep(0.1)
        await controller.stop_roast()
        assert controller.session.sample_count > 0
        assert controller.session.events[-1].label == "drop"

        await controller.shutdown()
        assert controller.transport is None
        assert controller.session.status == RoastStatus.IDLE
