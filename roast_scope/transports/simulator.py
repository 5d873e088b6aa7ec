"""Simulated roaster — a first-order thermal model standing in for a device.

Each step the drum (ET) relaxes 5% of the way toward its target with a
little noise, and the beans (BT) absorb 2% of the ET–BT gap:

    et += (target_et - et) * 0.05 + noise(±0.5)
    bt += (et - bt) * 0.02

Readings are rounded to 0.1° like a real sensor.
"""

from __future__ import annotations

import logging
import random

from roast_scope.domain.sample import Reading
from roast_scope.services.tasks import PeriodicTask
from roast_scope.transports.base import Transport

logger = logging.getLogger(__name__)

ET_RESPONSE = 0.05
BT_RESPONSE = 0.02
NOISE_AMPLITUDE = 0.5


class ThermalModel:
    """Deterministic given its random source; stepped explicitly."""

    def __init__(
        self,
        start_bt: float = 150.0,
        start_et: float = 200.0,
        target_et: float = 240.0,
        rng: random.Random | None = None,
    ) -> None:
        self.bt = start_bt
        self.et = start_et
        self.target_et = target_et
        self._rng = rng or random.Random()

    def step(self) -> Reading:
        noise = (self._rng.random() - 0.5) * 2 * NOISE_AMPLITUDE
        self.et += (self.target_et - self.et) * ET_RESPONSE + noise
        self.bt += (self.et - self.bt) * BT_RESPONSE
        return Reading(bt=round(self.bt, 1), et=round(self.et, 1), et_present=True)


class SimulatorTransport(Transport):
    """Emits one simulated reading per interval."""

    def __init__(
        self,
        model: ThermalModel | None = None,
        interval: float = 1.0,
    ) -> None:
        super().__init__()
        self._model = model or ThermalModel()
        self._ticker = PeriodicTask("simulator", interval, self.step)

    @property
    def source_name(self) -> str:
        return "simulator"

    @property
    def model(self) -> ThermalModel:
        return self._model

    def step(self) -> Reading:
        reading = self._model.step()
        self._emit(reading)
        return reading

    async def _open(self) -> str:
        self._ticker.start()
        logger.info("Simulation started (ET target %.0f°)", self._model.target_et)
        return "Simulator"

    async def _close(self) -> None:
        self._ticker.cancel()
