"""Timeline value objects — samples, milestone events, device readings.

DataPoint and RoastEvent are immutable once created.  A DataPoint's RoR
fields are derived by the session from BT/ET history when the point is
produced; callers never set them independently.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from roast_scope.foundation.clock import epoch_now


# ── Timeline ─────────────────────────────────────────────────────────────────

class DataPoint(BaseModel):
    """One sample in the roast timeline."""

    time: float = Field(..., ge=0.0, description="Seconds elapsed since roast start")
    bt: float = Field(..., description="Bean temperature")
    et: float = Field(0.0, description="Environment temperature (0 = no ET channel)")
    ror: float = Field(0.0, description="BT rate of rise, degrees/minute")
    et_ror: float = Field(0.0, alias="etRor", description="ET rate of rise, degrees/minute")

    model_config = ConfigDict(frozen=True, populate_by_name=True)


class RoastEvent(BaseModel):
    """An operator-marked milestone."""

    time: float = Field(..., ge=0.0, description="Seconds since roast start when marked")
    label: str = Field(..., min_length=1, max_length=64)
    temp: float = Field(..., description="Bean temperature captured at mark time")

    model_config = ConfigDict(frozen=True)


# ── Device readings ──────────────────────────────────────────────────────────

class Reading(BaseModel):
    """A normalised (BT, ET) pair produced by a transport.

    Absence of an ET channel is represented by ``et == 0``; ``et_present``
    states it explicitly so consumers need not overload the sentinel.
    """

    bt: float
    et: float = 0.0
    et_present: bool = True

    model_config = ConfigDict(frozen=True)


class LiveReading:
    """Mutable cell holding the most recent reading from the transport.

    The sampling tick reads this cell directly, so it always observes the
    latest value rather than one captured when the tick was scheduled.
    """

    __slots__ = ("bt", "et", "et_present", "updated_at", "count")

    def __init__(self, bt: float = 0.0, et: float = 0.0) -> None:
        self.bt = bt
        self.et = et
        self.et_present = False
        self.updated_at: float | None = None
        self.count = 0

    def update(self, reading: Reading) -> None:
        self.bt = reading.bt
        self.et = reading.et
        self.et_present = reading.et_present
        self.updated_at = epoch_now()
        self.count += 1

    def clear(self) -> None:
        self.bt = 0.0
        self.et = 0.0
        self.et_present = False
        self.updated_at = None

    def to_dict(self) -> dict:
        return {
            "bt": self.bt,
            "et": self.et,
            "et_present": self.et_present,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"LiveReading(bt={self.bt}, et={self.et}, n={self.count})"
