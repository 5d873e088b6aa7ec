"""RoastSession — the single long-lived roast aggregate.

The session is created once in ``idle`` and never replaced; start and
reset re-initialise its contents in place.  It owns the append-only
sample log and the toggle-able milestone log.

Lifecycle:
    idle ──connect──▶ preheating ──start──▶ roasting ──stop──▶ finished
                          ▲                   ▲  │ (restart)      │
                          │                   └──┘                │
                          │                   ◀──undo (grace)─────┤
                          └──────────────── reset ────────────────┘
    any state ──device lost──▶ idle   (roast data retained)

Operations called in a state that does not permit them are no-ops that
return False/None; they never raise.  The drop-undo grace period is
modelled as a deadline on the session rather than a platform timer, so
every transition is testable without real delays.  The async controller
arms the wall-clock timer that calls finalize_drop().

Thread-safety note:
    All mutation happens on the single event loop that owns the session.
    The session is not itself locked.
"""

from __future__ import annotations

import logging

from roast_scope.core.ror import LIVE, RoRConfig, build_point
from roast_scope.domain.enums import EventLabel, RoastStatus
from roast_scope.domain.sample import DataPoint, RoastEvent
from roast_scope.foundation.clock import epoch_now
from roast_scope.profile.labels import label_for

logger = logging.getLogger(__name__)

# Labels the toggle path never touches: start is implicit, drop is owned
# by stop_roast()/undo_drop()
_RESERVED_LABELS = frozenset({EventLabel.START.value, EventLabel.DROP.value})

# UI-level enablement: label → label that must already be marked
MILESTONE_PREREQUISITES: dict[str, str | None] = {
    EventLabel.CHARGE.value: None,
    EventLabel.TURNING_POINT.value: None,
    EventLabel.DRY_END.value: EventLabel.CHARGE.value,
    EventLabel.FC_START.value: EventLabel.CHARGE.value,
    EventLabel.FC_END.value: EventLabel.FC_START.value,
    EventLabel.SC_START.value: EventLabel.FC_START.value,
    EventLabel.SC_END.value: EventLabel.SC_START.value,
}


def _label_value(label: str | EventLabel) -> str:
    """Canonical form, so "Charge", "CHARGE" and "charge" are one milestone."""
    return label.value if isinstance(label, EventLabel) else label_for(str(label))


def format_clock(seconds: float) -> str:
    """Format elapsed seconds as ``mm:ss`` (minutes are not wrapped)."""
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


class RoastSession:
    """Roast state machine with its sample and event logs.

    Args:
        ror_config: Window and thresholds used for each sampled point.
        drop_grace_seconds: How long after a drop undo_drop() is allowed.
    """

    __slots__ = (
        "status",
        "start_time",
        "device_active",
        "current_ror",
        "current_et_ror",
        "_ror_config",
        "_drop_grace_seconds",
        "_drop_deadline",
        "_samples",
        "_events",
    )

    def __init__(
        self,
        ror_config: RoRConfig = LIVE,
        drop_grace_seconds: float = 5.0,
    ) -> None:
        self.status: RoastStatus = RoastStatus.IDLE
        self.start_time: float | None = None
        self.device_active: bool = False
        self.current_ror: float = 0.0
        self.current_et_ror: float = 0.0
        self._ror_config = ror_config
        self._drop_grace_seconds = drop_grace_seconds
        self._drop_deadline: float | None = None
        self._samples: list[DataPoint] = []
        self._events: list[RoastEvent] = []

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def samples(self) -> list[DataPoint]:
        """Read-only view of the sample log."""
        return list(self._samples)

    @property
    def events(self) -> list[RoastEvent]:
        """Read-only view of the milestone log."""
        return list(self._events)

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def is_cleared(self) -> bool:
        """True when the session holds no roast data at all."""
        return not self._samples and not self._events and self.start_time is None

    @property
    def drop_undo_pending(self) -> bool:
        """True while a drop may still be undone."""
        if self.status != RoastStatus.FINISHED or self._drop_deadline is None:
            return False
        return epoch_now() <= self._drop_deadline

    @property
    def drop_deadline(self) -> float | None:
        return self._drop_deadline

    def elapsed(self) -> float:
        """Seconds since roast start; 0.0 before any roast started."""
        if self.start_time is None:
            return 0.0
        return max(0.0, epoch_now() - self.start_time)

    def has_event(self, label: str | EventLabel) -> bool:
        value = _label_value(label)
        return any(e.label == value for e in self._events)

    def enabled_labels(self) -> list[str]:
        """Milestones a UI should offer right now (prerequisites met).

        Advisory only: toggle_event() does not enforce these.
        """
        if self.status != RoastStatus.ROASTING:
            return []
        return [
            label
            for label, needs in MILESTONE_PREREQUISITES.items()
            if needs is None or self.has_event(needs)
        ]

    # ── Device lifecycle ─────────────────────────────────────────────────

    def device_connected(self) -> bool:
        """A transport or simulation came up: idle → preheating."""
        self.device_active = True
        if self.status != RoastStatus.IDLE:
            return False
        self._transition(RoastStatus.PREHEATING)
        return True

    def device_lost(self) -> None:
        """Hard interrupt: force idle from any state, keep roast data."""
        self.device_active = False
        self._drop_deadline = None
        if self.status != RoastStatus.IDLE:
            self._transition(RoastStatus.IDLE)

    # ── Roast lifecycle ──────────────────────────────────────────────────

    def start_roast(self, current_bt: float) -> bool:
        """Begin (or restart) a roast: clear logs, stamp start, mark "start"."""
        if self.status not in (RoastStatus.PREHEATING, RoastStatus.ROASTING):
            logger.debug("start_roast ignored in %s", self.status.value)
            return False
        self._clear()
        self.start_time = epoch_now()
        self._events.append(
            RoastEvent(time=0.0, label=EventLabel.START.value, temp=current_bt)
        )
        self._transition(RoastStatus.ROASTING)
        return True

    def record_sample(self, bt: float, et: float) -> DataPoint | None:
        """Sampling tick: derive RoR and append the next DataPoint.

        The only path that grows the sample log.  Returns None when not
        roasting or when the clock has stepped backwards.
        """
        if self.status != RoastStatus.ROASTING or self.start_time is None:
            return None
        elapsed = self.elapsed()
        if self._samples and elapsed < self._samples[-1].time:
            logger.warning(
                "Clock went backwards (%.3f < %.3f); sample skipped",
                elapsed,
                self._samples[-1].time,
            )
            return None

        point = build_point(self._samples, elapsed, bt, et, self._ror_config)
        self._samples.append(point)
        self.current_ror = point.ror
        self.current_et_ror = point.et_ror
        return point

    def toggle_event(self, label: str | EventLabel, current_bt: float) -> bool:
        """Mark *label* now, or un-mark it if already present.

        Returns True if the event log changed.
        """
        if self.status != RoastStatus.ROASTING:
            logger.debug("toggle_event(%s) ignored in %s", label, self.status.value)
            return False
        value = _label_value(label)
        if not value or value in _RESERVED_LABELS:
            return False

        for index, event in enumerate(self._events):
            if event.label == value:
                del self._events[index]
                logger.info("Removed event %s (was at %.1fs)", value, event.time)
                return True

        event = RoastEvent(time=self.elapsed(), label=value, temp=current_bt)
        self._events.append(event)
        logger.info("Marked event %s at %.1fs (%.1f°)", value, event.time, event.temp)
        return True

    def stop_roast(self, current_bt: float) -> RoastEvent | None:
        """Drop: always append a terminal "drop", finish, arm the undo grace."""
        if self.status != RoastStatus.ROASTING:
            logger.debug("stop_roast ignored in %s", self.status.value)
            return None
        event = RoastEvent(
            time=self.elapsed(), label=EventLabel.DROP.value, temp=current_bt
        )
        self._events.append(event)
        self._drop_deadline = epoch_now() + self._drop_grace_seconds
        self._transition(RoastStatus.FINISHED)
        return event

    def undo_drop(self) -> bool:
        """Within the grace period: remove the drop and resume roasting.

        start_time is kept, so elapsed time continues where it left off.
        """
        if not self.drop_undo_pending:
            logger.debug("undo_drop ignored (no pending drop)")
            return False
        for index in range(len(self._events) - 1, -1, -1):
            if self._events[index].label == EventLabel.DROP.value:
                del self._events[index]
                break
        self._drop_deadline = None
        self._transition(RoastStatus.ROASTING)
        return True

    def finalize_drop(self) -> bool:
        """Grace period over: the drop becomes permanent."""
        if self._drop_deadline is None:
            return False
        self._drop_deadline = None
        logger.info("Drop finalized")
        return True

    def reset(self) -> bool:
        """Clear everything; back to preheating (device up) or idle."""
        if self.status == RoastStatus.IDLE:
            logger.debug("reset ignored in idle")
            return False
        self._clear()
        self._transition(
            RoastStatus.PREHEATING if self.device_active else RoastStatus.IDLE
        )
        return True

    def load_profile(self, samples: list[DataPoint], events: list[RoastEvent]) -> bool:
        """Replace the logs with an imported roast, all at once.

        Refused while roasting so a live roast is never overwritten.
        """
        if self.status == RoastStatus.ROASTING:
            return False
        self._clear()
        self._samples = list(samples)
        self._events = list(events)
        if self._samples:
            self.current_ror = self._samples[-1].ror
            self.current_et_ror = self._samples[-1].et_ror
        self._transition(RoastStatus.FINISHED)
        return True

    # ── Summary ──────────────────────────────────────────────────────────

    def summary(self) -> dict:
        """Structural facts for acknowledgements, health and logging."""
        last_time = self._samples[-1].time if self._samples else 0.0
        duration = self.elapsed() if self.status == RoastStatus.ROASTING else last_time
        return {
            "status": self.status.value,
            "start_time": self.start_time,
            "elapsed": round(duration, 1),
            "duration": format_clock(duration),
            "sample_count": len(self._samples),
            "event_count": len(self._events),
            "current_ror": self.current_ror,
            "current_et_ror": self.current_et_ror,
            "drop_undo_pending": self.drop_undo_pending,
            "enabled_labels": self.enabled_labels(),
        }

    def snapshot(self) -> dict:
        """Summary plus the full logs, JSON-ready."""
        data = self.summary()
        data["samples"] = [p.model_dump(by_alias=True) for p in self._samples]
        data["events"] = [e.model_dump() for e in self._events]
        return data

    # ── Internals ────────────────────────────────────────────────────────

    def _clear(self) -> None:
        self._samples = []
        self._events = []
        self.start_time = None
        self.current_ror = 0.0
        self.current_et_ror = 0.0
        self._drop_deadline = None

    def _transition(self, new_status: RoastStatus) -> None:
        logger.info("Session %s → %s", self.status.value, new_status.value)
        self.status = new_status

    def __repr__(self) -> str:
        return (
            f"RoastSession(status={self.status.value}, "
            f"samples={len(self._samples)}, "
            f"events={len(self._events)})"
        )
