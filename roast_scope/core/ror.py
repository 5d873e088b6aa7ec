"""RoR calculator — windowed least-squares rate of rise.

Design principles:
    1. Pure functions: history in, degrees/minute out.  No state, no I/O.
    2. BT and ET are computed independently by the same code path.
    3. All thresholds are explicit and configurable via RoRConfig.

Slope formula (ordinary least squares over the trailing window):

    slope = (n·Σxy − Σx·Σy) / (n·Σx² − (Σx)²)

    x = sample time (seconds), y = temperature.  A zero denominator
    (fewer than two distinct times) gives slope 0.

Post-processing, in order:
    ror = slope * 60                      degrees/second → degrees/minute
    ror = clamp(ror, ror_min, ror_max)
    ror = 0 if |ror| < flat_threshold
    ror = round(ror, 1)

No exponential smoothing is layered on top: the window length alone
provides smoothness, and re-deriving the trend every tick avoids the
compounding lag of a filter over an already-smoothed signal.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from roast_scope.domain.sample import DataPoint


@dataclass(frozen=True)
class RoRConfig:
    """Window and trust thresholds for the regression."""

    window_seconds: float = 60.0
    # Below either threshold the slope is not trusted and RoR is 0
    min_points: int = 5
    min_span_seconds: float = 10.0

    ror_min: float = -50.0
    ror_max: float = 100.0
    flat_threshold: float = 0.1


LIVE = RoRConfig()
BATCH = RoRConfig(min_points=3, min_span_seconds=5.0)


def regression_slope(points: Sequence[tuple[float, float]]) -> float:
    """Least-squares slope of ``(x, y)`` points; 0.0 when degenerate."""
    n = len(points)
    if n < 2:
        return 0.0

    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for x, y in points:
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_xx += x * x

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return 0.0
    return (n * sum_xy - sum_x * sum_y) / denominator


def finalize_ror(slope_per_second: float, config: RoRConfig = LIVE) -> float:
    """Convert a raw slope into the stored, clamped, rounded RoR."""
    ror = slope_per_second * 60.0
    ror = max(config.ror_min, min(config.ror_max, ror))
    if abs(ror) < config.flat_threshold:
        return 0.0
    return round(ror, 1)


def window_points(
    history: Sequence[DataPoint],
    time: float,
    value: float,
    channel: Callable[[DataPoint], float],
    window_seconds: float,
) -> list[tuple[float, float]]:
    """History samples inside ``[time - window, time]`` plus the new sample."""
    cutoff = time - window_seconds
    points = [(p.time, channel(p)) for p in history if cutoff <= p.time <= time]
    points.append((time, value))
    return points


def compute_ror(
    history: Sequence[DataPoint],
    time: float,
    value: float,
    channel: Callable[[DataPoint], float],
    config: RoRConfig = LIVE,
) -> float:
    """Rate of rise (degrees/minute) for a new sample against *history*.

    Args:
        history: Earlier samples, time-ordered.  The new sample must not be
            included; it is appended internally.
        time: Elapsed seconds of the new sample.
        value: Temperature of the new sample on the requested channel.
        channel: Selects the channel from a DataPoint (``bt`` or ``et``).
        config: Window and thresholds.

    Returns 0.0 when the in-window history is too short or too narrow.
    """
    points = window_points(history, time, value, channel, config.window_seconds)
    if len(points) < config.min_points:
        return 0.0
    span = points[-1][0] - points[0][0]
    if span < config.min_span_seconds:
        return 0.0
    return finalize_ror(regression_slope(points), config)


def bean_channel(point: DataPoint) -> float:
    return point.bt


def env_channel(point: DataPoint) -> float:
    return point.et


def build_point(
    history: Sequence[DataPoint],
    time: float,
    bt: float,
    et: float,
    config: RoRConfig = LIVE,
) -> DataPoint:
    """Create the next DataPoint with both RoR channels derived from *history*."""
    return DataPoint(
        time=time,
        bt=bt,
        et=et,
        ror=compute_ror(history, time, bt, bean_channel, config),
        et_ror=compute_ror(history, time, et, env_channel, config),
    )


def recompute_series(
    samples: Sequence[DataPoint],
    config: RoRConfig = LIVE,
) -> list[DataPoint]:
    """Batch form: re-derive every point's RoR from its own trailing window.

    The series is ordered by time first (stable), so the result does not
    depend on the order rows were read in.
    """
    ordered = sorted(samples, key=lambda p: p.time)
    result: list[DataPoint] = []
    for point in ordered:
        result.append(build_point(result, point.time, point.bt, point.et, config))
    return result
