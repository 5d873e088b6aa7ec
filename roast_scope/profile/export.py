"""CSV export of a finished roast.

Format (tab-separated):

    Date:<dd.mm.yyyy>\tUnit:C\t<TAG>:<mm:ss>...\tTime:<mm:ss>
    Time1\tTime2\tET\tBT\tEvent
    <mm:ss>\t<mm:ss since charge | blank>\t<ET .2f>\t<BT .2f>\t<TAG | blank>
    ...

Only events with a canonical tag appear in the header, and every such
event does.  A row carries an event tag when that event lies within 0.5s
of the row's timestamp; events with no row in reach, or sharing a row
with an earlier event, are recorded by the header alone.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from roast_scope.domain.enums import EventLabel
from roast_scope.domain.sample import DataPoint, RoastEvent
from roast_scope.domain.session import format_clock
from roast_scope.foundation.clock import utc_now
from roast_scope.profile.labels import tag_for

logger = logging.getLogger(__name__)

EVENT_MATCH_TOLERANCE = 0.5
COLUMNS = ("Time1", "Time2", "ET", "BT", "Event")


class EmptyRoastError(Exception):
    """Raised when there is nothing to export."""


def _row_event_tags(
    samples: Sequence[DataPoint],
    events: Sequence[RoastEvent],
) -> dict[int, str]:
    """Row index → tag, each event pinned to its nearest row within tolerance."""
    tags: dict[int, str] = {}
    for event in events:
        tag = tag_for(event.label)
        if not tag:
            continue
        index = min(range(len(samples)), key=lambda i: abs(samples[i].time - event.time))
        if abs(samples[index].time - event.time) > EVENT_MATCH_TOLERANCE:
            logger.debug("Event %s at %.1fs has no row within tolerance", event.label, event.time)
            continue
        tags.setdefault(index, tag)
    return tags


def export_csv(
    samples: Sequence[DataPoint],
    events: Sequence[RoastEvent],
    start_time: float | None = None,
    unit: str = "C",
) -> str:
    """Render the roast as CSV text.

    Args:
        samples: The sample log, time-ordered.
        events: The milestone log.
        start_time: Epoch seconds of roast start, for the header date.
            Falls back to today when unknown (e.g. an imported roast).
        unit: Temperature unit written into the header.

    Raises:
        EmptyRoastError: If there are no samples.
    """
    if not samples:
        raise EmptyRoastError("No roast data to export")

    when = (
        datetime.fromtimestamp(start_time, tz=timezone.utc)
        if start_time is not None
        else utc_now()
    )

    header = [f"Date:{when.strftime('%d.%m.%Y')}", f"Unit:{unit}"]
    for event in events:
        tag = tag_for(event.label)
        if tag:
            header.append(f"{tag}:{format_clock(event.time)}")
    header.append(f"Time:{format_clock(samples[-1].time)}")

    charge = next((e for e in events if e.label == EventLabel.CHARGE.value), None)

    row_tags = _row_event_tags(samples, events)

    lines = ["\t".join(header), "\t".join(COLUMNS)]
    for index, point in enumerate(samples):
        since_charge = ""
        if charge is not None and point.time >= charge.time:
            since_charge = format_clock(point.time - charge.time)
        lines.append(
            "\t".join((
                format_clock(point.time),
                since_charge,
                f"{point.et:.2f}",
                f"{point.bt:.2f}",
                row_tags.get(index, ""),
            ))
        )

    logger.info("Exported %d samples, %d events", len(samples), len(events))
    return "\n".join(lines) + "\n"
