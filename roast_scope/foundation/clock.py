"""Clock utilities.

Every "now" the roast timeline depends on comes from this module so tests
can monkey-patch it trivially.  Session timing uses epoch seconds (float);
calendar dates (CSV export header) use timezone-aware UTC datetimes.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone


def epoch_now() -> float:
    """Return the current wall-clock time as seconds since the epoch."""
    return time.time()


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)
