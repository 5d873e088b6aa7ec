"""Device-line parsing — raw transport text to a normalised Reading.

Devices in the wild speak loosely-structured text: comma-separated
channel dumps ("0.00,0.00,29.65,0.00"), labelled prose ("BT=150.2
ET=200.5"), tab-separated tables.  No schema is assumed.  Every signed
decimal on the line is collected left to right and channels are assigned
by count:

    1 number   → BT only; ET per the configured single-channel policy
    2 numbers  → BT, ET in that order
    3+ numbers → BT is the third channel; ET is the first other channel
                 whose magnitude exceeds 0.001 (unused channels report 0.00)

Lines that are blank, start with "#", or hold no numbers yield nothing.

WebSocket sources send JSON instead; parse_json_message() looks up the
documented field aliases and ignores anything that is not a JSON object.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from roast_scope.domain.enums import EtFallback
from roast_scope.domain.sample import Reading

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"[-+]?\d+(?:\.\d+)?")
_LINE_BREAK = re.compile(r"[\r\n]+")

BEAN_CHANNEL_INDEX = 2
AUX_EPSILON = 0.001

# Tried in order; the first numeric field wins
JSON_BT_FIELDS = ("temp2", "Bean", "bt")
JSON_ET_FIELDS = ("temp1", "Environment", "et")


def extract_numbers(line: str) -> list[float]:
    """Greedy numeric scan: every signed decimal on the line, in order."""
    return [float(tok) for tok in _NUMBER.findall(line)]


class LineParser:
    """Turns single device lines into Readings.

    The only state is the last ET value seen, used when the single-channel
    policy is ``EtFallback.CARRY``.
    """

    def __init__(self, single_channel_et: EtFallback = EtFallback.ZERO) -> None:
        self._single_channel_et = EtFallback(single_channel_et)
        self._last_et: float | None = None

    @property
    def last_et(self) -> float | None:
        return self._last_et

    def reset(self) -> None:
        self._last_et = None

    def parse(self, line: str) -> Reading | None:
        """Parse one line; return None when the line carries no reading."""
        text = line.strip()
        if not text or text.startswith("#"):
            return None

        numbers = extract_numbers(text)
        if not numbers:
            logger.debug("Dropped line without numeric tokens: %r", text)
            return None

        reading = self._assign_channels(numbers)
        if reading.et_present:
            self._last_et = reading.et
        return reading

    def _assign_channels(self, numbers: list[float]) -> Reading:
        if len(numbers) == 1:
            if self._single_channel_et == EtFallback.CARRY and self._last_et is not None:
                return Reading(bt=numbers[0], et=self._last_et, et_present=True)
            return Reading(bt=numbers[0], et=0.0, et_present=False)

        if len(numbers) == 2:
            return Reading(bt=numbers[0], et=numbers[1], et_present=True)

        bt = numbers[BEAN_CHANNEL_INDEX]
        for index, value in enumerate(numbers):
            if index != BEAN_CHANNEL_INDEX and abs(value) > AUX_EPSILON:
                return Reading(bt=bt, et=value, et_present=True)
        return Reading(bt=bt, et=0.0, et_present=False)


class LineFramer:
    """Reassembles complete lines from arbitrary transport chunks.

    Chunks are split on any run of CR/LF characters.  The trailing partial
    line is kept until a later chunk completes it.
    """

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        """Append *chunk* and return the complete, non-blank lines it closed."""
        self._buffer += chunk
        parts = _LINE_BREAK.split(self._buffer)
        self._buffer = parts.pop()
        return [part for part in parts if part.strip()]

    def clear(self) -> None:
        self._buffer = ""


def _first_number(data: dict[str, Any], fields: tuple[str, ...]) -> float | None:
    for name in fields:
        value = data.get(name)
        # bool is an int subclass; a flag is not a temperature
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def parse_json_message(message: str) -> Reading | None:
    """Parse one WebSocket JSON message; None for anything unusable.

    Accepts the fields at the top level or wrapped in a ``data`` object
    (Artisan's request/response envelope).
    """
    try:
        data = json.loads(message)
    except (TypeError, ValueError):
        logger.debug("Ignoring non-JSON message: %.80r", message)
        return None
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("data"), dict):
        data = data["data"]

    bt = _first_number(data, JSON_BT_FIELDS)
    et = _first_number(data, JSON_ET_FIELDS)
    if bt is None and et is None:
        return None
    return Reading(
        bt=bt if bt is not None else 0.0,
        et=et if et is not None else 0.0,
        et_present=et is not None,
    )
