"""ImportNormalizer — externally authored roast logs into samples + events.

Two families are accepted:

    .csv          Tabular, one header row somewhere in the first 20 lines.
                  Delimiter (tab / semicolon / comma) sniffed from the
                  header; columns resolved by name.  ``<TAG>:<mm:ss>``
                  pairs above the header fill in milestones the Event
                  column lacks.
    .json/.alog   Artisan-style documents with parallel temperature arrays,
                  or this service's own legacy ``{data, events}`` shape.
                  ``.alog`` files written as Python literals are accepted.

Whatever the source, the RoR of every point is recomputed over the whole
imported series with the live-path regression, so imported and recorded
roasts are directly comparable.

Parsing is all-or-nothing: either a complete ImportedProfile is returned
or ImportFormatError is raised; callers commit nothing on failure.
Individual unusable rows are skipped.
"""

from __future__ import annotations

import ast
import csv
import json
import logging
import re
from pathlib import PurePath
from typing import Any

from pydantic import BaseModel, ValidationError

from roast_scope.core.ror import LIVE, RoRConfig, recompute_series
from roast_scope.domain.enums import EventLabel
from roast_scope.domain.sample import DataPoint, RoastEvent
from roast_scope.profile.labels import label_for, label_for_tag

logger = logging.getLogger(__name__)

HEADER_SCAN_LINES = 20
_BT_HINTS = ("bt", "bean", "temp")
_EVENT_HINTS = ("event", "事件")
_PREAMBLE_CELL = re.compile(r"[\t;,]")

# Artisan "computed" keys.  *_time values are seconds after charge.
COMPUTED_TIME_KEYS: dict[str, str] = {
    "TP_time": EventLabel.TURNING_POINT.value,
    "DRY_time": EventLabel.DRY_END.value,
    "FCs_time": EventLabel.FC_START.value,
    "FCe_time": EventLabel.FC_END.value,
    "SCs_time": EventLabel.SC_START.value,
    "SCe_time": EventLabel.SC_END.value,
    "DROP_time": EventLabel.DROP.value,
}
COMPUTED_CHARGE_TEMP_KEY = "CHARGE_BT"


class ImportFormatError(Exception):
    """Raised when a file cannot be turned into a roast log."""


class ImportedProfile(BaseModel):
    """A fully parsed roast log, ready to be committed to the session."""

    samples: list[DataPoint]
    events: list[RoastEvent]
    source: str = ""

    model_config = {"frozen": True}


# ── Value helpers ────────────────────────────────────────────────────────────

def parse_time_value(raw: str | float | int | None) -> float | None:
    """Seconds from a bare number or ``mm:ss`` notation; None if unusable."""
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw)
    text = str(raw).strip()
    if not text:
        return None
    try:
        if ":" in text:
            seconds = 0.0
            for part in text.split(":"):
                seconds = seconds * 60 + float(part)
            return seconds
        return float(text)
    except ValueError:
        return None


def _to_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(str(raw).strip())
    except ValueError:
        return None


def _nearest_bt(samples: list[DataPoint], time: float) -> float:
    if not samples:
        return 0.0
    return min(samples, key=lambda p: abs(p.time - time)).bt


def sniff_delimiter(header: str) -> str:
    """Most frequent of tab / semicolon / comma; tab wins ties, comma is default."""
    tabs = header.count("\t")
    semicolons = header.count(";")
    commas = header.count(",")
    if tabs and tabs >= commas and tabs >= semicolons:
        return "\t"
    if semicolons > commas:
        return ";"
    return ","


# ── Normalizer ───────────────────────────────────────────────────────────────

class ImportNormalizer:
    """Parses roast log files and recomputes RoR for the whole series.

    Args:
        ror_config: Regression thresholds for the recomputation.
        sampling_interval: Seconds between samples when a JSON document
            carries no time array at all.
    """

    def __init__(
        self,
        ror_config: RoRConfig = LIVE,
        sampling_interval: float = 3.0,
    ) -> None:
        self._ror_config = ror_config
        self._sampling_interval = sampling_interval

    def normalize(self, filename: str, content: bytes | str) -> ImportedProfile:
        """Dispatch on the file extension and return the parsed profile.

        Raises:
            ImportFormatError: Unsupported extension, undecodable content,
                missing header/columns, or no usable samples.
        """
        suffix = PurePath(filename or "").suffix.lower()
        if isinstance(content, bytes):
            try:
                text = content.decode("utf-8-sig")
            except UnicodeDecodeError as exc:
                raise ImportFormatError(f"File is not valid UTF-8 text: {exc}") from exc
        else:
            text = content

        if suffix == ".csv":
            samples, events = self.parse_csv(text)
        elif suffix in (".json", ".alog"):
            samples, events = self.parse_document(text, allow_literal=suffix == ".alog")
        else:
            raise ImportFormatError(f"Unsupported file type: '{suffix or filename}'")

        if not samples:
            raise ImportFormatError("No usable data rows found")

        samples = recompute_series(samples, self._ror_config)
        events = sorted(events, key=lambda e: e.time)
        logger.info(
            "Imported %s: %d samples, %d events",
            filename,
            len(samples),
            len(events),
        )
        return ImportedProfile(samples=samples, events=events, source=filename)

    # ── CSV ──────────────────────────────────────────────────────────────

    def parse_csv(self, text: str) -> tuple[list[DataPoint], list[RoastEvent]]:
        lines = text.splitlines()
        header_index = self._find_header(lines)
        header_line = lines[header_index]
        delimiter = sniff_delimiter(header_line)

        header = [cell.strip().lower() for cell in next(csv.reader([header_line], delimiter=delimiter))]
        time_col = next((i for i, h in enumerate(header) if h.startswith("time")), None)
        bt_col = next(
            (i for i, h in enumerate(header) if h == "bt" or "bean" in h or h == "temp2"),
            None,
        )
        et_col = next(
            (i for i, h in enumerate(header) if h == "et" or "env" in h or h == "temp1"),
            None,
        )
        event_col = next(
            (i for i, h in enumerate(header) if any(k in h for k in _EVENT_HINTS)),
            None,
        )
        if time_col is None:
            raise ImportFormatError("CSV header has no time column")
        if bt_col is None:
            raise ImportFormatError("CSV header has no bean temperature column")

        samples: list[DataPoint] = []
        events: list[RoastEvent] = []
        seen_labels: set[str] = set()
        skipped = 0

        for row in csv.reader(lines[header_index + 1:], delimiter=delimiter):
            if not row or not any(cell.strip() for cell in row):
                continue
            bt = _to_float(row[bt_col]) if bt_col < len(row) else None
            if bt is None:
                skipped += 1
                continue
            time = parse_time_value(row[time_col]) if time_col < len(row) else None
            et = _to_float(row[et_col]) if et_col is not None and et_col < len(row) else None
            try:
                point = DataPoint(time=time or 0.0, bt=bt, et=et or 0.0)
            except ValidationError:
                skipped += 1
                continue
            samples.append(point)

            if event_col is not None and event_col < len(row) and row[event_col].strip():
                label = label_for(row[event_col])
                # A tag repeated on adjacent rows marks one milestone
                if label in seen_labels:
                    continue
                seen_labels.add(label)
                events.append(RoastEvent(time=point.time, label=label, temp=point.bt))

        # Milestones that no row carried (too far from any sample, or sharing
        # a row with another tag) survive in the preamble as <TAG>:<mm:ss>
        for label, time in self._preamble_events(lines[:header_index]):
            if label in seen_labels or not samples:
                continue
            seen_labels.add(label)
            events.append(RoastEvent(time=time, label=label, temp=_nearest_bt(samples, time)))

        if skipped:
            logger.debug("Skipped %d unusable CSV row(s)", skipped)
        return samples, events

    @staticmethod
    def _preamble_events(preamble: list[str]) -> list[tuple[str, float]]:
        found: list[tuple[str, float]] = []
        for line in preamble:
            for cell in _PREAMBLE_CELL.split(line):
                tag, sep, value = cell.partition(":")
                label = label_for_tag(tag) if sep else None
                time = parse_time_value(value) if label is not None else None
                if label is not None and time is not None:
                    found.append((label, time))
        return found

    @staticmethod
    def _find_header(lines: list[str]) -> int:
        for index, line in enumerate(lines[:HEADER_SCAN_LINES]):
            lowered = line.lower()
            if "time" in lowered and any(hint in lowered for hint in _BT_HINTS):
                return index
        raise ImportFormatError(
            f"No header row with time and bean temperature columns "
            f"in the first {HEADER_SCAN_LINES} lines"
        )

    # ── JSON / ALOG ──────────────────────────────────────────────────────

    def parse_document(
        self,
        text: str,
        allow_literal: bool = False,
    ) -> tuple[list[DataPoint], list[RoastEvent]]:
        doc = self._load_document(text, allow_literal)

        if isinstance(doc.get("data"), list):
            return self._parse_legacy(doc)
        return self._parse_arrays(doc)

    @staticmethod
    def _load_document(text: str, allow_literal: bool) -> dict[str, Any]:
        try:
            doc = json.loads(text)
        except ValueError as json_exc:
            if not allow_literal:
                raise ImportFormatError(f"Invalid JSON: {json_exc}") from json_exc
            # Artisan writes .alog files with repr(), not json.dumps()
            try:
                doc = ast.literal_eval(text)
            except (SyntaxError, ValueError) as exc:
                raise ImportFormatError(f"Invalid ALOG file format: {exc}") from exc
        if not isinstance(doc, dict):
            raise ImportFormatError("Roast document must be an object")
        return doc

    @staticmethod
    def _parse_legacy(doc: dict[str, Any]) -> tuple[list[DataPoint], list[RoastEvent]]:
        """The ``{data: [...], events: [...]}`` shape this service once exported."""
        samples: list[DataPoint] = []
        for item in doc["data"]:
            if not isinstance(item, dict):
                continue
            try:
                samples.append(
                    DataPoint(
                        time=parse_time_value(item.get("time")) or 0.0,
                        bt=item["bt"],
                        et=_to_float(item.get("et")) or 0.0,
                    )
                )
            except (KeyError, ValidationError):
                continue

        events: list[RoastEvent] = []
        for item in doc.get("events") or []:
            if not isinstance(item, dict) or not item.get("label"):
                continue
            try:
                events.append(
                    RoastEvent(
                        time=parse_time_value(item.get("time")) or 0.0,
                        label=label_for(str(item["label"])),
                        temp=_to_float(item.get("temp")) or 0.0,
                    )
                )
            except ValidationError:
                continue
        return samples, events

    def _parse_arrays(self, doc: dict[str, Any]) -> tuple[list[DataPoint], list[RoastEvent]]:
        """Artisan export: parallel arrays plus a ``computed`` milestone map."""
        temps = doc.get("temps") if isinstance(doc.get("temps"), dict) else None
        if temps is not None:
            bean = temps.get("Bean") or temps.get("bean")
            env = temps.get("Environment") or temps.get("environment")
            x_axis = temps.get("x")
        else:
            # Channel 2 is bean, channel 1 is environment
            bean = doc.get("temp2") or doc.get("Bean")
            env = doc.get("temp1") or doc.get("Environment")
            x_axis = None

        if not isinstance(bean, list) or not bean:
            raise ImportFormatError("No bean temperature array found")
        env = env if isinstance(env, list) else []

        times = doc.get("timex") or doc.get("time") or x_axis
        if not isinstance(times, list):
            times = []

        samples: list[DataPoint] = []
        for index, raw_bt in enumerate(bean):
            bt = _to_float(raw_bt)
            if bt is None:
                continue
            time = parse_time_value(times[index]) if index < len(times) else None
            if time is None:
                time = index * self._sampling_interval
            et = _to_float(env[index]) if index < len(env) else None
            try:
                samples.append(DataPoint(time=time, bt=bt, et=et or 0.0))
            except ValidationError:
                continue

        events = self._computed_events(doc, times, samples)
        return samples, events

    def _computed_events(
        self,
        doc: dict[str, Any],
        times: list[Any],
        samples: list[DataPoint],
    ) -> list[RoastEvent]:
        computed = doc.get("computed")
        if not isinstance(computed, dict) or not samples:
            return []

        charge_time = self._charge_time(doc, times, samples)
        events: list[RoastEvent] = []

        charge_bt = _to_float(computed.get(COMPUTED_CHARGE_TEMP_KEY))
        if charge_bt is not None:
            events.append(
                RoastEvent(time=charge_time, label=EventLabel.CHARGE.value, temp=charge_bt)
            )

        for key, label in COMPUTED_TIME_KEYS.items():
            offset = _to_float(computed.get(key))
            if offset is None or offset <= 0:
                continue
            time = charge_time + offset
            events.append(RoastEvent(time=time, label=label, temp=_nearest_bt(samples, time)))
        return events

    @staticmethod
    def _charge_time(doc: dict[str, Any], times: list[Any], samples: list[DataPoint]) -> float:
        """Time of charge: ``timeindex[0]`` when present, else series start."""
        timeindex = doc.get("timeindex")
        if isinstance(timeindex, list) and timeindex:
            index = timeindex[0]
            if isinstance(index, int) and 0 < index < len(times):
                value = parse_time_value(times[index])
                if value is not None:
                    return value
        return samples[0].time
