"""Milestone tag dictionary shared by CSV export and import.

Canonical labels map one-to-one onto the short tags used by common
roast-logging tools.  "start" has no tag and is never exported.
"""

from __future__ import annotations

from roast_scope.domain.enums import EventLabel

LABEL_TO_TAG: dict[str, str] = {
    EventLabel.CHARGE.value: "CHARGE",
    EventLabel.DRY_END.value: "DRYe",
    EventLabel.FC_START.value: "FCs",
    EventLabel.FC_END.value: "FCe",
    EventLabel.SC_START.value: "SCs",
    EventLabel.SC_END.value: "SCe",
    EventLabel.DROP.value: "DROP",
    EventLabel.TURNING_POINT.value: "TP",
}

TAG_TO_LABEL: dict[str, str] = {tag: label for label, tag in LABEL_TO_TAG.items()}

# Tags are matched case-insensitively on import ("Charge", "dryE", ...)
_TAG_LOOKUP: dict[str, str] = {tag.lower(): label for tag, label in TAG_TO_LABEL.items()}
_LABEL_LOOKUP: dict[str, str] = {label: label for label in LABEL_TO_TAG}
_LABEL_LOOKUP[EventLabel.START.value] = EventLabel.START.value


def tag_for(label: str) -> str | None:
    """Export tag for a canonical label, or None if it has none."""
    return LABEL_TO_TAG.get(label)


def label_for_tag(raw: str) -> str | None:
    """Canonical label when *raw* is an export tag, else None."""
    return _TAG_LOOKUP.get(raw.strip().lower())


def label_for(raw: str) -> str:
    """Canonical label for an external tag.

    Known tags and canonical labels map to the canonical label; anything
    else is kept verbatim (labels are extensible).
    """
    text = raw.strip()
    key = text.lower()
    if key in _TAG_LOOKUP:
        return _TAG_LOOKUP[key]
    if key in _LABEL_LOOKUP:
        return _LABEL_LOOKUP[key]
    return text
