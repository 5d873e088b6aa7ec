"""Controlled enumerations for the roast-scope domain.

Milestone labels are extensible strings in practice (imports may carry
vendor vocabulary), but the canonical set below is closed.
"""

from __future__ import annotations

from enum import Enum


class RoastStatus(str, Enum):
    """Lifecycle states of the roast session."""

    IDLE = "idle"
    PREHEATING = "preheating"
    ROASTING = "roasting"
    FINISHED = "finished"


class EventLabel(str, Enum):
    """Canonical operator-marked milestones."""

    START = "start"
    CHARGE = "charge"
    TURNING_POINT = "turning-point"
    DRY_END = "dry-end"
    FC_START = "fc-start"
    FC_END = "fc-end"
    SC_START = "sc-start"
    SC_END = "sc-end"
    DROP = "drop"


class EtFallback(str, Enum):
    """What a single-number device line does to the ET channel."""

    ZERO = "zero"
    CARRY = "carry"
