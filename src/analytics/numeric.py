"""Small numeric helpers shared by the detectors and scorers."""

from __future__ import annotations

import math


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with halves going up (2.5 -> 3, -2.5 -> -2).

    Python's built-in ``round`` uses banker's rounding, which would move
    contributions such as ``round(0.5 * 15)`` off by one.
    """
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(round_half_up(value))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator with a zero denominator treated as 1."""
    return numerator / (denominator or 1)

