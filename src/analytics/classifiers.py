"""Causality, risk-tier and onset-pattern classification for ADR signals."""

from __future__ import annotations

from typing import List

from constants import (
    ACUTE_MAX_HOURS,
    CAUSALITY_RULES,
    RISK_LIFT_CAP,
    RISK_ORDER,
    RISK_TIERS,
    RISK_WEIGHT_CONFIDENCE,
    RISK_WEIGHT_LIFT,
    RISK_WEIGHT_SEVERE_RATIO,
    SUBACUTE_MAX_HOURS,
    UNLIKELY_MIN_CONFIDENCE,
)
from models import ADRSignal


def assess_causality(confidence: float, lift: float, occurrences: int) -> str:
    """WHO-UMC category; the first rule that matches wins."""
    for category, min_conf, min_lift, min_occ in CAUSALITY_RULES:
        if confidence >= min_conf and lift >= min_lift and occurrences >= min_occ:
            return category
    if confidence >= UNLIKELY_MIN_CONFIDENCE:
        return "Unlikely"
    return "Unclassified"


def risk_composite(confidence: float, lift: float, severe_ratio: float) -> float:
    return (
        confidence * RISK_WEIGHT_CONFIDENCE
        + min(lift, RISK_LIFT_CAP) * RISK_WEIGHT_LIFT
        + severe_ratio * RISK_WEIGHT_SEVERE_RATIO
    )


def classify_risk_level(confidence: float, lift: float, severe_ratio: float) -> str:
    score = risk_composite(confidence, lift, severe_ratio)
    for level, floor in RISK_TIERS:
        if score >= floor:
            return level
    return "low"


def classify_temporal_pattern(avg_onset_hours: float) -> str:
    if avg_onset_hours <= ACUTE_MAX_HOURS:
        return "acute"
    if avg_onset_hours <= SUBACUTE_MAX_HOURS:
        return "subacute"
    return "delayed"


def sort_signals(signals: List[ADRSignal]) -> List[ADRSignal]:
    """Risk tier (critical first), then confidence descending.

    The sort is stable, so equal keys keep discovery order.
    """
    return sorted(signals, key=lambda s: (RISK_ORDER[s.risk_level], -s.confidence))
