"""
Tests for causality / risk-tier / onset classification, signal sorting,
the half-up rounding helpers and the MedDRA lookup.
"""
import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from analytics.classifiers import (
    assess_causality,
    classify_risk_level,
    classify_temporal_pattern,
    risk_composite,
    sort_signals,
)
from analytics.numeric import clamp, round_half_up, round_int, safe_ratio
from models import ADRSignal, SeverityBreakdown
from terminology import lookup_term

STRICTNESS = ["Unclassified", "Unlikely", "Possible", "Probable", "Certain"]


def _signal(medication, risk_level, confidence):
    ts = datetime(2026, 2, 1, tzinfo=timezone.utc)
    return ADRSignal(
        id=f"{medication}-x", medication=medication, symptom="x",
        confidence=confidence, lift=2.0, occurrences=2, total_exposures=4,
        avg_onset_hours=5.0, severity_breakdown=SeverityBreakdown(),
        temporal_pattern="acute", risk_level=risk_level, causality="Possible",
        first_detected=ts, last_occurred=ts,
    )


# ─── Causality ───────────────────────────────────────────────


class TestCausality:

    def test_certain(self):
        assert assess_causality(0.8, 3.0, 5) == "Certain"

    def test_certain_needs_five_occurrences(self):
        assert assess_causality(0.9, 4.0, 4) == "Probable"

    def test_probable(self):
        assert assess_causality(0.6, 2.0, 3) == "Probable"

    def test_possible(self):
        assert assess_causality(0.4, 1.5, 2) == "Possible"

    def test_unlikely(self):
        assert assess_causality(0.39, 10.0, 10) == "Unlikely"
        assert assess_causality(0.2, 1.2, 2) == "Unlikely"

    def test_unclassified(self):
        assert assess_causality(0.19, 10.0, 10) == "Unclassified"

    def test_monotonic_in_confidence_and_lift(self):
        """Lowering confidence or lift never yields a stricter category."""
        grid_conf = [0.1, 0.2, 0.4, 0.6, 0.8, 1.0]
        grid_lift = [1.2, 1.5, 2.0, 3.0, 5.0]
        for occ in (2, 3, 5):
            for i, conf in enumerate(grid_conf):
                for j, lift in enumerate(grid_lift):
                    rank = STRICTNESS.index(assess_causality(conf, lift, occ))
                    if i > 0:
                        lower = assess_causality(grid_conf[i - 1], lift, occ)
                        assert STRICTNESS.index(lower) <= rank
                    if j > 0:
                        lower = assess_causality(conf, grid_lift[j - 1], occ)
                        assert STRICTNESS.index(lower) <= rank


# ─── Risk tier ───────────────────────────────────────────────


class TestRiskLevel:

    def test_composite_caps_lift(self):
        assert risk_composite(0.5, 50.0, 0.0) == risk_composite(0.5, 5.0, 0.0)

    def test_critical_boundary(self):
        # 1.0*30 + 4*10 = 70
        assert classify_risk_level(1.0, 4.0, 0.0) == "critical"

    def test_high_boundary(self):
        # 0.5*30 + 3.5*10 = 50
        assert classify_risk_level(0.5, 3.5, 0.0) == "high"

    def test_moderate(self):
        assert classify_risk_level(0.4, 2.0, 0.0) == "moderate"

    def test_low(self):
        assert classify_risk_level(0.15, 1.2, 0.0) == "low"

    def test_severe_ratio_raises_tier(self):
        assert classify_risk_level(0.4, 2.0, 1.0) == "critical"


# ─── Temporal pattern ────────────────────────────────────────


class TestTemporalPattern:

    @pytest.mark.parametrize("hours,expected", [
        (0.5, "acute"),
        (24, "acute"),
        (24.1, "subacute"),
        (168, "subacute"),
        (168.1, "delayed"),
    ])
    def test_boundaries(self, hours, expected):
        assert classify_temporal_pattern(hours) == expected


# ─── Sorting ─────────────────────────────────────────────────


class TestSortSignals:

    def test_risk_then_confidence(self):
        signals = [
            _signal("a", "low", 0.9),
            _signal("b", "high", 0.3),
            _signal("c", "critical", 0.2),
            _signal("d", "high", 0.7),
        ]
        assert [s.medication for s in sort_signals(signals)] == ["c", "d", "b", "a"]

    def test_ties_keep_input_order(self):
        signals = [_signal("first", "moderate", 0.5), _signal("second", "moderate", 0.5)]
        assert [s.medication for s in sort_signals(signals)] == ["first", "second"]


# ─── Numeric helpers ─────────────────────────────────────────


class TestNumeric:

    def test_half_up_not_bankers(self):
        assert round_int(22.5) == 23
        assert round_int(2.5) == 3
        assert round_half_up(0.125, 2) == 0.13

    def test_clamp(self):
        assert clamp(1.5, -1, 1) == 1
        assert clamp(-3, 0, 100) == 0

    def test_safe_ratio_zero_denominator(self):
        assert safe_ratio(3, 0) == 3


# ─── Terminology ─────────────────────────────────────────────


class TestTerminology:

    def test_case_insensitive_lookup(self):
        assert lookup_term("  Joint Pain ").code == "10023222"

    def test_miss_is_none(self):
        assert lookup_term("glitter sneezes") is None
        assert lookup_term("") is None
