"""
Tests for ADR detection: temporal join, scorer, ordering and timeline.
"""
import os
import sys
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from ingestion import ingest_doses, ingest_outcomes
from analytics.adr_detection import (
    _epoch_ns,
    baseline_rate,
    build_timeline,
    compute_lift,
    detect_adr_signals,
    join_exposure_windows,
)

BASE = datetime(2026, 2, 1, 8, 0, tzinfo=timezone.utc)


def _dose(name, ts):
    return {"medicationName": name, "takenAt": ts.isoformat()}


def _flare(ts, symptoms, severity="mild"):
    return {"timestamp": ts.isoformat(), "entry_type": "flare",
            "severity": severity, "symptoms": list(symptoms)}


def _run(dose_rows, flare_rows):
    doses, _ = ingest_doses(dose_rows)
    outcomes, _ = ingest_outcomes(flare_rows)
    return detect_adr_signals(doses, outcomes)


def _headache_scenario():
    """10 daily doses; 2 headache flares each inside two dose windows; 38 other flares."""
    doses = [_dose("X", BASE + timedelta(days=i)) for i in range(10)]
    flares = [
        _flare(BASE + timedelta(days=1, hours=1), ["Headache"], "moderate"),
        _flare(BASE + timedelta(days=6, hours=1), ["Headache"], "moderate"),
    ]
    flares += [_flare(BASE - timedelta(days=i + 1), ["Fatigue"]) for i in range(38)]
    return doses, flares


# ─── Worked scenarios ────────────────────────────────────────


class TestHeadacheScenario:

    def test_signal_values(self):
        signals = _run(*_headache_scenario())
        assert len(signals) == 1
        s = signals[0]
        assert s.medication == "X"
        assert s.symptom == "Headache"
        assert s.occurrences == 4
        assert s.total_exposures == 10
        assert s.confidence == 0.4
        assert s.lift == 8.0
        assert s.causality == "Possible"

    def test_onset_severity_and_pattern(self):
        s = _run(*_headache_scenario())[0]
        # onsets 25h, 1h, 25h, 1h
        assert s.avg_onset_hours == 13.0
        assert s.temporal_pattern == "acute"
        assert s.severity_breakdown.moderate == 4
        assert s.severity_breakdown.severe == 0
        # 0.4*30 + min(8, 5)*10 + 0*60 = 62
        assert s.risk_level == "high"

    def test_coded_fields(self):
        s = _run(*_headache_scenario())[0]
        assert s.id == "x-headache"
        assert s.first_detected == BASE
        assert s.last_occurred == BASE + timedelta(days=9)

    def test_unknown_symptom_has_no_code(self):
        doses = [_dose("X", BASE + timedelta(days=i)) for i in range(3)]
        flares = [_flare(BASE + timedelta(days=i, hours=2), ["Tingly ears"]) for i in range(3)]
        flares += [_flare(BASE - timedelta(days=i + 1), ["Other"]) for i in range(10)]
        s = _run(doses, flares)[0]
        assert s.meddra_code is None
        assert "meddraCode" not in s.to_dict()

    def test_known_symptom_is_coded(self):
        s = _run(*_headache_scenario())[0]
        assert s.meddra_code == "10019211"


class TestSingleDoseMedication:

    def test_no_signal_for_single_dose(self):
        doses = [_dose("Y", BASE)]
        flares = [_flare(BASE + timedelta(hours=h), ["Nausea"]) for h in (2, 5, 9)]
        assert _run(doses, flares) == []

    def test_join_skips_single_dose(self):
        doses, _ = ingest_doses([_dose("Y", BASE)])
        outcomes, _ = ingest_outcomes([_flare(BASE + timedelta(hours=2), ["Nausea"])])
        assert join_exposure_windows(doses, outcomes) == []


# ─── Window boundaries ───────────────────────────────────────


class TestWindowBoundaries:

    def _background(self):
        return [_flare(BASE - timedelta(days=i + 1), ["Fatigue"]) for i in range(8)]

    def test_event_at_48h_is_inside(self):
        doses = [_dose("Z", BASE), _dose("Z", BASE + timedelta(days=10))]
        flares = [
            _flare(BASE + timedelta(hours=48), ["Rash"]),
            _flare(BASE + timedelta(days=10, hours=48), ["Rash"]),
        ] + self._background()
        s = _run(doses, flares)[0]
        assert s.occurrences == 2
        assert s.avg_onset_hours == 48.0
        assert s.temporal_pattern == "subacute"

    def test_event_at_dose_time_is_outside(self):
        doses = [_dose("Z", BASE), _dose("Z", BASE + timedelta(days=10))]
        flares = [
            _flare(BASE, ["Rash"]),
            _flare(BASE + timedelta(days=10), ["Rash"]),
        ] + self._background()
        assert _run(doses, flares) == []

    def test_event_after_48h_is_outside(self):
        doses = [_dose("Z", BASE), _dose("Z", BASE + timedelta(days=10))]
        flares = [
            _flare(BASE + timedelta(hours=48, seconds=1), ["Rash"]),
            _flare(BASE + timedelta(days=10, hours=49), ["Rash"]),
        ] + self._background()
        assert _run(doses, flares) == []

    def test_first_matching_event_sets_onset_and_severity(self):
        doses = [_dose("Z", BASE), _dose("Z", BASE + timedelta(days=10))]
        flares = [
            _flare(BASE + timedelta(hours=30), ["Rash"], "mild"),
            _flare(BASE + timedelta(hours=2), ["Rash"], "severe"),
            _flare(BASE + timedelta(days=10, hours=4), ["Rash"], "moderate"),
        ] + self._background()
        s = _run(doses, flares)[0]
        assert s.occurrences == 2
        assert s.avg_onset_hours == 3.0
        assert s.severity_breakdown.severe == 1
        assert s.severity_breakdown.moderate == 1
        assert s.severity_breakdown.mild == 0

    def test_events_three_days_later_are_outside(self):
        doses = [_dose("X", BASE + timedelta(days=10 * i)) for i in range(3)]
        flares = [_flare(BASE + timedelta(days=10 * i, hours=72), ["Rash"]) for i in range(3)]
        flares += [_flare(BASE - timedelta(days=i + 1), ["Cough"]) for i in range(20)]
        assert _run(doses, flares) == []

    def test_epoch_values_are_nanoseconds(self):
        ns = _epoch_ns([BASE, BASE + timedelta(hours=1)])
        assert int(ns[1] - ns[0]) == 3_600 * 10**9

    def test_unsorted_inputs_give_same_hits(self):
        doses, _ = ingest_doses([_dose("Z", BASE), _dose("Z", BASE + timedelta(days=10))])
        outcomes, _ = ingest_outcomes([
            _flare(BASE + timedelta(hours=2), ["Rash"], "severe"),
            _flare(BASE + timedelta(hours=30), ["Rash"], "mild"),
            _flare(BASE + timedelta(days=10, hours=4), ["Rash"], "moderate"),
        ])
        forward = join_exposure_windows(doses, outcomes)
        backward = join_exposure_windows(list(reversed(doses)), list(reversed(outcomes)))
        assert backward == forward
        assert backward[0].onset_hours == [2.0, 4.0]
        assert backward[0].severities == ["severe", "moderate"]
        assert backward[0].first_dose == BASE


# ─── Scorer ──────────────────────────────────────────────────


class TestScorer:

    def test_lift_without_baseline(self):
        assert compute_lift(0.4, 0.0) == 5.0
        assert compute_lift(0.0, 0.0) == 0.0

    def test_lift_ratio(self):
        assert compute_lift(0.4, 0.05) == pytest.approx(8.0)

    def test_baseline_with_no_flares_is_zero(self):
        assert baseline_rate([], "Headache") == 0.0

    def test_low_lift_rejected(self):
        # symptom on every flare -> baseline 1.0, exposed 1.0, lift 1.0
        doses = [_dose("Z", BASE + timedelta(days=i)) for i in range(3)]
        flares = [_flare(BASE + timedelta(days=i, hours=3), ["Rash"]) for i in range(3)]
        assert _run(doses, flares) == []

    def test_low_confidence_rejected(self):
        # 2 hits out of 20 doses -> confidence 0.1
        doses = [_dose("Z", BASE + timedelta(days=3 * i)) for i in range(20)]
        flares = [
            _flare(BASE + timedelta(hours=3), ["Rash"]),
            _flare(BASE + timedelta(days=3, hours=3), ["Rash"]),
        ] + [_flare(BASE - timedelta(days=i + 1), ["Other"]) for i in range(30)]
        assert _run(doses, flares) == []

    def test_non_flare_outcomes_ignored(self):
        doses = [_dose("Z", BASE + timedelta(days=i)) for i in range(3)]
        notes = [{"timestamp": (BASE + timedelta(days=i, hours=2)).isoformat(),
                  "entry_type": "note", "symptoms": ["Rash"]} for i in range(3)]
        assert _run(doses, notes) == []

    def test_duplicate_doses_count_as_separate_exposures(self):
        rows = [_dose("Z", BASE), _dose("Z", BASE + timedelta(days=5))]
        doses = rows + [dict(r) for r in rows]
        flares = [
            _flare(BASE + timedelta(hours=3), ["Rash"]),
            _flare(BASE + timedelta(days=5, hours=3), ["Rash"]),
        ] + [_flare(BASE - timedelta(days=i + 1), ["Other"]) for i in range(8)]
        s = _run(doses, flares)[0]
        assert s.total_exposures == 4
        assert s.occurrences == 4


# ─── Ordering and invariants ─────────────────────────────────


class TestOrderingAndBounds:

    def _random_history(self, seed):
        rng = np.random.default_rng(seed)
        meds = ["Alpha", "Beta", "Gamma"]
        symptoms = ["Headache", "Nausea", "Rash", "Fatigue"]
        doses = [
            _dose(meds[int(rng.integers(3))], BASE + timedelta(hours=int(rng.integers(0, 24 * 60))))
            for _ in range(60)
        ]
        flares = []
        for _ in range(80):
            picked = rng.choice(symptoms, size=int(rng.integers(1, 3)), replace=False)
            flares.append(_flare(
                BASE + timedelta(hours=int(rng.integers(0, 24 * 60))),
                [str(s) for s in picked],
                ["mild", "moderate", "severe"][int(rng.integers(3))],
            ))
        return doses, flares

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_signal_bounds(self, seed):
        for s in _run(*self._random_history(seed)):
            assert 0.15 <= s.confidence <= 1
            assert s.lift >= 1.2
            assert s.occurrences >= 2
            assert s.occurrences <= s.total_exposures

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_sorted_by_risk_then_confidence(self, seed):
        order = {"critical": 0, "high": 1, "moderate": 2, "low": 3}
        signals = _run(*self._random_history(seed))
        keys = [(order[s.risk_level], -s.confidence) for s in signals]
        assert keys == sorted(keys)

    def test_same_input_same_output(self):
        doses, flares = self._random_history(3)
        first = [s.to_dict() for s in _run(doses, flares)]
        second = [s.to_dict() for s in _run(doses, flares)]
        assert first == second


# ─── Timeline ────────────────────────────────────────────────


class TestTimeline:

    def test_last_90_days_ascending(self, now):
        doses, _ = ingest_doses([
            _dose("X", now - timedelta(days=100)),
            _dose("X", now - timedelta(days=10)),
        ])
        outcomes, _ = ingest_outcomes([
            _flare(now - timedelta(days=5), ["Headache"], "severe"),
            _flare(now - timedelta(days=95), ["Headache"]),
            {"timestamp": (now - timedelta(days=2)).isoformat(), "entry_type": "note"},
        ])
        events = build_timeline(doses, outcomes, now)
        assert [e.type for e in events] == ["medication", "flare"]
        assert events[0].label == "X"
        assert events[1].severity == "severe"
        assert events[1].symptoms == ("Headache",)
