"""
Adverse drug reaction detection.

Two stages, kept apart so each can be tested on its own:

  Temporal join — for every medication with ≥2 doses and every symptom
      seen on any flare, mark each dose whose 48 h post-dose window
      (dose, dose + 48 h] contains a flare carrying the symptom.  The
      earliest such flare gives the onset time and the severity.

  Scorer — compares the exposed rate (hits / doses) with the symptom's
      baseline rate over all flares:

          lift = exposed_rate / baseline_rate

      and keeps the pair only when confidence (= exposed rate) ≥ 0.15
      and lift ≥ 1.2.

Window matching is vectorised: a (doses × flares) boolean matrix per
medication, masked per symptom.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta
from typing import Dict, List, NamedTuple, Optional, Sequence

import numpy as np
import pandas as pd

from constants import (
    ADR_WINDOW_HOURS,
    LIFT_WHEN_NO_BASELINE,
    MIN_DOSES_PER_MEDICATION,
    MIN_SIGNAL_CONFIDENCE,
    MIN_SIGNAL_LIFT,
    MIN_WINDOW_HITS,
    TIMELINE_DAYS,
)
from models import ADRSignal, Dose, OutcomeEvent, SeverityBreakdown, TimelineEvent
from terminology import lookup_term
from analytics.classifiers import (
    assess_causality,
    classify_risk_level,
    classify_temporal_pattern,
    sort_signals,
)
from analytics.numeric import clamp, round_half_up, safe_ratio

log = logging.getLogger("adr_detection")

_NS_PER_HOUR = 3_600 * 10**9


class WindowHits(NamedTuple):
    """Raw temporal-join result for one (medication, symptom) pair."""

    medication: str
    symptom: str
    total_exposures: int
    onset_hours: List[float]
    severities: List[Optional[str]]
    first_dose: datetime
    last_dose: datetime

    @property
    def occurrences(self) -> int:
        return len(self.onset_hours)


def _epoch_ns(instants: Sequence[datetime]) -> np.ndarray:
    if not instants:
        return np.array([], dtype=np.int64)
    return pd.to_datetime(list(instants), utc=True).as_unit("ns").asi8


def flares_only(outcomes: Sequence[OutcomeEvent]) -> List[OutcomeEvent]:
    return [e for e in outcomes if e.is_flare]


# ─── Temporal join ─────────────────────────────────────────


def join_exposure_windows(
    doses: Sequence[Dose],
    flares: Sequence[OutcomeEvent],
    window_hours: int = ADR_WINDOW_HOURS,
) -> List[WindowHits]:
    """Find, per medication and symptom, which doses were followed by it.

    Both collections are re-sorted by time here, so the earliest event in a
    window always sets the onset.  Pairs with fewer than two hits are not
    returned.
    """
    if not doses or not flares:
        return []

    doses = sorted(doses, key=lambda d: d.taken_at)
    flares = sorted(flares, key=lambda f: f.timestamp)

    flare_ns = _epoch_ns([f.timestamp for f in flares])
    window_ns = window_hours * _NS_PER_HOUR

    symptoms = list(dict.fromkeys(s for f in flares for s in f.symptoms))
    membership = {
        s: np.fromiter((s in f.symptoms for f in flares), dtype=bool, count=len(flares))
        for s in symptoms
    }

    by_med: Dict[str, List[Dose]] = {}
    for d in doses:
        by_med.setdefault(d.medication_name, []).append(d)

    results: List[WindowHits] = []
    for medication, med_doses in by_med.items():
        if len(med_doses) < MIN_DOSES_PER_MEDICATION:
            continue
        dose_ns = _epoch_ns([d.taken_at for d in med_doses])
        in_window = (flare_ns[None, :] > dose_ns[:, None]) & (
            flare_ns[None, :] <= dose_ns[:, None] + window_ns
        )
        for symptom in symptoms:
            hits = in_window & membership[symptom][None, :]
            hit_rows = hits.any(axis=1)
            if int(hit_rows.sum()) < MIN_WINDOW_HITS:
                continue
            first_idx = hits.argmax(axis=1)[hit_rows]
            onset = (flare_ns[first_idx] - dose_ns[hit_rows]) / _NS_PER_HOUR
            results.append(WindowHits(
                medication=medication,
                symptom=symptom,
                total_exposures=len(med_doses),
                onset_hours=[float(h) for h in onset],
                severities=[flares[i].severity for i in first_idx],
                first_dose=med_doses[0].taken_at,
                last_dose=med_doses[-1].taken_at,
            ))
    return results


# ─── Scorer ────────────────────────────────────────────────


def baseline_rate(flares: Sequence[OutcomeEvent], symptom: str) -> float:
    with_symptom = sum(1 for f in flares if symptom in f.symptoms)
    return safe_ratio(with_symptom, len(flares))


def compute_lift(exposed_rate: float, base_rate: float) -> float:
    if base_rate > 0:
        return exposed_rate / base_rate
    return LIFT_WHEN_NO_BASELINE if exposed_rate > 0 else 0.0


def _signal_id(medication: str, symptom: str) -> str:
    return re.sub(r"\s+", "_", f"{medication}-{symptom}").lower()


def score_window_hits(hits: WindowHits, base_rate: float) -> Optional[ADRSignal]:
    """Turn one joined pair into a signal, or ``None`` if it is too weak."""
    if hits.occurrences < MIN_WINDOW_HITS:
        return None
    exposed_rate = hits.occurrences / max(hits.total_exposures, 1)
    lift = compute_lift(exposed_rate, base_rate)
    confidence = clamp(exposed_rate, 0.0, 1.0)
    if confidence < MIN_SIGNAL_CONFIDENCE or lift < MIN_SIGNAL_LIFT:
        return None

    avg_onset = sum(hits.onset_hours) / len(hits.onset_hours)
    breakdown = SeverityBreakdown(
        mild=hits.severities.count("mild"),
        moderate=hits.severities.count("moderate"),
        severe=hits.severities.count("severe"),
    )
    severe_ratio = breakdown.severe / breakdown.total if breakdown.total else 0.0
    term = lookup_term(hits.symptom)

    return ADRSignal(
        id=_signal_id(hits.medication, hits.symptom),
        medication=hits.medication,
        symptom=hits.symptom,
        confidence=round_half_up(confidence, 2),
        lift=round_half_up(lift, 2),
        occurrences=hits.occurrences,
        total_exposures=hits.total_exposures,
        avg_onset_hours=round_half_up(avg_onset, 1),
        severity_breakdown=breakdown,
        temporal_pattern=classify_temporal_pattern(avg_onset),
        risk_level=classify_risk_level(confidence, lift, severe_ratio),
        causality=assess_causality(confidence, lift, hits.occurrences),
        meddra_code=term.code if term else None,
        first_detected=hits.first_dose,
        last_occurred=hits.last_dose,
    )


def detect_adr_signals(
    doses: Sequence[Dose], outcomes: Sequence[OutcomeEvent]
) -> List[ADRSignal]:
    """Run join + scorer over one snapshot; return signals in report order."""
    flares = flares_only(outcomes)
    joined = join_exposure_windows(doses, flares)
    base_rates: Dict[str, float] = {}
    signals: List[ADRSignal] = []
    for hits in joined:
        if hits.symptom not in base_rates:
            base_rates[hits.symptom] = baseline_rate(flares, hits.symptom)
        signal = score_window_hits(hits, base_rates[hits.symptom])
        if signal is not None:
            signals.append(signal)
    log.info(
        "   ADR detection: %d candidate pairs -> %d signals", len(joined), len(signals)
    )
    return sort_signals(signals)


# ─── Timeline ──────────────────────────────────────────────


def build_timeline(
    doses: Sequence[Dose],
    outcomes: Sequence[OutcomeEvent],
    now: datetime,
    days: int = TIMELINE_DAYS,
) -> List[TimelineEvent]:
    """Dose and flare events of the last ``days`` days, oldest first."""
    cutoff = now - timedelta(days=days)
    events: List[TimelineEvent] = [
        TimelineEvent(type="medication", timestamp=d.taken_at, label=d.medication_name)
        for d in doses
        if d.taken_at > cutoff
    ]
    events.extend(
        TimelineEvent(
            type="flare",
            timestamp=f.timestamp,
            severity=f.severity,
            symptoms=f.symptoms,
            triggers=f.triggers,
        )
        for f in flares_only(outcomes)
        if f.timestamp > cutoff
    )
    events.sort(key=lambda e: e.timestamp)
    return events
