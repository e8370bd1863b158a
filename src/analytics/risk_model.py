"""
Predictive risk aggregator.

Starts from a baseline of 20 and adds (or subtracts) bounded integer
contributions from independent factors.  A factor that does not fire is
left out of ``factors`` entirely; there are no zero-valued placeholders.

  Trend          flares in the last 7 d vs the 7 d before
  Escalation     mean severity of 10 most recent flares vs the 10 before
  Triggers       confirmed risk-increasing discoveries logged in last 3 d
  ADR            high/critical ADR signals
  Environment    environment discoveries + a logged environmental reading
  Polypharmacy   ≥3 distinct medications
  Adherence      doses on ≥6 of the last 7 UTC days (protective)

The final score is clamped to [0, 100].
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional, Sequence

from constants import (
    ADHERENCE_BONUS,
    ADHERENCE_LOW_DAYS,
    ADHERENCE_MIN_DAYS,
    ADHERENCE_WINDOW_DAYS,
    ADR_ACTIVE_TIERS,
    ADR_FACTOR_CAP,
    ADR_FACTOR_WEIGHT,
    BASELINE_RISK_SCORE,
    ENV_DISCOVERY_CATEGORY,
    ENV_DISCOVERY_MIN_CONFIDENCE,
    ENV_FACTOR_CAP,
    ENV_FACTOR_WEIGHT,
    ESCALATION_MIN_DIFF,
    ESCALATION_MIN_EACH,
    ESCALATION_SAMPLE,
    ESCALATION_WEIGHT,
    POLYPHARMACY_CAP,
    POLYPHARMACY_MIN_MEDS,
    POLYPHARMACY_WEIGHT,
    PREDICTED_TIMEFRAME,
    RISK_SCORE_MAX,
    RISK_SCORE_MIN,
    TREND_FALLING_CAP,
    TREND_FALLING_RATIO,
    TREND_FALLING_WEIGHT,
    TREND_RATIO_NO_HISTORY,
    TREND_RISING_CAP,
    TREND_RISING_RATIO,
    TREND_RISING_WEIGHT,
    TREND_WINDOW_DAYS,
    TRIGGER_CAP,
    TRIGGER_LIFT_WEIGHT,
    TRIGGER_LOOKBACK_DAYS,
    TRIGGER_MIN_CONFIDENCE,
    TRIGGER_NAMES_IN_ADVICE,
)
from models import (
    ADRSignal,
    Discovery,
    Dose,
    OutcomeEvent,
    PredictiveRisk,
    RiskFactor,
)
from analytics.numeric import clamp, round_int

log = logging.getLogger("risk_model")

INCREASES = "increases"
DECREASES = "decreases"


class FlareTrend(NamedTuple):
    this_week: int
    last_week: int
    ratio: float


def _age(now: datetime, ts: datetime) -> timedelta:
    return now - ts


# ─── Factors ───────────────────────────────────────────────


def flare_trend(flares: Sequence[OutcomeEvent], now: datetime) -> FlareTrend:
    window = timedelta(days=TREND_WINDOW_DAYS)
    this_week = sum(1 for f in flares if _age(now, f.timestamp) < window)
    last_week = sum(
        1 for f in flares if window <= _age(now, f.timestamp) < 2 * window
    )
    if last_week > 0:
        ratio = this_week / last_week
    elif this_week > 0:
        ratio = TREND_RATIO_NO_HISTORY
    else:
        ratio = 0.0
    return FlareTrend(this_week, last_week, ratio)


def trend_factor(trend: FlareTrend) -> Optional[RiskFactor]:
    if trend.ratio > TREND_RISING_RATIO:
        contrib = min(TREND_RISING_CAP, round_int((trend.ratio - 1) * TREND_RISING_WEIGHT))
        return RiskFactor(name="Rising flare trend", contribution=contrib, direction=INCREASES)
    if trend.ratio < TREND_FALLING_RATIO and trend.last_week > 0:
        contrib = min(TREND_FALLING_CAP, round_int((1 - trend.ratio) * TREND_FALLING_WEIGHT))
        return RiskFactor(name="Declining flare trend", contribution=contrib, direction=DECREASES)
    return None


def escalation_factor(flares: Sequence[OutcomeEvent]) -> Optional[RiskFactor]:
    newest_first = sorted(flares, key=lambda f: f.timestamp, reverse=True)
    recent = [f.severity_score for f in newest_first[:ESCALATION_SAMPLE]]
    older = [f.severity_score for f in newest_first[ESCALATION_SAMPLE:2 * ESCALATION_SAMPLE]]
    if len(recent) < ESCALATION_MIN_EACH or len(older) < ESCALATION_MIN_EACH:
        return None
    diff = sum(recent) / len(recent) - sum(older) / len(older)
    if diff <= ESCALATION_MIN_DIFF:
        return None
    return RiskFactor(
        name="Severity escalation",
        contribution=round_int(diff * ESCALATION_WEIGHT),
        direction=INCREASES,
    )


def confirmed_triggers(discoveries: Sequence[Discovery]) -> List[Discovery]:
    return [
        d for d in discoveries
        if d.relationship == "increases_risk"
        and d.confidence >= TRIGGER_MIN_CONFIDENCE
        and d.status == "confirmed"
    ]


def recent_trigger_exposures(
    outcomes: Sequence[OutcomeEvent], triggers: Sequence[Discovery], now: datetime
) -> List[OutcomeEvent]:
    """Outcome records of the last 3 days tagged with a confirmed trigger."""
    names = {d.factor_a.lower() for d in triggers}
    lookback = timedelta(days=TRIGGER_LOOKBACK_DAYS)
    return [
        e for e in outcomes
        if _age(now, e.timestamp) <= lookback
        and any(t.lower() in names for t in e.triggers)
    ]


def trigger_factor(
    triggers: Sequence[Discovery], exposures: Sequence[OutcomeEvent]
) -> Optional[RiskFactor]:
    if not exposures:
        return None
    avg_lift = sum(d.lift or 1 for d in triggers) / max(len(triggers), 1)
    return RiskFactor(
        name=f"{len(exposures)} confirmed trigger(s) active",
        contribution=min(TRIGGER_CAP, round_int(avg_lift * TRIGGER_LIFT_WEIGHT)),
        direction=INCREASES,
    )


def adr_factor(active: Sequence[ADRSignal]) -> Optional[RiskFactor]:
    if not active:
        return None
    return RiskFactor(
        name=f"{len(active)} high-risk ADR signal(s)",
        contribution=min(ADR_FACTOR_CAP, len(active) * ADR_FACTOR_WEIGHT),
        direction=INCREASES,
    )


def environment_factor(
    outcomes: Sequence[OutcomeEvent], discoveries: Sequence[Discovery]
) -> Optional[RiskFactor]:
    if not any(e.environmental is not None for e in outcomes):
        return None
    env = [
        d for d in discoveries
        if d.category == ENV_DISCOVERY_CATEGORY
        and d.confidence >= ENV_DISCOVERY_MIN_CONFIDENCE
    ]
    if not env:
        return None
    return RiskFactor(
        name="Environmental risk factors present",
        contribution=min(ENV_FACTOR_CAP, len(env) * ENV_FACTOR_WEIGHT),
        direction=INCREASES,
    )


def polypharmacy_factor(medications: Sequence[str]) -> Optional[RiskFactor]:
    n = len(medications)
    if n < POLYPHARMACY_MIN_MEDS:
        return None
    return RiskFactor(
        name=f"Polypharmacy ({n} medications)",
        contribution=min(POLYPHARMACY_CAP, (n - 2) * POLYPHARMACY_WEIGHT),
        direction=INCREASES,
    )


def adherence_days(doses: Sequence[Dose], now: datetime) -> int:
    """Distinct UTC calendar days with at least one dose in the last week."""
    window = timedelta(days=ADHERENCE_WINDOW_DAYS)
    return len({d.taken_at.date() for d in doses if _age(now, d.taken_at) < window})


def adherence_factor(days: int, medications: Sequence[str]) -> Optional[RiskFactor]:
    if days >= ADHERENCE_MIN_DAYS and medications:
        return RiskFactor(
            name="Consistent medication adherence",
            contribution=ADHERENCE_BONUS,
            direction=DECREASES,
        )
    return None


# ─── Aggregation ───────────────────────────────────────────


def _recommendations(
    active: Sequence[ADRSignal],
    trend: FlareTrend,
    medications: Sequence[str],
    days_with_doses: int,
    triggers: Sequence[Discovery],
    exposures: Sequence[OutcomeEvent],
) -> List[str]:
    out: List[str] = []
    if active:
        pairs = ", ".join(f"{s.medication} → {s.symptom}" for s in active)
        out.append(f"Discuss {pairs} with your doctor.")
    if trend.ratio > TREND_RISING_RATIO:
        out.append(
            "Flares are trending up — consider logging more details to identify new triggers."
        )
    if len(medications) >= POLYPHARMACY_MIN_MEDS:
        out.append(
            "Multiple medications detected. Ask your doctor about potential drug interactions."
        )
    if days_with_doses < ADHERENCE_LOW_DAYS and medications:
        out.append(
            "Medication adherence appears inconsistent — set reminders for regular dosing."
        )
    if triggers and exposures:
        names = ", ".join(d.factor_a for d in triggers[:TRIGGER_NAMES_IN_ADVICE])
        out.append(f"Avoid known triggers: {names}.")
    return list(dict.fromkeys(out))


def score_total(factors: Sequence[RiskFactor]) -> int:
    """Baseline plus signed contributions, clamped to [0, 100]."""
    raw = BASELINE_RISK_SCORE + sum(
        f.contribution if f.direction == INCREASES else -f.contribution for f in factors
    )
    return int(clamp(raw, RISK_SCORE_MIN, RISK_SCORE_MAX))


def predict_risk(
    doses: Sequence[Dose],
    outcomes: Sequence[OutcomeEvent],
    discoveries: Sequence[Discovery],
    adr_signals: Sequence[ADRSignal],
    now: datetime,
) -> PredictiveRisk:
    """Aggregate every factor into one 0-100 score with recommendations."""
    flares = [e for e in outcomes if e.is_flare]
    medications = list(dict.fromkeys(d.medication_name for d in doses))
    trend = flare_trend(flares, now)
    triggers = confirmed_triggers(discoveries)
    exposures = recent_trigger_exposures(outcomes, triggers, now)
    active = [s for s in adr_signals if s.risk_level in ADR_ACTIVE_TIERS]
    days_with_doses = adherence_days(doses, now)

    fired = [
        trend_factor(trend),
        escalation_factor(flares),
        trigger_factor(triggers, exposures),
        adr_factor(active),
        environment_factor(outcomes, discoveries),
        polypharmacy_factor(medications),
        adherence_factor(days_with_doses, medications),
    ]
    factors = sorted(
        (f for f in fired if f is not None), key=lambda f: f.contribution, reverse=True
    )
    score = score_total(factors)
    log.info("   Predictive risk: %d factors -> score %d", len(factors), score)

    return PredictiveRisk(
        overall_score=score,
        factors=factors,
        predicted_timeframe=PREDICTED_TIMEFRAME,
        recommendations=_recommendations(
            active, trend, medications, days_with_doses, triggers, exposures
        ),
    )
