"""
Environmental / Physiological Correlation Engine
=================================================
Relates each flare's severity to the readings logged with it, over the
most recent 30 days.  Independent of ADR detection.

Architecture (3 layers):
  Layer 0 — Frame:  window flares → one row per flare with the severity
            ordinal, every reading as a nullable float column, and the
            local hour / weekday in the caller's timezone.
  Layer 1 — Bucketed comparisons:  for each continuous variable, split
            flares at a fixed threshold and compare mean severity.
            A correlation is emitted only when both buckets are large
            enough and the difference clears the variable's threshold.
              strength   = diff / 2, clamped to [-1, 1]
              confidence = min(n / divisor, 1), per-variable divisor
  Layer 2 — Narrative:  peak time of day, worst weekday, compound
            poor-sleep + low-pressure risk, week-over-week trend,
            severity by weather condition.

Every variable needs ≥5 flares carrying that reading before any split
is attempted.  Missing readings are excluded, never zero-filled.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd

from constants import (
    ANALYZER_WINDOW_DAYS,
    AQI_CONF_DIVISOR,
    AQI_FIXED_STRENGTH,
    AQI_MIN_POOR,
    AQI_POOR,
    COLD_CONF_DIVISOR,
    COLD_FALLBACK_SEVERITY,
    COLD_MAX_C,
    COLD_MIN_BUCKET,
    COLD_MIN_DIFF,
    COMPOUND_DEFAULT_PRESSURE,
    COMPOUND_DEFAULT_SLEEP,
    COMPOUND_HIGH_CONF_EVENTS,
    COMPOUND_MIN_EVENTS,
    COMPOUND_MIN_SEVERITY,
    DAY_HIGH_CONF_COUNT,
    DAY_MIN_COUNT,
    DAY_MIN_PCT,
    DAY_NAMES,
    HRV_CONF_DIVISOR,
    HRV_LOW_FRACTION,
    HRV_MIN_BUCKET,
    HRV_MIN_DIFF,
    HUMIDITY_CONF_DIVISOR,
    HUMIDITY_MIN_BUCKET,
    HUMIDITY_MIN_DIFF,
    HUMIDITY_RISK_DIFF,
    HUMIDITY_SPLIT_PCT,
    MAX_CORRELATIONS,
    MIN_VARIABLE_SAMPLES,
    NIGHT_SLOT,
    PEAK_TIME_CONF_DIVISOR,
    PEAK_TIME_MIN_PCT,
    PERCENT_PER_SEVERITY_POINT,
    PRESSURE_CONF_DIVISOR,
    PRESSURE_MIN_BUCKET,
    PRESSURE_MIN_DIFF,
    PRESSURE_RISK_DIFF,
    PRESSURE_SPLIT_MB,
    SLEEP_CONF_DIVISOR,
    SLEEP_GOOD_HOURS,
    SLEEP_MIN_BUCKET,
    SLEEP_MIN_DIFF,
    SLEEP_PATTERN_HIGH_CONF_SAMPLES,
    SLEEP_PATTERN_HOURS,
    SLEEP_POOR_HOURS,
    STEPS_ACTIVE,
    STEPS_CONF_DIVISOR,
    STEPS_MIN_BUCKET,
    STEPS_MIN_DIFF,
    STEPS_PROTECTIVE_DIFF,
    STEPS_SEDENTARY,
    STRENGTH_DIVISOR,
    TEMPERATE_MAX_C,
    TIME_SLOTS,
    TREND_WINDOW_DAYS,
    WEEKLY_CHANGE_THRESHOLD,
)
from models import (
    ConditionSeverity,
    CorrelationAnalysis,
    EnvironmentalCorrelation,
    OutcomeEvent,
    PatternInsight,
    WeeklyTrend,
)
from analytics.numeric import clamp, round_half_up, round_int

log = logging.getLogger("correlation_engine")


# ═══════════════════════════════════════════════════════════════
#  CONSTANTS
# ═══════════════════════════════════════════════════════════════

# Reading columns of the Layer 0 frame
READING_COLS = [
    "pressure", "humidity", "temperature", "aqi",
    "sleep", "hrv", "steps",
]

# Readings where 0 means "not recorded"
POSITIVE_ONLY = {"pressure", "humidity", "aqi", "sleep", "hrv"}

UNKNOWN_CONDITION = "Unknown"


def _fmt1(value: float) -> str:
    return f"{round_half_up(value, 1):.1f}"


def _pct(diff: float) -> int:
    return round_int(diff * PERCENT_PER_SEVERITY_POINT)


def _strength(diff: float) -> float:
    return clamp(diff / STRENGTH_DIVISOR, -1.0, 1.0)


def _confidence(n: int, divisor: float) -> float:
    return min(n / divisor, 1.0)


def _mean(series: pd.Series) -> float:
    return float(series.mean())


@dataclass
class _Findings:
    """Mutable accumulator shared by the per-variable steps of one run."""

    correlations: List[EnvironmentalCorrelation] = field(default_factory=list)
    insights: List[PatternInsight] = field(default_factory=list)
    risk_factors: List[str] = field(default_factory=list)
    protective_factors: List[str] = field(default_factory=list)
    peak_risk_conditions: List[str] = field(default_factory=list)


class CorrelationEngine:
    """
    Runs all three layers over one user's outcome events.
    Stateless between calls; a single instance can be reused.
    """

    def __init__(self, timezone: str = "UTC",
                 window_days: int = ANALYZER_WINDOW_DAYS):
        ZoneInfo(timezone)  # raises ZoneInfoNotFoundError on unknown names
        self.timezone = timezone
        self.window_days = window_days

    # ─── MAIN ENTRY ────────────────────────────────────────────────────

    def analyze(self, outcomes: Sequence[OutcomeEvent],
                now: datetime) -> CorrelationAnalysis:
        flares = [e for e in outcomes if e.is_flare]
        df = self._layer0_frame(flares, now)
        log.info("   Layer 0: %d flares in the last %d days", len(df), self.window_days)

        found = _Findings()
        if not df.empty:
            self._layer1_comparisons(df, found)
            self._layer2_timing(df, found)
            self._compound_risk(df, found)

        trend = self._weekly_trend(flares, now)
        self._trend_insight(trend, found)

        ranked = sorted(found.correlations, key=lambda c: abs(c.strength), reverse=True)
        log.info(
            "   Layer 1-2: %d correlations (%d kept), %d insights",
            len(ranked), min(len(ranked), MAX_CORRELATIONS), len(found.insights),
        )
        return CorrelationAnalysis(
            correlations=ranked[:MAX_CORRELATIONS],
            insights=found.insights,
            risk_factors=found.risk_factors,
            protective_factors=found.protective_factors,
            peak_risk_conditions=found.peak_risk_conditions,
            weekly_trend=trend,
            severity_by_condition=self._severity_by_condition(df),
        )

    # ─── Layer 0 ───────────────────────────────────────────────────────

    def _layer0_frame(self, flares: Sequence[OutcomeEvent],
                      now: datetime) -> pd.DataFrame:
        start = now - timedelta(days=self.window_days)
        rows = []
        for f in flares:
            if not (start <= f.timestamp <= now):
                continue
            env = f.environmental
            phys = f.physiological
            rows.append({
                "ts": f.timestamp,
                "severity": f.severity_score,
                "pressure": env.pressure_mb if env else None,
                "humidity": env.humidity_pct if env else None,
                "temperature": env.temperature_c if env else None,
                "aqi": env.aqi if env else None,
                "condition": (env.weather_condition if env else None) or UNKNOWN_CONDITION,
                "sleep": phys.sleep_hours if phys else None,
                "hrv": phys.heart_rate_variability_ms if phys else None,
                "steps": phys.step_count if phys else None,
            })

        df = pd.DataFrame(rows, columns=["ts", "severity", "condition"] + READING_COLS)
        df["ts"] = pd.to_datetime(df["ts"], utc=True)
        df["severity"] = df["severity"].astype(float)
        for col in READING_COLS:
            df[col] = df[col].astype(float)
            if col in POSITIVE_ONLY:
                df.loc[df[col] <= 0, col] = np.nan

        local = df["ts"].dt.tz_convert(self.timezone)
        df["hour"] = local.dt.hour
        # pandas weekday is Monday=0; DAY_NAMES starts on Sunday
        df["weekday"] = (local.dt.dayofweek + 1) % 7
        return df

    @staticmethod
    def _readings(df: pd.DataFrame, col: str) -> Optional[pd.DataFrame]:
        """Rows carrying ``col``, or None if there are too few of them."""
        sub = df[df[col].notna()]
        if len(sub) < MIN_VARIABLE_SAMPLES:
            return None
        return sub

    # ─── Layer 1 ───────────────────────────────────────────────────────

    def _layer1_comparisons(self, df: pd.DataFrame, found: _Findings):
        self._pressure(df, found)
        self._humidity(df, found)
        self._cold(df, found)
        self._air_quality(df, found)
        self._sleep(df, found)
        self._hrv(df, found)
        self._activity(df, found)

    def _pressure(self, df: pd.DataFrame, found: _Findings):
        data = self._readings(df, "pressure")
        if data is None:
            return
        low = data.loc[data["pressure"] < PRESSURE_SPLIT_MB, "severity"]
        high = data.loc[data["pressure"] >= PRESSURE_SPLIT_MB, "severity"]
        if len(low) < PRESSURE_MIN_BUCKET or len(high) < PRESSURE_MIN_BUCKET:
            return
        low_avg, high_avg = _mean(low), _mean(high)
        diff = low_avg - high_avg
        if abs(diff) <= PRESSURE_MIN_DIFF:
            return
        if diff > 0:
            description = (f"Low pressure (<{PRESSURE_SPLIT_MB}mb) correlates with "
                           f"{_pct(diff)}% more severe flares")
            threshold = f"<{PRESSURE_SPLIT_MB}mb"
        else:
            description = f"High pressure (>{PRESSURE_SPLIT_MB}mb) correlates with more severe flares"
            threshold = f">{PRESSURE_SPLIT_MB}mb"
        found.correlations.append(EnvironmentalCorrelation(
            factor="Barometric Pressure",
            category="weather",
            description=description,
            strength=_strength(diff),
            confidence=_confidence(len(data), PRESSURE_CONF_DIVISOR),
            threshold=threshold,
            evidence=f"Avg severity {_fmt1(low_avg)} vs {_fmt1(high_avg)}",
            occurrences=len(low),
            avg_severity=low_avg,
        ))
        if diff > PRESSURE_RISK_DIFF:
            found.risk_factors.append(f"Low barometric pressure (<{PRESSURE_SPLIT_MB}mb)")
            found.peak_risk_conditions.append("pressure drop")

    def _humidity(self, df: pd.DataFrame, found: _Findings):
        data = self._readings(df, "humidity")
        if data is None:
            return
        high = data.loc[data["humidity"] > HUMIDITY_SPLIT_PCT, "severity"]
        normal = data.loc[data["humidity"] <= HUMIDITY_SPLIT_PCT, "severity"]
        if len(high) < HUMIDITY_MIN_BUCKET or len(normal) < HUMIDITY_MIN_BUCKET:
            return
        high_avg = _mean(high)
        diff = high_avg - _mean(normal)
        if abs(diff) <= HUMIDITY_MIN_DIFF:
            return
        direction = "more" if diff > 0 else "less"
        found.correlations.append(EnvironmentalCorrelation(
            factor="High Humidity",
            category="weather",
            description=(f"Humidity >{HUMIDITY_SPLIT_PCT}% correlates with "
                         f"{_pct(abs(diff))}% {direction} severe flares"),
            strength=_strength(diff),
            confidence=_confidence(len(data), HUMIDITY_CONF_DIVISOR),
            threshold=f">{HUMIDITY_SPLIT_PCT}%",
            evidence=f"{len(high)} flares at high humidity",
            occurrences=len(high),
            avg_severity=high_avg,
        ))
        if diff > HUMIDITY_RISK_DIFF:
            found.risk_factors.append(f"High humidity (>{HUMIDITY_SPLIT_PCT}%)")

    def _cold(self, df: pd.DataFrame, found: _Findings):
        data = self._readings(df, "temperature")
        if data is None:
            return
        temp = data["temperature"]
        cold = data.loc[temp < COLD_MAX_C, "severity"]
        temperate = data.loc[(temp >= COLD_MAX_C) & (temp <= TEMPERATE_MAX_C), "severity"]
        if len(cold) < COLD_MIN_BUCKET:
            return
        cold_avg = _mean(cold)
        temperate_avg = _mean(temperate) if len(temperate) else COLD_FALLBACK_SEVERITY
        diff = cold_avg - temperate_avg
        if diff <= COLD_MIN_DIFF:
            return
        found.correlations.append(EnvironmentalCorrelation(
            factor="Cold Temperature",
            category="weather",
            description=f"Cold weather (<{COLD_MAX_C}°C) correlates with {_pct(diff)}% more severe flares",
            strength=_strength(diff),
            confidence=_confidence(len(cold), COLD_CONF_DIVISOR),
            threshold=f"<{COLD_MAX_C}°C / 41°F",
            evidence=f"{len(cold)} cold-weather flares, avg severity {_fmt1(cold_avg)}",
            occurrences=len(cold),
            avg_severity=cold_avg,
        ))
        found.risk_factors.append(f"Cold weather (<{COLD_MAX_C}°C)")

    def _air_quality(self, df: pd.DataFrame, found: _Findings):
        data = self._readings(df, "aqi")
        if data is None:
            return
        poor = data.loc[data["aqi"] > AQI_POOR, "severity"]
        if len(poor) < AQI_MIN_POOR:
            return
        poor_avg = _mean(poor)
        found.correlations.append(EnvironmentalCorrelation(
            factor="Poor Air Quality",
            category="air_quality",
            description=f"AQI >{AQI_POOR} correlates with flares ({len(poor)} occurrences)",
            strength=AQI_FIXED_STRENGTH,
            confidence=_confidence(len(poor), AQI_CONF_DIVISOR),
            threshold=f"AQI >{AQI_POOR}",
            evidence=f"Avg severity {_fmt1(poor_avg)} during poor air quality",
            occurrences=len(poor),
            avg_severity=poor_avg,
        ))
        found.risk_factors.append(f"Poor air quality (AQI >{AQI_POOR})")

    def _sleep(self, df: pd.DataFrame, found: _Findings):
        data = self._readings(df, "sleep")
        if data is None:
            return
        poor = data.loc[data["sleep"] < SLEEP_POOR_HOURS, "severity"]
        good = data.loc[data["sleep"] >= SLEEP_GOOD_HOURS, "severity"]
        if len(poor) >= SLEEP_MIN_BUCKET and len(good) >= SLEEP_MIN_BUCKET:
            poor_avg = _mean(poor)
            diff = poor_avg - _mean(good)
            if diff > SLEEP_MIN_DIFF:
                found.correlations.append(EnvironmentalCorrelation(
                    factor="Sleep Deficit",
                    category="sleep",
                    description=f"<{SLEEP_POOR_HOURS} hours sleep → {_pct(diff)}% more severe flares",
                    strength=_strength(diff),
                    confidence=_confidence(len(poor), SLEEP_CONF_DIVISOR),
                    threshold=f"<{SLEEP_POOR_HOURS} hours",
                    evidence=(f"{len(poor)} flares after poor sleep vs "
                              f"{len(good)} after good sleep"),
                    occurrences=len(poor),
                    avg_severity=poor_avg,
                ))
                found.risk_factors.append(f"Sleep less than {SLEEP_POOR_HOURS} hours")
                found.peak_risk_conditions.append("poor sleep")
            elif diff < -SLEEP_MIN_DIFF:
                found.protective_factors.append(
                    f"Good sleep (>{SLEEP_GOOD_HOURS} hours): {_pct(abs(diff))}% less severe flares"
                )

        avg_sleep = _mean(data["sleep"])
        if avg_sleep < SLEEP_PATTERN_HOURS:
            found.insights.append(PatternInsight(
                type="risk_factor",
                title="Sleep pattern detected",
                description=(f"Your average sleep during flares is {_fmt1(avg_sleep)} hours. "
                             "Studies show chronic conditions worsen with <7 hours sleep."),
                confidence="high" if len(data) >= SLEEP_PATTERN_HIGH_CONF_SAMPLES else "medium",
                actionable="Aim for 7-8 hours sleep, especially when other risk factors are present",
                data_points=len(data),
            ))

    def _hrv(self, df: pd.DataFrame, found: _Findings):
        data = self._readings(df, "hrv")
        if data is None:
            return
        avg_hrv = _mean(data["hrv"])
        cutoff = avg_hrv * HRV_LOW_FRACTION
        low = data.loc[data["hrv"] < cutoff, "severity"]
        normal = data.loc[data["hrv"] >= cutoff, "severity"]
        if len(low) < HRV_MIN_BUCKET or len(normal) < HRV_MIN_BUCKET:
            return
        low_avg = _mean(low)
        diff = low_avg - _mean(normal)
        if diff <= HRV_MIN_DIFF:
            return
        found.correlations.append(EnvironmentalCorrelation(
            factor="Low HRV (Stress)",
            category="physiological",
            description=f"Low HRV (below your avg of {round_int(avg_hrv)}ms) → more severe flares",
            strength=_strength(diff),
            confidence=_confidence(len(low), HRV_CONF_DIVISOR),
            threshold=f"<{round_int(cutoff)}ms",
            evidence=f"{len(low)} flares during high-stress periods",
            occurrences=len(low),
            avg_severity=low_avg,
        ))
        found.risk_factors.append("Low HRV / high stress")
        found.peak_risk_conditions.append("stress")

    def _activity(self, df: pd.DataFrame, found: _Findings):
        data = self._readings(df, "steps")
        if data is None:
            return
        sedentary = data.loc[data["steps"] < STEPS_SEDENTARY, "severity"]
        active = data.loc[data["steps"] >= STEPS_ACTIVE, "severity"]
        if len(sedentary) < STEPS_MIN_BUCKET or len(active) < STEPS_MIN_BUCKET:
            return
        sedentary_avg = _mean(sedentary)
        diff = sedentary_avg - _mean(active)
        if diff > STEPS_MIN_DIFF:
            found.correlations.append(EnvironmentalCorrelation(
                factor="Low Activity",
                category="activity",
                description=f"Days with <3K steps have {_pct(diff)}% more severe flares",
                strength=_strength(diff),
                confidence=_confidence(len(sedentary), STEPS_CONF_DIVISOR),
                threshold="<3,000 steps",
                evidence=f"{len(sedentary)} sedentary-day flares",
                occurrences=len(sedentary),
                avg_severity=sedentary_avg,
            ))
        if diff > STEPS_PROTECTIVE_DIFF:
            found.protective_factors.append(
                f"Moderate activity (5K+ steps): {_pct(diff)}% less severe flares"
            )

    # ─── Layer 2 ───────────────────────────────────────────────────────

    @staticmethod
    def _time_slot(hour: int) -> str:
        for label, start, end in TIME_SLOTS:
            if start <= hour < end:
                return label
        return NIGHT_SLOT

    def _layer2_timing(self, df: pd.DataFrame, found: _Findings):
        total = len(df)

        slot_order = [label for label, _, _ in TIME_SLOTS] + [NIGHT_SLOT]
        slots = df.assign(slot=df["hour"].map(self._time_slot))
        by_slot = slots.groupby("slot")["severity"].agg(["count", "mean"])
        by_slot = by_slot.reindex([s for s in slot_order if s in by_slot.index])
        by_slot = by_slot.sort_values("count", ascending=False, kind="stable")
        top_slot = by_slot.index[0]
        count = int(by_slot.iloc[0]["count"])
        pct = round_int(count / total * 100)
        if pct > PEAK_TIME_MIN_PCT:
            found.correlations.append(EnvironmentalCorrelation(
                factor=f"Peak Time: {top_slot}",
                category="time",
                description=f"{pct}% of flares occur during {top_slot}",
                strength=clamp((pct - 25) / 50, -1.0, 1.0),
                confidence=_confidence(total, PEAK_TIME_CONF_DIVISOR),
                threshold=top_slot,
                evidence=f"{count} of {total} flares",
                occurrences=count,
                avg_severity=float(by_slot.iloc[0]["mean"]),
            ))

        by_day = df.groupby("weekday")["severity"].agg(["count", "mean"]).sort_index()
        by_day = by_day.sort_values("count", ascending=False, kind="stable")
        if len(by_day) < 2:
            return
        day_count = int(by_day.iloc[0]["count"])
        if day_count < DAY_MIN_COUNT:
            return
        day = DAY_NAMES[int(by_day.index[0])]
        day_pct = round_int(day_count / total * 100)
        if day_pct <= DAY_MIN_PCT:
            return
        found.insights.append(PatternInsight(
            type="timing",
            title=f"{day}s are your worst day",
            description=(f"{day_pct}% of flares ({day_count}) occur on {day}s. "
                         f"Average severity: {_fmt1(by_day.iloc[0]['mean'])}/3."),
            confidence="high" if day_count >= DAY_HIGH_CONF_COUNT else "medium",
            actionable=f"Plan lighter activities on {day}s or investigate what's different about that day",
            data_points=day_count,
        ))

    def _compound_risk(self, df: pd.DataFrame, found: _Findings):
        sleep = df["sleep"].fillna(COMPOUND_DEFAULT_SLEEP)
        pressure = df["pressure"].fillna(COMPOUND_DEFAULT_PRESSURE)
        both = df.loc[(sleep < SLEEP_POOR_HOURS) & (pressure < PRESSURE_SPLIT_MB), "severity"]
        if len(both) < COMPOUND_MIN_EVENTS:
            return
        avg = _mean(both)
        if avg <= COMPOUND_MIN_SEVERITY:
            return
        found.insights.append(PatternInsight(
            type="compound",
            title="Compound risk detected",
            description=(f"When poor sleep (<{SLEEP_POOR_HOURS}h) + low pressure occur together, "
                         f"your avg severity is {_fmt1(avg)}/3 ({len(both)} occurrences)."),
            confidence="high" if len(both) >= COMPOUND_HIGH_CONF_EVENTS else "medium",
            actionable="Monitor both factors together - the combination is worse than either alone",
            data_points=len(both),
        ))
        found.peak_risk_conditions.append("poor sleep + low pressure")

    @staticmethod
    def _weekly_trend(flares: Sequence[OutcomeEvent], now: datetime) -> WeeklyTrend:
        week = timedelta(days=TREND_WINDOW_DAYS)
        this_week = sum(1 for f in flares if now - week < f.timestamp <= now)
        last_week = sum(1 for f in flares if now - 2 * week < f.timestamp <= now - week)
        change = this_week - last_week
        return WeeklyTrend(
            this_week=this_week,
            last_week=last_week,
            change=change,
            change_percent=round_int(change / last_week * 100) if last_week else 0,
        )

    @staticmethod
    def _trend_insight(trend: WeeklyTrend, found: _Findings):
        points = trend.this_week + trend.last_week
        if trend.change > WEEKLY_CHANGE_THRESHOLD:
            found.insights.append(PatternInsight(
                type="trend",
                title="Flare frequency increasing",
                description=(f"{trend.this_week} flares this week vs {trend.last_week} last week "
                             f"(+{trend.change}). This is a {trend.change_percent}% increase."),
                confidence="high",
                actionable="Review your recent triggers and environmental conditions for changes",
                data_points=points,
            ))
        elif trend.change < -WEEKLY_CHANGE_THRESHOLD:
            found.insights.append(PatternInsight(
                type="trend",
                title="Flares decreasing",
                description=(f"{trend.this_week} flares this week vs {trend.last_week} last week "
                             f"({trend.change}). Great progress!"),
                confidence="high",
                actionable="Keep doing what you're doing - identify what changed",
                data_points=points,
            ))

    @staticmethod
    def _severity_by_condition(df: pd.DataFrame) -> Dict[str, ConditionSeverity]:
        if df.empty:
            return {}
        grouped = df.groupby("condition", sort=False)["severity"].agg(["count", "mean"])
        return {
            str(cond): ConditionSeverity(count=int(row["count"]), avg_severity=float(row["mean"]))
            for cond, row in grouped.iterrows()
        }
