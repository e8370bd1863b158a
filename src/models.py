"""
Value objects for the signal engine.

Inputs (doses, outcome events, readings, discoveries, profile) are built
by ``ingestion``; derived entities (signals, correlations, risk, report)
are recomputed on every run and never persisted by the engine.  All
models are frozen and serialise with camelCase keys.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from constants import ABSENT_SEVERITY_SCORE, SEVERITY_ORDINAL


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ─── Inputs ────────────────────────────────────────────────


class EnvironmentalReading(_Frozen):
    pressure_mb: Optional[float] = None
    temperature_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    aqi: Optional[float] = None
    weather_condition: Optional[str] = None


class PhysiologicalReading(_Frozen):
    sleep_hours: Optional[float] = None
    heart_rate_variability_ms: Optional[float] = None
    step_count: Optional[int] = None


class Dose(_Frozen):
    medication_name: str = Field(min_length=1)
    taken_at: datetime


class OutcomeEvent(_Frozen):
    timestamp: datetime
    entry_type: Optional[str] = None
    severity: Optional[Literal["none", "mild", "moderate", "severe"]] = None
    symptoms: Tuple[str, ...] = ()
    triggers: Tuple[str, ...] = ()
    environmental: Optional[EnvironmentalReading] = None
    physiological: Optional[PhysiologicalReading] = None

    @property
    def is_flare(self) -> bool:
        return self.entry_type == "flare" or bool(self.severity)

    @property
    def severity_score(self) -> int:
        if self.severity is None:
            return ABSENT_SEVERITY_SCORE
        return SEVERITY_ORDINAL[self.severity]


class Discovery(_Frozen):
    """A previously mined factor→flare association, consumed read-only."""

    factor_a: str
    category: Optional[str] = None
    relationship: Optional[str] = None
    status: Optional[str] = None
    confidence: float = 0.0
    lift: Optional[float] = None


class Profile(_Frozen):
    date_of_birth: Optional[date] = None
    biological_sex: Optional[str] = None
    weight_kg: Optional[float] = None
    height_cm: Optional[float] = None


class EventSnapshot(_Frozen):
    """Normalised inputs for one engine run, sorted chronologically."""

    doses: Tuple[Dose, ...] = ()
    outcomes: Tuple[OutcomeEvent, ...] = ()
    discoveries: Tuple[Discovery, ...] = ()
    profile: Optional[Profile] = None
    dropped: int = 0


# ─── Derived ───────────────────────────────────────────────


class SeverityBreakdown(_Frozen):
    mild: int = 0
    moderate: int = 0
    severe: int = 0

    @property
    def total(self) -> int:
        return self.mild + self.moderate + self.severe


class ADRSignal(_Frozen):
    id: str
    medication: str
    symptom: str
    confidence: float = Field(ge=0, le=1)
    lift: float = Field(ge=0)
    occurrences: int = Field(ge=2)
    total_exposures: int
    avg_onset_hours: float
    severity_breakdown: SeverityBreakdown
    temporal_pattern: str
    risk_level: str
    causality: str
    meddra_code: Optional[str] = None
    first_detected: datetime
    last_occurred: datetime


class RiskFactor(_Frozen):
    name: str
    contribution: int
    direction: str


class PredictiveRisk(_Frozen):
    overall_score: int = Field(ge=0, le=100)
    factors: List[RiskFactor] = Field(default_factory=list)
    predicted_timeframe: str
    recommendations: List[str] = Field(default_factory=list)


class EnvironmentalCorrelation(_Frozen):
    factor: str
    category: str
    description: str
    strength: float = Field(ge=-1, le=1)
    confidence: float = Field(ge=0, le=1)
    threshold: Optional[str] = None
    evidence: str
    occurrences: int
    avg_severity: float


class PatternInsight(_Frozen):
    type: str
    title: str
    description: str
    confidence: str
    actionable: Optional[str] = None
    data_points: int


class WeeklyTrend(_Frozen):
    this_week: int
    last_week: int
    change: int
    change_percent: int


class ConditionSeverity(_Frozen):
    count: int
    avg_severity: float


class CorrelationAnalysis(_Frozen):
    correlations: List[EnvironmentalCorrelation] = Field(default_factory=list)
    insights: List[PatternInsight] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    protective_factors: List[str] = Field(default_factory=list)
    peak_risk_conditions: List[str] = Field(default_factory=list)
    weekly_trend: WeeklyTrend
    severity_by_condition: Dict[str, ConditionSeverity] = Field(default_factory=dict)


class TimelineEvent(_Frozen):
    type: str
    timestamp: datetime
    label: Optional[str] = None
    severity: Optional[str] = None
    symptoms: Tuple[str, ...] = ()
    triggers: Tuple[str, ...] = ()


class ReportSummary(_Frozen):
    total_medications: int
    total_adr_signals: int = Field(alias="totalADRSignals")
    critical_signals: int
    high_signals: int
    reportable_signals: int
    risk_score: int


class SignalReport(_Frozen):
    user_id: str
    generated_at: datetime
    adr_signals: List[ADRSignal] = Field(default_factory=list)
    predictive_risk: PredictiveRisk
    environmental_correlations: List[EnvironmentalCorrelation] = Field(default_factory=list)
    insights: List[PatternInsight] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    protective_factors: List[str] = Field(default_factory=list)
    peak_risk_conditions: List[str] = Field(default_factory=list)
    weekly_trend: WeeklyTrend
    severity_by_condition: Dict[str, ConditionSeverity] = Field(default_factory=dict)
    timeline_events: List[TimelineEvent] = Field(default_factory=list)
    summary: ReportSummary
