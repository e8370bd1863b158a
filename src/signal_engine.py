"""
Signal engine: one batch run over one user's event history.

    store rows / request body
        → ingestion (normalise, drop malformed)
        → ADR detection (temporal join + scorer + classifiers)
        → predictive risk
        → correlation analysis
        → SignalReport

``compute_signals`` is pure: the same inputs and ``now`` always give the
same report.  ``SignalEngine`` adds the store reads in front of it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone as dt_timezone
from typing import Any, Iterable, Optional

from constants import REPORTABLE_CAUSALITY
from models import EventSnapshot, ReportSummary, SignalReport
from ingestion import ingest_snapshot
from event_store import EventStore
from correlation_engine import CorrelationEngine
from analytics.adr_detection import build_timeline, detect_adr_signals
from analytics.risk_model import predict_risk

log = logging.getLogger("signal_engine")


def run_snapshot(user_id: str, snapshot: EventSnapshot, *, now: datetime,
                 timezone: str = "UTC") -> SignalReport:
    """Score an already-normalised snapshot."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt_timezone.utc)
    now = now.astimezone(dt_timezone.utc)

    signals = detect_adr_signals(snapshot.doses, snapshot.outcomes)
    risk = predict_risk(
        snapshot.doses, snapshot.outcomes, snapshot.discoveries, signals, now
    )
    analysis = CorrelationEngine(timezone=timezone).analyze(snapshot.outcomes, now)
    timeline = build_timeline(snapshot.doses, snapshot.outcomes, now)

    summary = ReportSummary(
        total_medications=len({d.medication_name for d in snapshot.doses}),
        total_adr_signals=len(signals),
        critical_signals=sum(1 for s in signals if s.risk_level == "critical"),
        high_signals=sum(1 for s in signals if s.risk_level == "high"),
        reportable_signals=sum(1 for s in signals if s.causality in REPORTABLE_CAUSALITY),
        risk_score=risk.overall_score,
    )

    log.info(
        "Signals for %s: %d doses, %d events, %d ADR signals, "
        "%d correlations, %d insights, risk score %d",
        user_id, len(snapshot.doses), len(snapshot.outcomes), len(signals),
        len(analysis.correlations), len(analysis.insights), risk.overall_score,
    )

    return SignalReport(
        user_id=user_id,
        generated_at=now,
        adr_signals=signals,
        predictive_risk=risk,
        environmental_correlations=analysis.correlations,
        insights=analysis.insights,
        risk_factors=analysis.risk_factors,
        protective_factors=analysis.protective_factors,
        peak_risk_conditions=analysis.peak_risk_conditions,
        weekly_trend=analysis.weekly_trend,
        severity_by_condition=analysis.severity_by_condition,
        timeline_events=timeline,
        summary=summary,
    )


def compute_signals(
    user_id: str,
    doses: Optional[Iterable[Any]],
    outcomes: Optional[Iterable[Any]],
    discoveries: Optional[Iterable[Any]] = None,
    profile: Any = None,
    *,
    now: datetime,
    timezone: str = "UTC",
) -> SignalReport:
    """Ingest raw collections and score them.

    ``profile`` is validated but does not influence any score.
    """
    snapshot = ingest_snapshot(doses, outcomes, discoveries, profile)
    return run_snapshot(user_id, snapshot, now=now, timezone=timezone)


class SignalEngine:
    """Store-backed entry point used by the API and the CLI."""

    def __init__(self, conn_str: Optional[str] = None, timezone: str = "UTC"):
        self.store = EventStore(conn_str)
        self.timezone = timezone

    def run_for_user(self, user_id: str, now: Optional[datetime] = None) -> SignalReport:
        raw = self.store.fetch_user(user_id)
        return compute_signals(
            user_id,
            raw.doses,
            raw.outcomes,
            raw.discoveries,
            raw.profile,
            now=now or datetime.now(dt_timezone.utc),
            timezone=self.timezone,
        )
