"""Helpers for building a concise signal digest for UI cards."""

from __future__ import annotations

from models import SignalReport


def _clip(s: str, limit: int = 260) -> str:
    s = s.replace("\n", " ").strip()
    if len(s) <= limit:
        return s
    return s[: limit - 3].rstrip() + "..."


def _bullet(label: str, value: str) -> str:
    prefix = f"- {label}: "
    allowed = max(48, 280 - len(prefix))
    return prefix + _clip(value, allowed)


def _what_changed(report: SignalReport) -> str:
    trend = report.weekly_trend
    for insight in report.insights:
        if insight.type == "trend":
            return f"{insight.title}. {insight.description}"
    if trend.this_week or trend.last_week:
        return (
            f"{trend.this_week} flares this week vs {trend.last_week} last week "
            f"({trend.change:+d})."
        )
    return ""


def _why_it_matters(report: SignalReport) -> str:
    if report.adr_signals:
        s = report.adr_signals[0]
        return (
            f"{s.medication} → {s.symptom}: {s.occurrences} of {s.total_exposures} doses "
            f"followed within 48h ({s.lift}x baseline, {s.causality}, {s.risk_level} risk)."
        )
    if report.environmental_correlations:
        c = report.environmental_correlations[0]
        return f"{c.factor}: {c.description}."
    if report.insights:
        return report.insights[0].description
    return ""


def _next_48h(report: SignalReport) -> str:
    if report.predictive_risk.recommendations:
        return report.predictive_risk.recommendations[0]
    for insight in report.insights:
        if insight.actionable:
            return insight.actionable
    return ""


def build_signal_digest(report: SignalReport) -> str:
    """Create a strict 3-bullet, human-friendly summary of one report."""
    score = report.predictive_risk.overall_score
    what_changed = _what_changed(report) or "Not enough recent flares to call a trend."
    why_it_matters = _why_it_matters(report) or "No medication or environmental signal stands out yet."
    next_48h = _next_48h(report) or "Keep logging doses and flares so patterns can be confirmed."

    return (
        f"{_bullet('What changed', what_changed)}\n"
        f"{_bullet('Why it matters', why_it_matters)}\n"
        f"{_bullet(f'Next 48h (risk {score}/100)', next_48h)}"
    )
