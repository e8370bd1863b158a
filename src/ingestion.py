"""
Event ingestion adapter.

Turns raw dose / outcome / discovery / profile records (store rows or
request bodies) into the frozen value objects in ``models``.

Rules applied here and nowhere else:
  • Timestamps → timezone-aware UTC (naive values are taken as UTC).
  • Pressure → millibar.  ``pressureInHg`` is converted; a bare
    ``pressure`` below 100 is taken to be inHg (× 33.8639, rounded).
  • Temperature → °C.  ``temperatureF`` is converted; a bare
    ``temperature`` above 45 is taken to be °F (round((t − 32) × 5/9)).
  • Missing optional readings stay ``None``, never zero.
  • A malformed record is dropped and counted; nothing here raises.
  • Duplicate records are kept: two identical dose rows are two exposures.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from pydantic import ValidationError

from constants import (
    FAHRENHEIT_FLOOR,
    INHG_TO_MB,
    PRESSURE_INHG_CEILING,
    SEVERITY_ORDINAL,
)
from models import (
    Discovery,
    Dose,
    EnvironmentalReading,
    EventSnapshot,
    OutcomeEvent,
    PhysiologicalReading,
    Profile,
)
from analytics.numeric import round_half_up

log = logging.getLogger("ingestion")

# Timestamps must start with a calendar date; words like "now" parse to the wall clock.
ISO_DATE_RE = re.compile(r"^\s*\d{4}-\d{2}-\d{2}")


class MalformedRecord(ValueError):
    """Raised internally for a record that cannot be normalised."""


# ─── Field helpers ─────────────────────────────────────────


def _pick(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row.get(key)
    return None


def _num(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(out) or math.isinf(out):
        return None
    return out


def _instant(value: Any) -> Optional[datetime]:
    if not isinstance(value, (str, datetime, date, pd.Timestamp)):
        return None
    if isinstance(value, str) and not ISO_DATE_RE.match(value):
        return None
    try:
        ts = pd.to_datetime(value, utc=True, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime().astimezone(timezone.utc)


def _labels(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    elif isinstance(value, (set, frozenset)):
        value = sorted(v for v in value if isinstance(v, str))
    elif not isinstance(value, (list, tuple)):
        return ()
    seen: Dict[str, None] = {}
    for item in value:
        if not isinstance(item, str):
            continue
        label = item.strip()
        if label and label not in seen:
            seen[label] = None
    return tuple(seen)


def _severity(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise MalformedRecord(f"severity {value!r}")
    sev = value.strip().lower()
    if not sev:
        return None
    if sev not in SEVERITY_ORDINAL:
        raise MalformedRecord(f"severity {value!r}")
    return sev


# ─── Unit normalisation ────────────────────────────────────


def normalize_pressure_mb(weather: Mapping[str, Any]) -> Optional[float]:
    mb = _num(_pick(weather, "pressureMb", "pressure_mb"))
    if mb:
        return mb
    inhg = _num(_pick(weather, "pressureInHg", "pressure_in_hg"))
    if inhg:
        return round_half_up(inhg * INHG_TO_MB)
    raw = _num(weather.get("pressure"))
    if raw:
        if raw < PRESSURE_INHG_CEILING:
            return round_half_up(raw * INHG_TO_MB)
        return raw
    return None


def normalize_temperature_c(weather: Mapping[str, Any]) -> Optional[float]:
    celsius = _num(_pick(weather, "temperatureC", "temperature_c"))
    if celsius is not None:
        return celsius
    fahrenheit = _num(_pick(weather, "temperatureF", "temperature_f"))
    if fahrenheit is not None:
        return round_half_up((fahrenheit - 32) * 5 / 9)
    raw = _num(weather.get("temperature"))
    if raw is not None:
        if raw > FAHRENHEIT_FLOOR:
            return round_half_up((raw - 32) * 5 / 9)
        return raw
    return None


def _environmental(raw: Any) -> Optional[EnvironmentalReading]:
    if not isinstance(raw, Mapping):
        return None
    # Legacy rows nest readings under weather / airQuality
    weather = raw.get("weather") if isinstance(raw.get("weather"), Mapping) else raw
    air = raw.get("airQuality") or raw.get("air_quality")
    air = air if isinstance(air, Mapping) else raw

    condition = _pick(weather, "weatherCondition", "weather_condition", "condition")
    reading = EnvironmentalReading(
        pressure_mb=normalize_pressure_mb(weather),
        temperature_c=normalize_temperature_c(weather),
        humidity_pct=_num(_pick(weather, "humidityPct", "humidity_pct", "humidity")),
        aqi=_num(_pick(air, "aqi", "overall_aqi", "us_aqi", "european_aqi")),
        weather_condition=condition if isinstance(condition, str) and condition else None,
    )
    if not reading.model_dump(exclude_none=True):
        return None
    return reading


def _physiological(raw: Any) -> Optional[PhysiologicalReading]:
    if not isinstance(raw, Mapping):
        return None
    sleep = _num(_pick(raw, "sleepHours", "sleep_hours", "sleepDuration"))
    if sleep is None and isinstance(raw.get("sleep"), Mapping):
        minutes = _num(raw["sleep"].get("totalMinutes"))
        sleep = minutes / 60 if minutes is not None else None
    steps = _num(_pick(raw, "stepCount", "step_count", "steps"))
    reading = PhysiologicalReading(
        sleep_hours=sleep,
        heart_rate_variability_ms=_num(_pick(
            raw, "heartRateVariabilityMs", "heartRateVariability",
            "heart_rate_variability", "hrv", "hrvRmssd",
        )),
        step_count=int(steps) if steps is not None else None,
    )
    if not reading.model_dump(exclude_none=True):
        return None
    return reading


# ─── Record builders ───────────────────────────────────────


def _dose(row: Any) -> Dose:
    if isinstance(row, Dose):
        return row.model_copy(update={"taken_at": _instant(row.taken_at)})
    if not isinstance(row, Mapping):
        raise MalformedRecord("dose is not a mapping")
    name = _pick(row, "medicationName", "medication_name", "medication")
    taken_at = _instant(_pick(row, "takenAt", "taken_at"))
    if not isinstance(name, str) or not name.strip() or taken_at is None:
        raise MalformedRecord("dose without medication or time")
    return Dose(medication_name=name.strip(), taken_at=taken_at)


def _outcome(row: Any) -> OutcomeEvent:
    if isinstance(row, OutcomeEvent):
        return row.model_copy(update={"timestamp": _instant(row.timestamp)})
    if not isinstance(row, Mapping):
        raise MalformedRecord("outcome is not a mapping")
    ts = _instant(row.get("timestamp"))
    if ts is None:
        raise MalformedRecord("outcome without timestamp")
    entry_type = _pick(row, "entryType", "entry_type", "type")
    return OutcomeEvent(
        timestamp=ts,
        entry_type=entry_type if isinstance(entry_type, str) else None,
        severity=_severity(row.get("severity")),
        symptoms=_labels(row.get("symptoms")),
        triggers=_labels(row.get("triggers")),
        environmental=_environmental(
            _pick(row, "environmental", "environmental_data", "environmentalData")
        ),
        physiological=_physiological(
            _pick(row, "physiological", "physiological_data", "physiologicalData")
        ),
    )


def _discovery(row: Any) -> Discovery:
    if isinstance(row, Discovery):
        return row
    if not isinstance(row, Mapping):
        raise MalformedRecord("discovery is not a mapping")
    factor = _pick(row, "factorA", "factor_a")
    if not isinstance(factor, str) or not factor.strip():
        raise MalformedRecord("discovery without factor")
    return Discovery(
        factor_a=factor.strip(),
        category=row.get("category"),
        relationship=row.get("relationship"),
        status=row.get("status"),
        confidence=_num(row.get("confidence")) or 0.0,
        lift=_num(row.get("lift")),
    )


def _collect(rows: Optional[Iterable[Any]], builder, kind: str) -> Tuple[List[Any], int]:
    out: List[Any] = []
    dropped = 0
    for row in rows or ():
        try:
            out.append(builder(row))
        except (MalformedRecord, ValidationError) as e:
            dropped += 1
            log.debug("Dropped malformed %s record: %s", kind, e)
    return out, dropped


# ─── Public API ────────────────────────────────────────────


def ingest_doses(rows: Optional[Iterable[Any]]) -> Tuple[List[Dose], int]:
    doses, dropped = _collect(rows, _dose, "dose")
    doses.sort(key=lambda d: d.taken_at)
    return doses, dropped


def ingest_outcomes(rows: Optional[Iterable[Any]]) -> Tuple[List[OutcomeEvent], int]:
    events, dropped = _collect(rows, _outcome, "outcome")
    events.sort(key=lambda e: e.timestamp)
    return events, dropped


def ingest_discoveries(rows: Optional[Iterable[Any]]) -> Tuple[List[Discovery], int]:
    return _collect(rows, _discovery, "discovery")


def ingest_profile(row: Any) -> Optional[Profile]:
    if isinstance(row, Profile):
        return row
    if not isinstance(row, Mapping):
        return None
    dob = _instant(_pick(row, "dateOfBirth", "date_of_birth"))
    sex = _pick(row, "biologicalSex", "biological_sex")
    try:
        return Profile(
            date_of_birth=dob.date() if dob else None,
            biological_sex=sex if isinstance(sex, str) else None,
            weight_kg=_num(_pick(row, "weightKg", "weight_kg")),
            height_cm=_num(_pick(row, "heightCm", "height_cm")),
        )
    except ValidationError as e:
        log.debug("Dropped malformed profile: %s", e)
        return None


def ingest_snapshot(
    doses: Optional[Iterable[Any]] = None,
    outcomes: Optional[Iterable[Any]] = None,
    discoveries: Optional[Iterable[Any]] = None,
    profile: Any = None,
) -> EventSnapshot:
    """Normalise all raw collections for one engine run."""
    dose_list, d1 = ingest_doses(doses)
    event_list, d2 = ingest_outcomes(outcomes)
    disc_list, d3 = ingest_discoveries(discoveries)
    dropped = d1 + d2 + d3
    if dropped:
        log.info(
            "   Ingestion dropped %d malformed records (doses=%d, outcomes=%d, discoveries=%d)",
            dropped, d1, d2, d3,
        )
    return EventSnapshot(
        doses=tuple(dose_list),
        outcomes=tuple(event_list),
        discoveries=tuple(disc_list),
        profile=ingest_profile(profile),
        dropped=dropped,
    )
