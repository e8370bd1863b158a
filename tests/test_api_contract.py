"""
Contract/behavior tests for src/api.py.

These tests mock the store and engine and validate:
- service banner and health check
- store-backed report endpoint (camelCase payload, 500 on failure)
- stateless compute endpoint (raw collections in, report out)
- digest endpoint (3 bullets)
- timezone validation
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))
import api as api_mod
from signal_engine import compute_signals


def _raw(now):
    doses = [
        {"medicationName": "Sertraline", "takenAt": (now - timedelta(days=d, hours=6)).isoformat()}
        for d in range(1, 6)
    ]
    outcomes = [
        {"timestamp": (now - timedelta(days=d, hours=2)).isoformat(), "entry_type": "flare",
         "severity": "moderate", "symptoms": ["Nausea"]}
        for d in (1, 2, 4)
    ] + [
        {"timestamp": (now - timedelta(days=d)).isoformat(), "entry_type": "flare",
         "severity": "mild", "symptoms": ["Fatigue"]}
        for d in range(20, 27)
    ]
    return doses, outcomes


class _FakeEngine:
    """Stands in for SignalEngine; returns a report computed from fixed rows."""

    fail = False

    def __init__(self, conn_str=None, timezone="UTC"):
        self.timezone = timezone

    def run_for_user(self, user_id, now=None):
        if self.fail:
            raise RuntimeError("POSTGRES_CONNECTION_STRING is not set")
        fixed = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        doses, outcomes = _raw(fixed)
        return compute_signals(user_id, doses, outcomes, [], None, now=fixed,
                               timezone=self.timezone)


def test_root_banner():
    assert api_mod.root() == {"service": "adr-signal-api", "status": "ok"}


def test_health_check_online(monkeypatch):
    monkeypatch.setattr(api_mod, "fetch_one", lambda _q, params=None: {"ok": 1})
    resp = api_mod.health_check()
    assert resp.status_code == 200
    assert b"Online" in resp.body


def test_health_check_db_down_still_200(monkeypatch):
    def boom(_q, params=None):
        raise RuntimeError("db down")

    monkeypatch.setattr(api_mod, "fetch_one", boom)
    resp = api_mod.health_check()
    assert resp.status_code == 200
    assert b"Waking up" in resp.body


def test_user_signals_returns_camel_case_report(monkeypatch):
    monkeypatch.setattr(api_mod, "SignalEngine", _FakeEngine)
    out = api_mod.user_signals("user-123", tz="UTC")
    assert out["userId"] == "user-123"
    assert out["summary"]["totalADRSignals"] == len(out["adrSignals"])
    assert out["adrSignals"][0]["medication"] == "Sertraline"
    assert 0 <= out["predictiveRisk"]["overallScore"] <= 100


def test_user_signals_store_failure_is_500(monkeypatch):
    class Failing(_FakeEngine):
        fail = True

    monkeypatch.setattr(api_mod, "SignalEngine", Failing)
    with pytest.raises(HTTPException) as exc:
        api_mod.user_signals("user-123", tz="UTC")
    assert exc.value.status_code == 500
    assert "POSTGRES_CONNECTION_STRING" in exc.value.detail


def test_unknown_timezone_is_422(monkeypatch):
    monkeypatch.setattr(api_mod, "SignalEngine", _FakeEngine)
    with pytest.raises(HTTPException) as exc:
        api_mod.user_signals("user-123", tz="Mars/Olympus_Mons")
    assert exc.value.status_code == 422


def test_compute_endpoint_is_stateless(now):
    doses, outcomes = _raw(now)
    body = api_mod.ComputeRequest(
        userId="anon-1", doses=doses, outcomes=outcomes, now=now,
    )
    first = api_mod.compute(body)
    second = api_mod.compute(body)
    assert first == second
    assert first["generatedAt"].startswith("2026-03-01T12:00:00")
    assert first["adrSignals"][0]["symptom"] == "Nausea"


def test_compute_endpoint_empty_body(now):
    out = api_mod.compute(api_mod.ComputeRequest(now=now))
    assert out["predictiveRisk"]["overallScore"] == 20
    assert out["adrSignals"] == []
    assert out["environmentalCorrelations"] == []


def test_digest_has_three_bullets(monkeypatch):
    monkeypatch.setattr(api_mod, "SignalEngine", _FakeEngine)
    out = api_mod.user_digest("user-123", tz="UTC")
    lines = out["summary"].split("\n")
    assert len(lines) == 3
    assert lines[0].startswith("- What changed:")
    assert lines[1].startswith("- Why it matters:")
    assert lines[2].startswith("- Next 48h")
    assert out["riskScore"] == int(out["riskScore"])
