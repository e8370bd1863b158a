"""
FastAPI surface for the signal engine.

Routes are thin: they resolve inputs, run the engine and serialise the
report with camelCase keys.  Nothing here writes to the store.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from db_utils import fetch_one
from signal_engine import SignalEngine, compute_signals
from pipeline.summary_builder import build_signal_digest

log = logging.getLogger("api")


# ─── App setup ─────────────────────────────────────────────

app = FastAPI(title="ADR Signal API", version="1.0.0")

_origin_env = os.getenv("FRONTEND_ORIGINS", "")
_origins = [o.strip() for o in _origin_env.split(",") if o.strip()] or [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


class ComputeRequest(BaseModel):
    user_id: str = Field(default="anonymous", alias="userId")
    doses: List[Dict[str, Any]] = Field(default_factory=list)
    outcomes: List[Dict[str, Any]] = Field(default_factory=list)
    discoveries: List[Dict[str, Any]] = Field(default_factory=list)
    profile: Optional[Dict[str, Any]] = None
    now: Optional[datetime] = None
    timezone: str = "UTC"

    model_config = {"populate_by_name": True}


def _check_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=422, detail=f"Unknown timezone: {name}")
    return name


def _store_report(user_id: str, tz: str):
    return SignalEngine(timezone=_check_timezone(tz)).run_for_user(user_id)


# ─── Routes ────────────────────────────────────────────────

@app.get("/")
def root() -> Dict[str, Any]:
    return {"service": "adr-signal-api", "status": "ok"}


@app.get("/health-check")
def health_check() -> JSONResponse:
    try:
        fetch_one("SELECT 1 AS ok")
        return JSONResponse({"status": "Online", "message": "Online"})
    except Exception as e:
        return JSONResponse(
            status_code=200,
            content={
                "status": "Waking up",
                "message": f"Service starting or DB unavailable: {e}",
            },
        )


@app.get("/api/v1/signals/{user_id}")
def user_signals(user_id: str, tz: str = Query(default="UTC", alias="timezone")) -> Dict[str, Any]:
    try:
        return _store_report(user_id, tz).to_dict()
    except HTTPException:
        raise
    except Exception as e:
        log.error("Signal run failed for %s: %s", user_id, e)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/v1/signals/compute")
def compute(body: ComputeRequest) -> Dict[str, Any]:
    tz = _check_timezone(body.timezone)
    try:
        report = compute_signals(
            body.user_id,
            body.doses,
            body.outcomes,
            body.discoveries,
            body.profile,
            now=body.now or datetime.now(timezone.utc),
            timezone=tz,
        )
        return report.to_dict()
    except Exception as e:
        log.error("Signal computation failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/v1/signals/{user_id}/digest")
def user_digest(user_id: str, tz: str = Query(default="UTC", alias="timezone")) -> Dict[str, Any]:
    try:
        report = _store_report(user_id, tz)
        return {
            "userId": user_id,
            "riskScore": report.predictive_risk.overall_score,
            "summary": build_signal_digest(report),
        }
    except HTTPException:
        raise
    except Exception as e:
        log.error("Digest failed for %s: %s", user_id, e)
        raise HTTPException(status_code=500, detail=str(e))
