"""
Shared database utilities.
Single source of truth for PostgreSQL connection-string resolution and
read-only row fetching.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import psycopg2
from dotenv import load_dotenv
from psycopg2.extras import RealDictCursor

load_dotenv()

log = logging.getLogger("db_utils")

DEFAULT_FETCH_LIMIT = 1000
DISCOVERY_FETCH_LIMIT = 50


def get_conn_str() -> str:
    """Return PostgreSQL connection string.

    Checks POSTGRES_CONNECTION_STRING first, falls back to DATABASE_URL
    (Heroku standard).  Normalises postgres:// to postgresql:// for psycopg2.
    """
    url = (os.getenv("POSTGRES_CONNECTION_STRING") or os.getenv("DATABASE_URL") or "").strip()
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def get_fetch_limit() -> int:
    """Per-collection row cap (SIGNAL_FETCH_LIMIT, default 1000)."""
    raw = os.getenv("SIGNAL_FETCH_LIMIT", "")
    try:
        limit = int(raw)
    except ValueError:
        return DEFAULT_FETCH_LIMIT
    return limit if limit > 0 else DEFAULT_FETCH_LIMIT


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def fetch_all(query: str, params: Optional[tuple] = None,
              conn_str: Optional[str] = None) -> List[Dict[str, Any]]:
    cs = conn_str or get_conn_str()
    if not cs:
        raise RuntimeError("POSTGRES_CONNECTION_STRING is not set")
    conn = psycopg2.connect(cs)
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params or ())
            rows = cur.fetchall()
            return [{k: _to_jsonable(v) for k, v in dict(row).items()} for row in rows]
    finally:
        conn.close()


def fetch_one(query: str, params: Optional[tuple] = None,
              conn_str: Optional[str] = None) -> Optional[Dict[str, Any]]:
    rows = fetch_all(query, params=params, conn_str=conn_str)
    return rows[0] if rows else None
