"""
Read side of the legacy health-event store.

Fetches one user's outcome events, dose logs, discoveries and profile.
The four reads are independent and are issued concurrently; the caller
gets either all four collections or the first error.  Nothing is ever
written back.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, NamedTuple, Optional

from db_utils import DISCOVERY_FETCH_LIMIT, fetch_all, fetch_one, get_conn_str, get_fetch_limit

log = logging.getLogger("event_store")

OUTCOMES_SQL = """
    SELECT *
    FROM flare_entries
    WHERE user_id = %s
    ORDER BY timestamp DESC
    LIMIT %s
"""

DOSES_SQL = """
    SELECT *
    FROM medication_logs
    WHERE user_id = %s
    ORDER BY taken_at DESC
    LIMIT %s
"""

DISCOVERIES_SQL = """
    SELECT *
    FROM discoveries
    WHERE user_id = %s
    ORDER BY confidence DESC
    LIMIT %s
"""

PROFILE_SQL = """
    SELECT *
    FROM profiles
    WHERE id = %s
"""


class RawCollections(NamedTuple):
    """Unnormalised store rows for one user."""

    outcomes: List[Dict[str, Any]]
    doses: List[Dict[str, Any]]
    discoveries: List[Dict[str, Any]]
    profile: Optional[Dict[str, Any]]


class EventStore:
    def __init__(self, conn_str: Optional[str] = None, limit: Optional[int] = None):
        self.conn_str = conn_str or get_conn_str()
        self.limit = limit or get_fetch_limit()

    def fetch_user(self, user_id: str) -> RawCollections:
        if not self.conn_str:
            raise RuntimeError("POSTGRES_CONNECTION_STRING is not set")

        with ThreadPoolExecutor(max_workers=4) as executor:
            outcomes = executor.submit(
                fetch_all, OUTCOMES_SQL, (user_id, self.limit), self.conn_str)
            doses = executor.submit(
                fetch_all, DOSES_SQL, (user_id, self.limit), self.conn_str)
            discoveries = executor.submit(
                fetch_all, DISCOVERIES_SQL, (user_id, DISCOVERY_FETCH_LIMIT), self.conn_str)
            profile = executor.submit(fetch_one, PROFILE_SQL, (user_id,), self.conn_str)

            try:
                raw = RawCollections(
                    outcomes=outcomes.result(),
                    doses=doses.result(),
                    discoveries=discoveries.result(),
                    profile=profile.result(),
                )
            except Exception as e:
                log.error("Store read failed for user %s: %s", user_id, e)
                raise

        log.info(
            "   Fetched %d outcome events, %d doses, %d discoveries (profile=%s)",
            len(raw.outcomes), len(raw.doses), len(raw.discoveries),
            "yes" if raw.profile else "no",
        )
        return raw
