from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

from smartflow_server.flows.navigator import summarize_journey
from smartflow_server.schemas.entities import (
    FlowSession,
    Lead,
    UserJourney,
    WatchTimeRecord,
    parse_row,
    parse_rows,
)
from smartflow_server.store.client import EntityStore, Order

_log = logging.getLogger(__name__)

WATCH_TIME_TABLE = "watch_time"
LEADS_TABLE = "leads"


@dataclass(frozen=True, slots=True)
class WatchTimeSummary:
    session_id: str
    views: int
    total_seconds: float
    average_seconds: float
    longest_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "views": self.views,
            "total_seconds": self.total_seconds,
            "average_seconds": self.average_seconds,
            "longest_seconds": self.longest_seconds,
        }


async def record_watch_time(store: EntityStore, session_id: str, seconds: float) -> WatchTimeRecord:
    if seconds is None or not math.isfinite(seconds) or seconds < 0:
        raise ValueError(f"watch time must be a finite, non-negative number of seconds (got {seconds!r})")
    row = await store.insert(WATCH_TIME_TABLE, {"session_id": session_id, "watch_time": float(seconds)})
    _log.debug("recorded %.1fs of watch time for session %s", seconds, session_id)
    return parse_row(WatchTimeRecord, row, table=WATCH_TIME_TABLE)


def summarize_watch_time(session_id: str, records: Sequence[WatchTimeRecord]) -> WatchTimeSummary:
    times = [r.watch_time for r in records]
    total = float(sum(times))
    return WatchTimeSummary(
        session_id=session_id,
        views=len(times),
        total_seconds=total,
        average_seconds=total / len(times) if times else 0.0,
        longest_seconds=max(times) if times else 0.0,
    )


async def load_watch_time_summary(store: EntityStore, session_id: str) -> WatchTimeSummary:
    rows = await store.fetch(WATCH_TIME_TABLE, {"session_id": session_id})
    return summarize_watch_time(session_id, parse_rows(WatchTimeRecord, rows, table=WATCH_TIME_TABLE))


async def submit_lead(
    store: EntityStore,
    session: FlowSession,
    form_title: str,
    form_data: Mapping[str, Any],
    journey: Optional[UserJourney] = None,
) -> Lead:
    """Store a form submission together with the path the viewer took."""
    row: Dict[str, Any] = {
        "session_id": session.id,
        "company_id": session.associated_with,
        "form_title": form_title,
        "form_data": dict(form_data),
        "user_journey": journey.model_dump(mode="json", by_alias=True) if journey else None,
        "journey_summ": summarize_journey(journey.steps) if journey else None,
    }
    stored = await store.insert(LEADS_TABLE, row)
    lead = parse_row(Lead, stored, table=LEADS_TABLE)
    _log.info("lead captured for session %s (company=%s)", session.id, session.associated_with)
    return lead


async def list_leads(store: EntityStore, company_id: str, session_id: str | None = None) -> List[Lead]:
    filters: Dict[str, Any] = {"company_id": company_id}
    if session_id:
        filters["session_id"] = session_id
    rows = await store.fetch(LEADS_TABLE, filters, Order("created_at", ascending=False))
    return parse_rows(Lead, rows, table=LEADS_TABLE)
