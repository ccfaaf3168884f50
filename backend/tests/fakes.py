"""
In-memory entity store used by the test suite.

Implements the same async surface as ``RestEntityStore`` over plain dicts so
loader, analytics and API tests run without a network. Tables listed in
``fail_tables`` raise ``EntityStoreError`` to exercise failure paths.
"""

from __future__ import annotations

import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from smartflow_server.store.client import EntityStoreError, Order
from smartflow_server.store.http import ConnectivityProbe


class MemoryEntityStore:
    def __init__(self, tables: Mapping[str, List[Dict[str, Any]]] | None = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {k: list(v) for k, v in (tables or {}).items()}
        self.fail_tables: set[str] = set()
        self.calls: List[tuple[str, str]] = []
        self.closed = False
        self.ready = True
        self._ids = itertools.count(1000)
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _check(self, verb: str, table: str) -> None:
        self.calls.append((verb, table))
        if table in self.fail_tables:
            raise EntityStoreError(f"{table}: store responded 500", table=table, status_code=500)

    @staticmethod
    def _sorted(rows: List[Dict[str, Any]], order: Order | Sequence[Order] | None) -> List[Dict[str, Any]]:
        if order is None:
            return rows
        orders = [order] if isinstance(order, Order) else list(order)
        for o in reversed(orders):
            present = [r for r in rows if r.get(o.column) is not None]
            missing = [r for r in rows if r.get(o.column) is None]
            present.sort(key=lambda r: r[o.column], reverse=not o.ascending)
            rows = present + missing
        return rows

    async def fetch(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        order: Order | Sequence[Order] | None = None,
        *,
        select: str = "*",
    ) -> List[Dict[str, Any]]:
        self._check("fetch", table)
        rows = [
            r for r in self.tables.get(table, [])
            if all(r.get(col) == value for col, value in (filters or {}).items())
        ]
        return copy.deepcopy(self._sorted(rows, order))

    async def fetch_by_id(self, table: str, row_id: Any, *, select: str = "*") -> Dict[str, Any] | None:
        self._check("fetch_by_id", table)
        for row in self.tables.get(table, []):
            if str(row.get("id")) == str(row_id):
                return copy.deepcopy(row)
        return None

    async def fetch_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        order: Order | Sequence[Order] | None = None,
        *,
        select: str = "*",
    ) -> List[Dict[str, Any]]:
        self._check("fetch_in", table)
        wanted = {str(v) for v in values}
        rows = [r for r in self.tables.get(table, []) if str(r.get(column)) in wanted]
        return copy.deepcopy(self._sorted(rows, order))

    async def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        self._check("insert", table)
        self._clock += timedelta(minutes=1)
        stored = {"id": str(next(self._ids)), "created_at": self._clock.isoformat(), **dict(row)}
        self.tables.setdefault(table, []).append(stored)
        return copy.deepcopy(stored)

    async def check_ready(self) -> ConnectivityProbe:
        if not self.ready:
            return ConnectivityProbe(False, "network-error", None, "connection refused", 1.0)
        return ConnectivityProbe(True, "ready", 200, None, 1.0)

    async def close(self) -> None:
        self.closed = True


INTERACTIVE_SESSION = "s-int"
SELECTION_SESSION = "s-sel"
COMPANY = "co-1"


def interactive_tables() -> Dict[str, List[Dict[str, Any]]]:
    """Four videos; v2 answers can loop back to v1."""
    return {
        "sessions": [
            {"id": INTERACTIVE_SESSION, "title": "Product tour", "session_type": "interactive",
             "associated_with": COMPANY, "total_views": None},
        ],
        "users": [
            {"id": "u-1", "email": "owner@example.com", "first_name": "Robin", "role": "admin"},
        ],
        "videos": [
            {"id": "v2", "title": "Pricing", "session_id": INTERACTIVE_SESSION, "order_index": 1,
             "is_main": False, "width": 1920, "height": 1080},
            {"id": "v1", "title": "Intro", "session_id": INTERACTIVE_SESSION, "order_index": 0,
             "is_main": True, "width": 1920, "height": 1080},
            {"id": "v3", "title": "Demo", "session_id": INTERACTIVE_SESSION, "order_index": 2,
             "is_main": False, "freezeAtEnd": True},
            {"id": "v4", "title": "Outro", "session_id": INTERACTIVE_SESSION, "order_index": 3},
        ],
        "questions": [
            {"id": "q1", "video_id": "v1", "question_text": "What brings you here?"},
            {"id": "q2", "video_id": "v2", "question_text": "Want to see it?"},
        ],
        "answers": [
            {"id": "a1", "question_id": "q1", "answer_text": "Pricing", "destination_video_id": "v2"},
            {"id": "a2", "question_id": "q1", "answer_text": "Demo", "destination_video_id": "v3"},
            {"id": "a3", "question_id": "q2", "answer_text": "Yes", "destination_video_id": "v3"},
            {"id": "a4", "question_id": "q2", "answer_text": "Start over", "destination_video_id": "v1"},
        ],
        "video_links": [
            {"id": 1, "video_id": "v1", "timestamp_seconds": 10, "duration_ms": 3000, "label": "Site",
             "link_type": "url", "url": "https://example.com", "position_x": 50, "position_y": 50},
            {"id": 2, "video_id": "v1", "timestamp_seconds": 12, "duration_ms": None, "label": "Jump to demo",
             "destination_video_id": "v3"},
            {"id": 3, "video_id": "v2", "timestamp_seconds": 0, "duration_ms": 5000, "label": "Contact us",
             "link_type": "form", "form_data": {"title": "Contact", "fields": ["email"]}},
        ],
        "solutions": [
            {"id": "sol-1", "session_id": INTERACTIVE_SESSION, "category_id": 3, "title": "Book a call",
             "link_url": "https://example.com/book"},
        ],
        "answer_combinations": [],
        "modules": [],
        "watch_time": [],
        "leads": [],
    }


def selection_tables() -> Dict[str, List[Dict[str, Any]]]:
    """Two questions, three declared combinations, one pointing at a missing solution."""
    return {
        "sessions": [
            {"id": SELECTION_SESSION, "title": "Plan finder", "session_type": "selection",
             "associated_with": COMPANY},
        ],
        "videos": [
            {"id": "w1", "title": "Team size", "session_id": SELECTION_SESSION, "order_index": 0},
            {"id": "w2", "title": "Budget", "session_id": SELECTION_SESSION, "order_index": 1},
            {"id": "w3", "title": "Wrap up", "session_id": SELECTION_SESSION, "order_index": 2},
        ],
        "questions": [
            {"id": "sq1", "video_id": "w1", "question_text": "How big is your team?"},
            {"id": "sq2", "video_id": "w2", "question_text": "What is your budget?"},
        ],
        "answers": [
            {"id": "b1", "question_id": "sq1", "answer_text": "Small"},
            {"id": "b2", "question_id": "sq1", "answer_text": "Large"},
            {"id": "b3", "question_id": "sq2", "answer_text": "Low"},
            {"id": "b4", "question_id": "sq2", "answer_text": "High"},
        ],
        "video_links": [],
        "solutions": [
            {"id": "ss1", "session_id": SELECTION_SESSION, "category_id": 1, "title": "Starter",
             "form_data": {"fields": ["name"]}},
            {"id": "ss2", "session_id": SELECTION_SESSION, "category_id": 2, "title": "Pro",
             "emailTarget": "sales@example.com", "emailContent": "Hi"},
        ],
        "answer_combinations": [
            {"id": "c1", "session_id": SELECTION_SESSION, "solution_id": "ss1",
             "combination_answers": [{"answer_id": "b1"}, {"answer_id": "b3"}]},
            {"id": "c2", "session_id": SELECTION_SESSION, "solution_id": "ss2",
             "combination_answers": [{"answer_id": "b4"}, {"answer_id": "b1"}]},
            {"id": "c3", "session_id": SELECTION_SESSION, "solution_id": "gone",
             "combination_answers": [{"answer_id": "b2"}, {"answer_id": "b3"}]},
        ],
        "modules": [],
        "watch_time": [],
        "leads": [],
    }


def seeded_store() -> MemoryEntityStore:
    tables = interactive_tables()
    for name, rows in selection_tables().items():
        tables.setdefault(name, []).extend(rows)
    return MemoryEntityStore(tables)
