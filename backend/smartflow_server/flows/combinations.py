"""Answer-combination matching for selection flows."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from smartflow_server.schemas.entities import AnswerCombination, Solution

_log = logging.getLogger(__name__)

NO_MATCH_MESSAGE = "no solution found for this answer combination"
SOLUTION_MISSING_MESSAGE = "solution not found"


def canonical_key(answer_ids: Iterable[str]) -> str:
    """Order-independent key: sorted, de-duplicated ids joined by ``,``."""
    return ",".join(sorted({str(a) for a in answer_ids}))


class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    NO_MATCH = "no_match"
    SOLUTION_MISSING = "solution_missing"


@dataclass(frozen=True, slots=True)
class Resolution:
    status: ResolutionStatus
    solution: Optional[Solution] = None
    combination_id: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is ResolutionStatus.RESOLVED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "solution": self.solution.model_dump(mode="json") if self.solution else None,
            "combination_id": self.combination_id,
            "message": self.message,
        }


def resolve_solution(
    selected_answer_ids: Iterable[str],
    combinations: Sequence[AnswerCombination],
    solutions: Sequence[Solution],
) -> Resolution:
    """Find the combination whose answer set equals the selection exactly.

    Subsets and supersets never match. When several combinations share the
    selected key the first one in ``combinations`` order wins and a warning
    is logged.
    """
    wanted = canonical_key(selected_answer_ids)
    matches = [c for c in combinations if canonical_key(c.answer_ids) == wanted]
    if not matches:
        _log.info("no combination matches answers [%s]", wanted)
        return Resolution(ResolutionStatus.NO_MATCH, message=NO_MATCH_MESSAGE)
    if len(matches) > 1:
        _log.warning(
            "answers [%s] match %d combinations %s; using %s",
            wanted,
            len(matches),
            [c.id for c in matches],
            matches[0].id,
        )
    combo = matches[0]
    by_id = {s.id: s for s in solutions}
    solution = by_id.get(combo.solution_id) if combo.solution_id else None
    if solution is None:
        _log.info("combination %s references missing solution %s", combo.id, combo.solution_id)
        return Resolution(
            ResolutionStatus.SOLUTION_MISSING,
            combination_id=combo.id,
            message=SOLUTION_MISSING_MESSAGE,
        )
    return Resolution(ResolutionStatus.RESOLVED, solution=solution, combination_id=combo.id)


def find_ambiguous_combinations(combinations: Sequence[AnswerCombination]) -> List[Dict[str, object]]:
    """Groups of combinations sharing one answer set, for authoring-time checks."""
    groups: Dict[str, List[str]] = {}
    for combo in combinations:
        groups.setdefault(canonical_key(combo.answer_ids), []).append(combo.id)
    return [
        {"key": key, "combination_ids": ids}
        for key, ids in groups.items()
        if len(ids) > 1
    ]
