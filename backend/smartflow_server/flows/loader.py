"""Load everything one viewing session needs from the entity store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from smartflow_server.schemas.entities import (
    Answer,
    AnswerCombination,
    FlowSession,
    MalformedRowError,
    Module,
    Question,
    Solution,
    Video,
    VideoLink,
    index_by_id,
    parse_row,
    parse_rows,
)
from smartflow_server.store.client import EntityStore, EntityStoreError, Order

_log = logging.getLogger(__name__)

NO_VIDEOS_MESSAGE = "No videos found for this session"

BY_ORDER = Order("order_index")


class FlowLoadError(RuntimeError):
    """A session could not be loaded; wraps store and row errors."""

    def __init__(self, message: str, *, session_id: str | None = None):
        super().__init__(message)
        self.session_id = session_id


@dataclass
class FlowBundle:
    session: FlowSession
    videos: List[Video] = field(default_factory=list)
    navigation_video: Optional[Video] = None
    questions: List[Question] = field(default_factory=list)
    links_by_video: Dict[str, List[VideoLink]] = field(default_factory=dict)
    solutions: List[Solution] = field(default_factory=list)
    combinations: List[AnswerCombination] = field(default_factory=list)
    modules: List[Module] = field(default_factory=list)

    @property
    def session_id(self) -> str:
        return self.session.id

    def video(self, video_id: str | None) -> Video | None:
        if not video_id:
            return None
        for video in self.videos:
            if video.id == video_id:
                return video
        if self.navigation_video and self.navigation_video.id == video_id:
            return self.navigation_video
        return None

    def questions_for(self, video_id: str) -> List[Question]:
        return [q for q in self.questions if q.video_id == video_id]

    def links_for(self, video_id: str) -> List[VideoLink]:
        return list(self.links_by_video.get(video_id, []))

    def answer(self, answer_id: str) -> tuple[Question, Answer] | None:
        for question in self.questions:
            for answer in question.answers:
                if answer.id == answer_id:
                    return question, answer
        return None

    def solution(self, solution_id: str | None) -> Solution | None:
        if not solution_id:
            return None
        return index_by_id(self.solutions).get(solution_id)


async def _answers_for(store: EntityStore, question_id: str) -> List[Answer]:
    rows = await store.fetch("answers", {"question_id": question_id})
    return parse_rows(Answer, rows, table="answers")


async def _questions(store: EntityStore, video_ids: List[str], videos_by_id: Dict[str, Video]) -> List[Question]:
    rows = await store.fetch_in("questions", "video_id", video_ids)
    # embedded answers, when the store returns them, are replaced by the per-question fetch
    questions = parse_rows(Question, [{**r, "answers": None} for r in rows], table="questions")
    answer_lists = await asyncio.gather(*(_answers_for(store, q.id) for q in questions))
    merged: List[Question] = []
    for question, answers in zip(questions, answer_lists):
        attached = [
            a.model_copy(update={"destination_video": videos_by_id.get(a.destination_video_id)})
            if a.destination_video_id
            else a
            for a in answers
        ]
        merged.append(question.model_copy(update={"answers": attached}))
    return merged


async def _links(store: EntityStore, video_ids: List[str]) -> Dict[str, List[VideoLink]]:
    rows = await store.fetch_in("video_links", "video_id", video_ids, Order("timestamp_seconds"))
    grouped: Dict[str, List[VideoLink]] = {}
    for link in parse_rows(VideoLink, rows, table="video_links"):
        grouped.setdefault(link.video_id, []).append(link)
    return grouped


async def _solutions(store: EntityStore, session_id: str) -> List[Solution]:
    rows = await store.fetch("solutions", {"session_id": session_id})
    return parse_rows(Solution, rows, table="solutions")


async def _combinations(store: EntityStore, session_id: str) -> List[AnswerCombination]:
    rows = await store.fetch(
        "answer_combinations",
        {"session_id": session_id},
        select="*, combination_answers(answer_id)",
    )
    return parse_rows(AnswerCombination, rows, table="answer_combinations")


async def _modules(store: EntityStore, session_id: str) -> List[Module]:
    rows = await store.fetch("modules", {"session_id": session_id}, BY_ORDER)
    return parse_rows(Module, rows, table="modules")


async def load_flow(store: EntityStore, session_id: str) -> FlowBundle:
    """Fetch a session with its videos, questions, links, solutions and combinations.

    Independent sub-resources are requested concurrently and merged by id.
    Any store or row failure surfaces as ``FlowLoadError``.
    """
    try:
        row = await store.fetch_by_id("sessions", session_id)
        if row is None:
            raise FlowLoadError(f"Session {session_id} not found", session_id=session_id)
        session = parse_row(FlowSession, row, table="sessions")

        video_rows = await store.fetch("videos", {"session_id": session_id}, BY_ORDER)
        all_videos = sorted(parse_rows(Video, video_rows, table="videos"), key=lambda v: v.order_index)
        navigation = next((v for v in all_videos if v.is_navigation_video), None)
        videos = [v for v in all_videos if not v.is_navigation_video]
        if not videos:
            raise FlowLoadError(NO_VIDEOS_MESSAGE, session_id=session_id)

        videos_by_id = index_by_id(all_videos)
        video_ids = [v.id for v in all_videos]
        questions, links, solutions, combinations, modules = await asyncio.gather(
            _questions(store, video_ids, videos_by_id),
            _links(store, video_ids),
            _solutions(store, session_id),
            _combinations(store, session_id),
            _modules(store, session_id),
        )
    except (EntityStoreError, MalformedRowError) as exc:
        _log.warning("failed to load session %s: %s", session_id, exc)
        raise FlowLoadError(f"Failed to load session {session_id}: {exc}", session_id=session_id) from exc

    _log.debug(
        "loaded session %s videos=%d questions=%d links=%d solutions=%d combinations=%d",
        session_id,
        len(videos),
        len(questions),
        sum(len(v) for v in links.values()),
        len(solutions),
        len(combinations),
    )
    return FlowBundle(
        session=session,
        videos=videos,
        navigation_video=navigation,
        questions=questions,
        links_by_video=links,
        solutions=solutions,
        combinations=combinations,
        modules=modules,
    )
