"""Viewer-side navigation through a loaded flow.

One navigator is owned by one viewing session. It holds the current video,
back history, answers picked so far, and the journey that gets attached to a
lead when the viewer submits a form.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from smartflow_server.flows.combinations import Resolution, resolve_solution
from smartflow_server.flows.graph import select_root
from smartflow_server.flows.loader import FlowBundle
from smartflow_server.schemas.entities import (
    FlowType,
    JourneyStep,
    LinkType,
    Question,
    Solution,
    UserJourney,
    Video,
)

_log = logging.getLogger(__name__)


class PlaybackState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"
    ASKING = "asking"
    FROZEN = "frozen"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class LinkOutcome:
    link_type: LinkType
    url: Optional[str] = None
    video: Optional[Video] = None
    form_data: Optional[Dict[str, Any]] = None


class FlowNavigator:
    def __init__(self, bundle: FlowBundle, *, clock: Callable[[], float] = time.time):
        self.bundle = bundle
        self._clock = clock
        self.current_video: Optional[Video] = None
        self.history: List[Video] = []
        self.selected_answers: Dict[str, str] = {}
        self.solution: Optional[Solution] = None
        self.resolution: Optional[Resolution] = None
        self.steps: List[JourneyStep] = []
        self.state = PlaybackState.IDLE

    @property
    def flow_type(self) -> FlowType:
        return self.bundle.session.session_type

    # ----------------------------------------------------------------- helpers
    def _record(self, action: str, *, element_id: str | None = None, element_label: str | None = None) -> None:
        video = self.current_video
        self.steps.append(
            JourneyStep(
                video_id=video.id if video else None,
                video_title=video.title if video else "",
                action=action,
                element_id=element_id,
                element_label=element_label,
                timestamp=self._clock(),
            )
        )

    def _play(self, video: Video, *, push_history: bool = True) -> Video:
        if push_history and self.current_video is not None:
            self.history.append(self.current_video)
        self.current_video = video
        self.state = PlaybackState.PLAYING
        self._record("play")
        return video

    def _next_by_order(self, *, with_question: bool = False) -> Video | None:
        videos = self.bundle.videos
        current = self.current_video
        idx = next((i for i, v in enumerate(videos) if current and v.id == current.id), -1)
        for video in videos[idx + 1:]:
            if not with_question or self.bundle.questions_for(video.id):
                return video
        return None

    def _finish(self) -> PlaybackState:
        if self.flow_type is FlowType.SELECTION:
            if self.all_answered():
                self._resolve()
        elif self.solution is None:
            self.solution = self.bundle.solutions[0] if self.bundle.solutions else None
        self.state = PlaybackState.FINISHED
        self._record("finish", element_id=self.solution.id if self.solution else None)
        return self.state

    def _resolve(self) -> Resolution:
        ordered = [self.selected_answers[q.id] for q in self.bundle.questions]
        self.resolution = resolve_solution(ordered, self.bundle.combinations, self.bundle.solutions)
        self.solution = self.resolution.solution
        return self.resolution

    def _require(self, *states: PlaybackState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise RuntimeError(f"navigator is {self.state.value}; expected one of: {allowed}")

    # -------------------------------------------------------------- queries
    def pending_questions(self) -> List[Question]:
        if self.current_video is None:
            return []
        questions = self.bundle.questions_for(self.current_video.id)
        if self.flow_type is FlowType.SELECTION:
            return [q for q in questions if q.id not in self.selected_answers]
        return questions

    def all_answered(self) -> bool:
        playable = {v.id for v in self.bundle.videos}
        return all(
            q.id in self.selected_answers for q in self.bundle.questions if q.video_id in playable
        )

    # ---------------------------------------------------------- transitions
    def start(self) -> Video:
        root = select_root(self.bundle.videos)
        if root is None:
            raise RuntimeError(f"session {self.bundle.session_id} has no videos")
        return self._play(root, push_history=False)

    def restart(self) -> Video:
        self.history.clear()
        self.selected_answers.clear()
        self.solution = None
        self.resolution = None
        self.current_video = None
        self._record("restart")
        return self.start()

    def on_video_end(self) -> PlaybackState:
        self._require(PlaybackState.PLAYING)
        video = self.current_video
        if video is None:
            raise RuntimeError("no video is playing")
        if self.pending_questions():
            self.state = PlaybackState.ASKING
            return self.state
        destination = self.bundle.video(video.destination_video_id)
        if destination is not None:
            self._play(destination)
            return self.state
        if video.freeze_at_end:
            self.state = PlaybackState.FROZEN
            return self.state
        nxt = self._next_by_order()
        if nxt is not None:
            self._play(nxt)
            return self.state
        return self._finish()

    def resume(self) -> PlaybackState:
        """Leave a frozen frame and continue as if the video had no freeze."""
        self._require(PlaybackState.FROZEN)
        nxt = self._next_by_order()
        if nxt is not None:
            self._play(nxt)
            return self.state
        return self._finish()

    def select_answer(self, answer_id: str) -> PlaybackState:
        self._require(PlaybackState.ASKING)
        pending = {q.id: q for q in self.pending_questions()}
        found = self.bundle.answer(answer_id)
        if found is None or found[0].id not in pending:
            raise ValueError(f"answer {answer_id} does not belong to a pending question")
        question, answer = found
        self.selected_answers[question.id] = answer.id
        self._record("answer", element_id=answer.id, element_label=answer.answer_text)

        if self.flow_type is FlowType.SELECTION:
            return self._advance_selection()

        destination = self.bundle.video(answer.destination_video_id)
        if destination is not None:
            self._play(destination)
            return self.state
        return self._finish()

    def _advance_selection(self) -> PlaybackState:
        if self.all_answered():
            resolution = self._resolve()
            if not resolution.ok:
                _log.info("session %s: %s", self.bundle.session_id, resolution.message)
            self.state = PlaybackState.FINISHED
            self._record("finish", element_id=self.solution.id if self.solution else None)
            return self.state
        if self.pending_questions():
            return self.state
        nxt = self._next_by_order(with_question=True)
        if nxt is not None:
            self._play(nxt)
            return self.state
        return self._finish()

    def click_link(self, link_id: str) -> LinkOutcome:
        if self.current_video is None:
            raise RuntimeError("no video is playing")
        link = next((l for l in self.bundle.links_for(self.current_video.id) if l.id == str(link_id)), None)
        if link is None:
            raise ValueError(f"link {link_id} does not belong to video {self.current_video.id}")
        self._record("link", element_id=link.id, element_label=link.label)
        if link.link_type is LinkType.VIDEO:
            destination = self.bundle.video(link.destination_video_id)
            if destination is None:
                _log.debug("link %s points at unknown video %s", link.id, link.destination_video_id)
                return LinkOutcome(LinkType.VIDEO)
            self._play(destination)
            return LinkOutcome(LinkType.VIDEO, video=destination)
        if link.link_type is LinkType.FORM:
            return LinkOutcome(LinkType.FORM, form_data=link.form_data or {})
        return LinkOutcome(LinkType.URL, url=link.url)

    def back(self) -> Video | None:
        if not self.history:
            return None
        previous = self.history.pop()
        if self.flow_type is FlowType.SELECTION:
            for question in self.bundle.questions_for(previous.id):
                self.selected_answers.pop(question.id, None)
            self.solution = None
            self.resolution = None
        self.current_video = previous
        self.state = PlaybackState.PLAYING
        self._record("back")
        return previous

    # -------------------------------------------------------------- journey
    @property
    def journey(self) -> UserJourney:
        return UserJourney(session_id=self.bundle.session_id, steps=list(self.steps))

    def journey_summary(self) -> str:
        return summarize_journey(self.steps)


def summarize_journey(steps: List[JourneyStep]) -> str:
    """One-line readable path, e.g. ``Intro > answered "Yes" > Pricing``."""
    parts: List[str] = []
    for step in steps:
        if step.action == "play":
            parts.append(step.video_title or f"video {step.video_id}")
        elif step.action == "answer":
            parts.append(f'answered "{step.element_label or step.element_id}"')
        elif step.action == "link":
            parts.append(f'clicked "{step.element_label or step.element_id}"')
        elif step.action == "back":
            parts.append("back")
        elif step.action == "finish":
            parts.append("finished")
    return " > ".join(parts)
