"""Branching flow graph built from flat video/question/answer rows.

Nodes are keyed ``video-<id>``, ``question-<id>`` and ``answer-<id>``; edges
run Video -> Question -> Answer -> Video. Flows may loop back on themselves,
so traversal keeps one seen set per node kind and an answer pointing at an
already materialized video still gets its edge.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from smartflow_server.schemas.entities import Answer, Question, Video

_log = logging.getLogger(__name__)

DEFAULT_X_SPACING = 250.0
DEFAULT_Y_SPACING = 180.0
# answers sit closer together than questions under the same parent
ANSWER_SPREAD = 0.7


class NodeKind(str, Enum):
    VIDEO = "video"
    QUESTION = "question"
    ANSWER = "answer"


def node_id(kind: NodeKind, ref_id: str) -> str:
    return f"{kind.value}-{ref_id}"


def edge_id(source: str, target: str) -> str:
    return f"edge-{source}-to-{target}"


@dataclass(slots=True)
class FlowNode:
    id: str
    kind: NodeKind
    ref_id: str
    label: str
    depth: int
    x: float
    y: float
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind.value,
            "ref_id": self.ref_id,
            "label": self.label,
            "depth": self.depth,
            "position": {"x": self.x, "y": self.y},
            "data": self.data,
        }


@dataclass(frozen=True, slots=True)
class FlowEdge:
    id: str
    source: str
    target: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "source": self.source, "target": self.target}


@dataclass
class FlowGraph:
    nodes: Dict[str, FlowNode] = field(default_factory=dict)
    edges: List[FlowEdge] = field(default_factory=list)
    root_id: Optional[str] = None

    def node(self, nid: str) -> FlowNode | None:
        return self.nodes.get(nid)

    def successors(self, nid: str) -> List[FlowNode]:
        return [self.nodes[e.target] for e in self.edges if e.source == nid and e.target in self.nodes]

    def video_nodes(self) -> List[FlowNode]:
        return [n for n in self.nodes.values() if n.kind is NodeKind.VIDEO]

    def edges_between(self, source_kind: NodeKind, target_kind: NodeKind) -> List[FlowEdge]:
        out: List[FlowEdge] = []
        for edge in self.edges:
            src = self.nodes.get(edge.source)
            dst = self.nodes.get(edge.target)
            if src and dst and src.kind is source_kind and dst.kind is target_kind:
                out.append(edge)
        return out

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root_id,
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges],
        }


def select_root(videos: Sequence[Video]) -> Video | None:
    """Entry video: first ``is_main`` video, else the first one given."""
    for video in videos:
        if video.is_main:
            return video
    return videos[0] if videos else None


def _group_questions(questions: Iterable[Question]) -> Dict[str, List[Question]]:
    grouped: Dict[str, List[Question]] = {}
    for question in questions:
        grouped.setdefault(question.video_id, []).append(question)
    return grouped


class _Builder:
    def __init__(self, videos: Sequence[Video], questions: Sequence[Question], x_spacing: float, y_spacing: float):
        self.videos_by_id: Dict[str, Video] = {}
        for video in videos:
            self.videos_by_id.setdefault(video.id, video)
        self.questions_by_video = _group_questions(questions)
        self.x_spacing = x_spacing
        self.y_spacing = y_spacing
        self.graph = FlowGraph()
        self.seen_videos: Set[str] = set()
        self.seen_questions: Set[str] = set()
        self.seen_answers: Set[str] = set()
        self.queue: Deque[Tuple[Video, float, int]] = deque()

    def _add_node(self, kind: NodeKind, ref_id: str, label: str, depth: int, x: float, data: Dict[str, Any]) -> str:
        nid = node_id(kind, ref_id)
        self.graph.nodes[nid] = FlowNode(
            id=nid,
            kind=kind,
            ref_id=ref_id,
            label=label,
            depth=depth,
            x=x,
            y=depth * self.y_spacing,
            data=data,
        )
        return nid

    def _add_edge(self, source: str, target: str) -> None:
        self.graph.edges.append(FlowEdge(edge_id(source, target), source, target))

    def enqueue(self, video: Video, x: float, depth: int) -> None:
        if video.id in self.seen_videos:
            return
        self.seen_videos.add(video.id)
        self.queue.append((video, x, depth))

    def drain(self) -> None:
        while self.queue:
            video, x, depth = self.queue.popleft()
            self._expand_video(video, x, depth)

    def _expand_video(self, video: Video, x: float, depth: int) -> None:
        vid = self._add_node(NodeKind.VIDEO, video.id, video.title, depth, x, video.model_dump(mode="json"))
        owned = [q for q in self.questions_by_video.get(video.id, []) if q.id not in self.seen_questions]
        start_x = x - ((len(owned) - 1) * self.x_spacing) / 2
        for q_index, question in enumerate(owned):
            self.seen_questions.add(question.id)
            q_x = start_x + q_index * self.x_spacing
            qid = self._add_node(
                NodeKind.QUESTION,
                question.id,
                question.question_text,
                depth + 1,
                q_x,
                question.model_dump(mode="json", exclude={"answers"}),
            )
            self._add_edge(vid, qid)
            self._expand_answers(qid, question.answers, q_x, depth + 2)

    def _expand_answers(self, qid: str, answers: Sequence[Answer], q_x: float, depth: int) -> None:
        owned = [a for a in answers if a.id not in self.seen_answers]
        step = self.x_spacing * ANSWER_SPREAD
        start_x = q_x - ((len(owned) - 1) * step) / 2
        for a_index, answer in enumerate(owned):
            self.seen_answers.add(answer.id)
            a_x = start_x + a_index * step
            aid = self._add_node(
                NodeKind.ANSWER,
                answer.id,
                answer.answer_text,
                depth,
                a_x,
                answer.model_dump(mode="json", exclude={"destination_video"}),
            )
            self._add_edge(qid, aid)
            dest_id = answer.destination_video_id
            if not dest_id:
                continue
            destination = self.videos_by_id.get(dest_id)
            if destination is None:
                _log.debug("answer %s points at unknown video %s; edge omitted", answer.id, dest_id)
                continue
            self._add_edge(aid, node_id(NodeKind.VIDEO, destination.id))
            self.enqueue(destination, a_x, depth + 1)

    def rightmost_x(self) -> float:
        if not self.graph.nodes:
            return 0.0
        return max(n.x for n in self.graph.nodes.values())


def build_flow_graph(
    videos: Sequence[Video],
    questions: Sequence[Question],
    *,
    x_spacing: float = DEFAULT_X_SPACING,
    y_spacing: float = DEFAULT_Y_SPACING,
) -> FlowGraph:
    """Build the node/edge set for one session.

    Traversal is breadth-first from the root video. Videos the root never
    reaches are laid out afterwards as extra roots, in input order, to the
    right of what is already placed.
    """
    builder = _Builder(videos, questions, x_spacing, y_spacing)
    root = select_root(videos)
    if root is None:
        return builder.graph
    builder.graph.root_id = node_id(NodeKind.VIDEO, root.id)
    builder.enqueue(root, 0.0, 0)
    builder.drain()

    for video in videos:
        if video.id in builder.seen_videos:
            continue
        _log.debug("video %s unreachable from root %s; placing as extra root", video.id, root.id)
        builder.enqueue(video, builder.rightmost_x() + x_spacing, 0)
        builder.drain()

    orphaned = set(builder.questions_by_video) - set(builder.videos_by_id)
    if orphaned:
        _log.debug("questions reference %d unknown video(s): %s", len(orphaned), sorted(orphaned))
    return builder.graph


def adjacency(graph: FlowGraph) -> Dict[str, Set[str]]:
    """Video id -> ids of videos reachable through one of its answers."""
    out: Dict[str, Set[str]] = {}
    for video in graph.video_nodes():
        targets: Set[str] = set()
        for question in graph.successors(video.id):
            for answer in graph.successors(question.id):
                for nxt in graph.successors(answer.id):
                    if nxt.kind is NodeKind.VIDEO:
                        targets.add(nxt.ref_id)
        out[video.ref_id] = targets
    return out


def dangling_destinations(videos: Sequence[Video], questions: Sequence[Question]) -> List[Dict[str, str]]:
    """Answers whose ``destination_video_id`` is not one of ``videos``."""
    known = {v.id for v in videos}
    out: List[Dict[str, str]] = []
    for question in questions:
        for answer in question.answers:
            dest = answer.destination_video_id
            if dest and dest not in known:
                out.append({"answer_id": answer.id, "question_id": question.id, "destination_video_id": dest})
    return out
