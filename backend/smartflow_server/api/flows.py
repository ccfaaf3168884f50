from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from smartflow_server.core.api_key import require_shared_api_key
from smartflow_server.core.dependencies import EntityStoreDep
from smartflow_server.flows.combinations import find_ambiguous_combinations, resolve_solution
from smartflow_server.flows.graph import build_flow_graph, dangling_destinations
from smartflow_server.flows.loader import FlowBundle, FlowLoadError, load_flow
from smartflow_server.flows.overlays import active_links, fit_frame, place_overlay
from smartflow_server.store.client import EntityStore

router = APIRouter(prefix='/flows', tags=['flows'], dependencies=[Depends(require_shared_api_key)])


async def load_bundle_or_502(store: EntityStore, session_id: str) -> FlowBundle:
    try:
        return await load_flow(store, session_id)
    except FlowLoadError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


class ResolveRequest(BaseModel):
    answer_ids: List[str] = Field(default_factory=list)


class OverlayResponse(BaseModel):
    video_id: str
    t: float
    frame: Dict[str, float]
    overlays: List[Dict[str, Any]]


@router.get('/{session_id}/graph')
async def flow_graph(session_id: str, store: EntityStoreDep):
    bundle = await load_bundle_or_502(store, session_id)
    return build_flow_graph(bundle.videos, bundle.questions).to_dict()


@router.get('/{session_id}/validation')
async def flow_validation(session_id: str, store: EntityStoreDep):
    """Authoring-time data checks: ambiguous combinations and dangling answers."""
    bundle = await load_bundle_or_502(store, session_id)
    ambiguous = find_ambiguous_combinations(bundle.combinations)
    dangling = dangling_destinations(bundle.videos, bundle.questions)
    return {
        'session_id': session_id,
        'ok': not ambiguous and not dangling,
        'ambiguous_combinations': ambiguous,
        'dangling_destinations': dangling,
    }


@router.get('/{session_id}/videos/{video_id}/overlays', response_model=OverlayResponse)
async def video_overlays(
    session_id: str,
    video_id: str,
    store: EntityStoreDep,
    t: float = Query(..., ge=0),
    container_width: float = Query(640.0, gt=0),
    container_height: float = Query(360.0, gt=0),
    hovered: Optional[str] = Query(None),
    fixed_window: bool = Query(False),
):
    bundle = await load_bundle_or_502(store, session_id)
    video = bundle.video(video_id)
    if video is None:
        raise HTTPException(status_code=404, detail=f'Video {video_id} not found in session {session_id}')
    frame = fit_frame(container_width, container_height, video.width, video.height)
    native_width = video.width or frame.width
    placements = [
        place_overlay(link, frame, native_width, hovered=(link.id == hovered)).to_dict()
        for link in active_links(bundle.links_for(video_id), t, fixed_window=fixed_window)
    ]
    return OverlayResponse(
        video_id=video_id,
        t=t,
        frame={'left': frame.left, 'top': frame.top, 'width': frame.width, 'height': frame.height},
        overlays=placements,
    )


@router.post('/{session_id}/resolve')
async def resolve_answers(session_id: str, payload: ResolveRequest, store: EntityStoreDep):
    bundle = await load_bundle_or_502(store, session_id)
    return resolve_solution(payload.answer_ids, bundle.combinations, bundle.solutions).to_dict()
