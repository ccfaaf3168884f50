from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from smartflow_server.core.api_key import enforce_shared_key_websocket
from smartflow_server.core.dependencies import get_entity_store
from smartflow_server.flows.loader import FlowLoadError, load_flow
from smartflow_server.flows.overlays import FrameRect, OverlayTracker, fit_frame, place_overlay

_log = logging.getLogger(__name__)

router = APIRouter()

WS_CLOSE_LOAD_FAILED = 4502
WS_CLOSE_NOT_FOUND = 4404


class PlaybackConnections:
    """Open playback sockets and the overlay tracker each one owns."""

    def __init__(self):
        self.active: Dict[WebSocket, OverlayTracker] = {}

    async def connect(self, ws: WebSocket, tracker: OverlayTracker):
        self.active[ws] = tracker

    def remove(self, ws: WebSocket):
        tracker = self.active.pop(ws, None)
        if tracker is not None:
            tracker.close()

    def __len__(self) -> int:
        return len(self.active)


playback_connections = PlaybackConnections()


def _overlay_message(tracker: OverlayTracker, video_id: str, t: float, links: List[Any], frame: FrameRect, native_width: float | None) -> Dict[str, Any]:
    return {
        'type': 'overlays.active',
        'video_id': video_id,
        't': t,
        'overlays': [
            place_overlay(link, frame, native_width, hovered=(link.id == tracker.hovered)).to_dict()
            for link in links
        ],
    }


@router.websocket('/ws/playback/{session_id}/{video_id}')
async def playback_ws(ws: WebSocket, session_id: str, video_id: str):
    """Stream the active overlay set for one video as the client reports playback time.

    Frames from the client look like ``{"t": 12.5, "hovered": "7",
    "container_width": 800, "container_height": 450}``. A message is sent
    back only when the active set, hover state or container size changes.
    """
    if not await enforce_shared_key_websocket(ws):
        return
    await ws.accept()
    try:
        bundle = await load_flow(get_entity_store(), session_id)
    except (FlowLoadError, HTTPException) as exc:
        detail = exc.detail if isinstance(exc, HTTPException) else str(exc)
        await ws.send_text(json.dumps({'type': 'error', 'detail': detail}))
        await ws.close(code=WS_CLOSE_LOAD_FAILED)
        return
    video = bundle.video(video_id)
    if video is None:
        await ws.send_text(json.dumps({'type': 'error', 'detail': f'Video {video_id} not found'}))
        await ws.close(code=WS_CLOSE_NOT_FOUND)
        return

    tracker = OverlayTracker(bundle.links_for(video_id))
    await playback_connections.connect(ws, tracker)
    size = (640.0, 360.0)
    sent_size = None
    try:
        while True:
            raw = await ws.receive_text()
            try:
                frame_msg = json.loads(raw)
                t = float(frame_msg['t'])
                size = (
                    float(frame_msg.get('container_width', size[0])),
                    float(frame_msg.get('container_height', size[1])),
                )
            except (ValueError, KeyError, TypeError, AttributeError):
                await ws.send_text(json.dumps({'type': 'error', 'detail': 'expected {"t": <seconds>}'}))
                continue
            links, changed = tracker.update(t)
            hovered = frame_msg.get('hovered')
            hover_changed = tracker.hover(str(hovered) if hovered is not None else None)
            if not (changed or hover_changed or size != sent_size):
                continue
            sent_size = size
            frame = fit_frame(size[0], size[1], video.width, video.height)
            native_width = video.width or frame.width
            await ws.send_text(json.dumps(_overlay_message(tracker, video_id, t, links, frame, native_width)))
    except WebSocketDisconnect:
        pass
    finally:
        playback_connections.remove(ws)
        _log.debug('playback socket closed session=%s video=%s', session_id, video_id)
