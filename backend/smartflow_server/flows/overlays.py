"""Time-windowed overlay resolution and placement.

A link is active at playback time ``t`` when
``timestamp_seconds <= t <= timestamp_seconds + duration_ms / 1000``.
The active set is recomputed from scratch on every tick so that seeking in
either direction (or ticks arriving out of order) always yields the set for
the reported time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from smartflow_server.schemas.entities import DEFAULT_IMAGE_SIZE, VideoLink

_log = logging.getLogger(__name__)

FIXED_WINDOW_SECONDS = 3.0


def _window(link: VideoLink, fixed_window: bool) -> Tuple[float, float]:
    if fixed_window:
        start = float(link.timestamp_seconds)
        return start, start + FIXED_WINDOW_SECONDS
    return link.window


def is_active(link: VideoLink, t: float, *, fixed_window: bool = False) -> bool:
    start, end = _window(link, fixed_window)
    return start <= t <= end


def _sort_key(link: VideoLink) -> Tuple[float, str]:
    return float(link.timestamp_seconds), link.id


def active_links(links: Iterable[VideoLink], t: float, *, fixed_window: bool = False) -> List[VideoLink]:
    """Links whose window contains ``t``, ordered by start time then id."""
    return sorted((link for link in links if is_active(link, t, fixed_window=fixed_window)), key=_sort_key)


class OverlayTracker:
    """Per-playback view over one video's links.

    ``update`` is safe to call with any time value in any order; ``changed``
    tells the caller whether the active id set differs from the previous
    call. Once closed the tracker rejects further ticks.
    """

    def __init__(self, links: Sequence[VideoLink], *, fixed_window: bool = False):
        self._links = list(links)
        self._fixed_window = fixed_window
        self._active_ids: Optional[Tuple[str, ...]] = None
        self._hovered: Optional[str] = None
        self._closed = False
        self.last_time: Optional[float] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def hovered(self) -> Optional[str]:
        return self._hovered

    @property
    def active_ids(self) -> Tuple[str, ...]:
        return self._active_ids or ()

    def update(self, t: float) -> Tuple[List[VideoLink], bool]:
        if self._closed:
            raise RuntimeError("overlay tracker is closed")
        current = active_links(self._links, t, fixed_window=self._fixed_window)
        ids = tuple(link.id for link in current)
        changed = ids != self._active_ids
        self._active_ids = ids
        self.last_time = t
        if changed:
            _log.debug("overlays.tick t=%.3f active=%s", t, ids)
        return current, changed

    def hover(self, link_id: Optional[str]) -> bool:
        """Set the hovered link; returns True when hover state changed."""
        if self._closed:
            raise RuntimeError("overlay tracker is closed")
        if link_id is not None and link_id not in self.active_ids:
            link_id = None
        changed = link_id != self._hovered
        self._hovered = link_id
        return changed

    def close(self) -> None:
        self._closed = True
        self._links = []
        self._active_ids = None
        self._hovered = None


@dataclass(frozen=True, slots=True)
class FrameRect:
    left: float
    top: float
    width: float
    height: float


def fit_frame(
    container_width: float,
    container_height: float,
    native_width: Optional[float],
    native_height: Optional[float],
) -> FrameRect:
    """Rendered video rectangle inside a container with contain-fit scaling.

    Wider videos are letterboxed (bars top and bottom), taller ones
    pillarboxed. Without native dimensions the frame fills the container.
    """
    if container_width <= 0 or container_height <= 0:
        return FrameRect(0.0, 0.0, max(container_width, 0.0), max(container_height, 0.0))
    if not native_width or not native_height or native_width <= 0 or native_height <= 0:
        return FrameRect(0.0, 0.0, float(container_width), float(container_height))
    # aspect ratios compared cross-multiplied
    if container_width * native_height > container_height * native_width:
        height = float(container_height)
        width = height * native_width / native_height
        return FrameRect((container_width - width) / 2, 0.0, width, height)
    width = float(container_width)
    height = width * native_height / native_width
    return FrameRect(0.0, (container_height - height) / 2, width, height)


@dataclass(frozen=True, slots=True)
class OverlayPlacement:
    link_id: str
    label: str
    link_type: str
    x: float
    y: float
    width: float
    height: float
    image_url: Optional[str]
    hovered: bool = False

    def to_dict(self) -> dict:
        return {
            "link_id": self.link_id,
            "label": self.label,
            "link_type": self.link_type,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "image_url": self.image_url,
            "hovered": self.hovered,
        }


def _image_size(link: VideoLink, hovered: bool) -> Tuple[int, int]:
    normal_w = link.normal_image_width or DEFAULT_IMAGE_SIZE
    normal_h = link.normal_image_height or DEFAULT_IMAGE_SIZE
    if hovered and (link.hover_image_width or link.hover_image_height):
        return link.hover_image_width or normal_w, link.hover_image_height or normal_h
    return normal_w, normal_h


def place_overlay(
    link: VideoLink,
    frame: FrameRect,
    native_width: Optional[float],
    hovered: bool = False,
) -> OverlayPlacement:
    """Pixel anchor and image size for ``link`` inside a rendered ``frame``.

    Positions are percentages of the rendered frame, and image sizes scale
    by ``frame.width / native_width`` so overlays stay anchored while the
    player resizes.
    """
    scale = frame.width / native_width if native_width and native_width > 0 else 1.0
    width, height = _image_size(link, hovered)
    image = link.hover_state_image if hovered and link.hover_state_image else link.normal_state_image
    return OverlayPlacement(
        link_id=link.id,
        label=link.label,
        link_type=link.link_type.value,
        x=frame.left + (link.position_x / 100.0) * frame.width,
        y=frame.top + (link.position_y / 100.0) * frame.height,
        width=width * scale,
        height=height * scale,
        image_url=image,
        hovered=hovered,
    )
