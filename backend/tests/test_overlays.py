"""
Tests for overlay window resolution, the per-playback tracker and pixel placement.
"""

import pytest
from hypothesis import given, settings as hyp_settings, strategies as st

from smartflow_server.flows.overlays import (
    FIXED_WINDOW_SECONDS,
    FrameRect,
    OverlayTracker,
    active_links,
    fit_frame,
    is_active,
    place_overlay,
)
from smartflow_server.schemas.entities import VideoLink


def _link(lid='1', ts=10.0, duration_ms=3000, **kw):
    return VideoLink.model_validate(
        {'id': lid, 'video_id': 'v1', 'timestamp_seconds': ts, 'duration_ms': duration_ms, 'url': 'https://x.test', **kw}
    )


class TestWindow:
    """Inclusive activation window."""

    @pytest.mark.parametrize('t', [10.0, 11.5, 13.0])
    def test_active_inside_window(self, t):
        assert is_active(_link(), t)

    @pytest.mark.parametrize('t', [9.99, 13.01, 0.0, 100.0])
    def test_inactive_outside_window(self, t):
        assert not is_active(_link(), t)

    def test_missing_duration_defaults_to_three_seconds(self):
        link = _link(duration_ms=None)
        assert link.duration_ms == 3000
        assert is_active(link, 13.0)
        assert not is_active(link, 13.01)

    def test_fixed_window_ignores_duration(self):
        link = _link(duration_ms=10000)
        assert is_active(link, 19.0)
        assert not is_active(link, 10.0 + FIXED_WINDOW_SECONDS + 0.01, fixed_window=True)
        assert is_active(link, 13.0, fixed_window=True)

    def test_zero_duration_gets_default_window(self):
        link = _link(duration_ms=0)
        assert link.duration_ms == 3000
        assert is_active(link, 12.0)
        assert is_active(link, 13.0)
        assert not is_active(link, 13.001)

    def test_active_links_sorted_by_start_then_id(self):
        links = [_link('b', ts=5), _link('a', ts=5), _link('c', ts=1, duration_ms=10000)]
        assert [l.id for l in active_links(links, 6.0)] == ['c', 'a', 'b']


class TestTracker:
    """Recompute-from-scratch behaviour across seeks."""

    def test_seek_back_reactivates(self):
        tracker = OverlayTracker([_link()])
        active, changed = tracker.update(11.0)
        assert [l.id for l in active] == ['1'] and changed
        active, changed = tracker.update(15.0)
        assert active == [] and changed
        active, changed = tracker.update(11.0)
        assert [l.id for l in active] == ['1'] and changed

    def test_repeated_tick_reports_no_change(self):
        tracker = OverlayTracker([_link()])
        tracker.update(10.5)
        _, changed = tracker.update(10.6)
        assert changed is False
        assert tracker.last_time == 10.6

    def test_first_empty_tick_counts_as_change(self):
        tracker = OverlayTracker([_link()])
        active, changed = tracker.update(0.0)
        assert active == [] and changed

    def test_hover_only_on_active_link(self):
        tracker = OverlayTracker([_link()])
        tracker.update(11.0)
        assert tracker.hover('1') is True
        assert tracker.hovered == '1'
        assert tracker.hover('1') is False
        tracker.update(20.0)
        assert tracker.hover('1') is True  # link gone, hover cleared
        assert tracker.hovered is None

    def test_closed_tracker_rejects_updates(self):
        tracker = OverlayTracker([_link()])
        tracker.close()
        assert tracker.closed
        with pytest.raises(RuntimeError):
            tracker.update(11.0)
        with pytest.raises(RuntimeError):
            tracker.hover('1')

    @hyp_settings(max_examples=100, deadline=None)
    @given(st.lists(st.floats(min_value=0, max_value=60, allow_nan=False), min_size=1, max_size=30))
    def test_any_tick_order_matches_fresh_computation(self, times):
        links = [_link('1', ts=10), _link('2', ts=12, duration_ms=8000), _link('3', ts=40, duration_ms=500)]
        tracker = OverlayTracker(links)
        for t in times:
            active, _ = tracker.update(t)
            assert active == active_links(links, t)


class TestFitFrame:
    """Contain-fit of the rendered video inside its container."""

    def test_exact_fit(self):
        assert fit_frame(1280, 720, 1920, 1080) == FrameRect(0.0, 0.0, 1280.0, 720.0)

    def test_pillarbox_for_wide_container(self):
        frame = fit_frame(1000, 400, 1600, 900)
        assert frame.height == 400
        assert frame.width == pytest.approx(400 * 16 / 9)
        assert frame.left == pytest.approx((1000 - frame.width) / 2)
        assert frame.top == 0

    def test_letterbox_for_tall_container(self):
        frame = fit_frame(400, 1000, 1600, 900)
        assert frame.width == 400
        assert frame.height == pytest.approx(225)
        assert frame.top == pytest.approx((1000 - 225) / 2)

    def test_unknown_native_size_fills_container(self):
        assert fit_frame(640, 360, None, None) == FrameRect(0.0, 0.0, 640.0, 360.0)


class TestPlacement:
    """Percentages map onto the rendered frame, not the native resolution."""

    def test_anchor_scales_with_rendered_width(self):
        link = _link(position_x=50, position_y=50, normal_image_width=80, normal_image_height=40)
        small = place_overlay(link, FrameRect(0, 0, 400, 225), native_width=1600)
        large = place_overlay(link, FrameRect(0, 0, 800, 450), native_width=1600)

        assert small.x == pytest.approx(200)
        assert large.x == pytest.approx(2 * small.x)
        assert large.y == pytest.approx(2 * small.y)
        assert small.width == pytest.approx(80 * 400 / 1600)
        assert large.width == pytest.approx(2 * small.width)
        assert large.height == pytest.approx(2 * small.height)

    def test_frame_offset_is_added(self):
        link = _link(position_x=0, position_y=10)
        placed = place_overlay(link, FrameRect(left=50, top=20, width=300, height=200), native_width=300)
        assert placed.x == 50
        assert placed.y == pytest.approx(40)

    def test_default_position_and_image_size(self):
        link = _link()
        assert (link.position_x, link.position_y) == (20, 20)
        placed = place_overlay(link, FrameRect(0, 0, 500, 500), native_width=500)
        assert placed.x == pytest.approx(100)
        assert (placed.width, placed.height) == (100, 100)

    def test_zero_position_is_kept(self):
        link = _link(position_x=0, position_y=0)
        placed = place_overlay(link, FrameRect(0, 0, 500, 500), native_width=500)
        assert (placed.x, placed.y) == (0, 0)

    def test_hover_state_swaps_image_and_size(self):
        link = _link(
            normal_state_image='n.png',
            hover_state_image='h.png',
            normal_image_width=50,
            normal_image_height=50,
            hover_image_width=70,
        )
        frame = FrameRect(0, 0, 100, 100)
        normal = place_overlay(link, frame, native_width=100)
        hovered = place_overlay(link, frame, native_width=100, hovered=True)
        assert normal.image_url == 'n.png'
        assert hovered.image_url == 'h.png'
        assert (hovered.width, hovered.height) == (70, 50)
        assert hovered.hovered is True

    def test_hover_without_hover_image_keeps_normal(self):
        link = _link(normal_state_image='n.png')
        placed = place_overlay(link, FrameRect(0, 0, 100, 100), native_width=100, hovered=True)
        assert placed.image_url == 'n.png'
        assert (placed.width, placed.height) == (100, 100)
