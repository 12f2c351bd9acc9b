"""Tests for transform and mask resolution."""

import pytest

from splice.model import Mask, MediaSource, Timeline
from splice.resolver import (
    Placement,
    box_corners,
    fit_size,
    resolve_mask,
    resolve_placement,
    resolve_transform,
)


@pytest.fixture
def timeline_and_clip():
    timeline = Timeline()
    clip = timeline.place_clip(MediaSource("/m/a.mp4", "video", 4.0), 1, 0.0)
    return timeline, clip


class TestFitSize:
    def test_wider_than_canvas(self):
        assert fit_size(400, 100, 200, 200) == (200.0, 50.0)

    def test_taller_than_canvas(self):
        assert fit_size(100, 400, 200, 200) == (50.0, 200.0)

    def test_zero_size(self):
        assert fit_size(0, 100, 200, 200) == (0.0, 0.0)


class TestResolveTransform:
    def test_static_values_without_keyframes(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.update_clip(clip.id, x=0.25, rotation=30.0)
        tr = resolve_transform(clip, 1.0)
        assert tr.x == 0.25
        assert tr.rotation == 30.0
        assert tr.scale == 1.0

    def test_keyframes_override_static(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.add_keyframe(clip.id, "scale", 0.0, 1.0)
        timeline.add_keyframe(clip.id, "scale", 2.0, 3.0)
        assert resolve_transform(clip, 1.0).scale == pytest.approx(2.0)

    def test_two_call_sites_agree(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.add_keyframe(clip.id, "x", 0.0, -1.0, "ease-in-out")
        timeline.add_keyframe(clip.id, "x", 3.0, 1.0)
        timeline.update_clip(clip.id, mask=Mask(shape="ellipse", feather=3.0))
        timeline.add_keyframe(clip.id, "mask_width", 0.0, 0.2)
        timeline.add_keyframe(clip.id, "mask_width", 3.0, 0.8)
        for t in (0.0, 0.37, 1.5, 2.99, 3.5):
            preview = (resolve_transform(clip, t), resolve_mask(clip, t))
            export = (resolve_transform(clip, t), resolve_mask(clip, t))
            assert preview == export


class TestResolveMask:
    def test_no_mask(self, timeline_and_clip):
        _, clip = timeline_and_clip
        assert resolve_mask(clip, 0.0) is None

    def test_shape_none_is_no_mask(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.update_clip(clip.id, mask=Mask(shape="none"))
        assert resolve_mask(clip, 0.0) is None

    def test_animated_center(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.update_clip(clip.id, mask=Mask(shape="rectangle", rotation=15.0, invert=True))
        timeline.add_keyframe(clip.id, "mask_center_x", 0.0, 0.0)
        timeline.add_keyframe(clip.id, "mask_center_x", 2.0, 1.0)
        mask = resolve_mask(clip, 1.0)
        assert mask.center_x == pytest.approx(0.5)
        assert mask.rotation == 15.0
        assert mask.invert is True

    def test_feather_never_negative(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.update_clip(clip.id, mask=Mask())
        timeline.add_keyframe(clip.id, "mask_feather", 0.0, -5.0)
        assert resolve_mask(clip, 0.0).feather == 0.0


class TestResolvePlacement:
    def test_identity_fills_matching_canvas(self, timeline_and_clip):
        _, clip = timeline_and_clip
        p = resolve_placement(clip, 0.0, (1920, 1080), (1920, 1080))
        assert (p.left, p.top, p.width, p.height) == (0.0, 0.0, 1920.0, 1080.0)

    def test_letterboxed_content_is_centered(self, timeline_and_clip):
        _, clip = timeline_and_clip
        p = resolve_placement(clip, 0.0, (100, 100), (200, 100))
        assert (p.left, p.top, p.width, p.height) == (50.0, 0.0, 100.0, 100.0)

    def test_offset_in_base_units(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.update_clip(clip.id, x=0.5, y=-0.25)
        p = resolve_placement(clip, 0.0, (100, 100), (200, 100))
        assert p.left == pytest.approx(100.0)
        assert p.top == pytest.approx(-25.0)

    def test_scale_about_center(self, timeline_and_clip):
        timeline, clip = timeline_and_clip
        timeline.update_clip(clip.id, scale=0.5, scale_x=2.0)
        p = resolve_placement(clip, 0.0, (200, 100), (200, 100))
        assert (p.width, p.height) == (200.0, 50.0)
        assert p.center == (100.0, 50.0)

    def test_fill_canvas_ignores_natural_size(self, timeline_and_clip):
        _, clip = timeline_and_clip
        p = resolve_placement(clip, 0.0, (10, 10), (320, 240), fill_canvas=True)
        assert (p.width, p.height) == (320.0, 240.0)


class TestBoxCorners:
    def test_unrotated(self):
        corners = box_corners(Placement(0, 0, 10, 20, 0.0))
        assert corners == [(0, 0), (10, 0), (10, 20), (0, 20)]

    def test_rotated_quarter_turn_clockwise(self):
        corners = box_corners(Placement(0, 0, 10, 10, 90.0))
        top_left = corners[0]
        # Top-left swings to the top-right under a clockwise turn (y down).
        assert top_left[0] == pytest.approx(10.0)
        assert top_left[1] == pytest.approx(0.0)
