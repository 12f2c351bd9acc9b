"""Tests for layer placement, masking and alpha compositing."""

import numpy as np
import pytest
from PIL import Image

from splice.compositor import (
    alpha_blend,
    blank_frame,
    build_mask_alpha,
    composite_frame,
    place_content,
    to_rgba_image,
)
from splice.model import Mask
from splice.resolver import Placement


def _solid(w, h, rgba=(255, 0, 0, 255)):
    arr = np.zeros((h, w, 4), dtype=np.uint8)
    arr[:, :] = rgba
    return arr


class TestToRgbaImage:
    def test_rgb_array(self):
        img = to_rgba_image(np.zeros((4, 6, 3), dtype=np.uint8))
        assert img.mode == "RGBA"
        assert img.size == (6, 4)

    def test_pil_image_passthrough(self):
        img = to_rgba_image(Image.new("RGB", (3, 2), (1, 2, 3)))
        assert img.getpixel((0, 0)) == (1, 2, 3, 255)

    def test_float_array_clipped(self):
        img = to_rgba_image(np.full((2, 2, 4), 300.0))
        assert img.getpixel((0, 0)) == (255, 255, 255, 255)

    def test_bad_shape_raises(self):
        with pytest.raises(ValueError, match="Expected"):
            to_rgba_image(np.zeros((2, 2, 5), dtype=np.uint8))


class TestBuildMaskAlpha:
    def test_full_rectangle_is_opaque(self):
        alpha = np.array(build_mask_alpha(Mask(), (20, 10)))
        assert alpha.shape == (10, 20)
        assert alpha.min() == 255

    def test_ellipse_clears_corners(self):
        alpha = np.array(build_mask_alpha(Mask(shape="ellipse"), (40, 40)))
        assert alpha[20, 20] == 255
        assert alpha[0, 0] == 0

    def test_invert(self):
        alpha = np.array(build_mask_alpha(Mask(shape="ellipse", invert=True), (40, 40)))
        assert alpha[20, 20] == 0
        assert alpha[0, 0] == 255

    def test_half_width_rectangle(self):
        mask = Mask(center_x=0.25, width=0.5)
        alpha = np.array(build_mask_alpha(mask, (40, 10)))
        assert alpha[5, 5] == 255
        assert alpha[5, 35] == 0

    def test_feather_softens_edge(self):
        mask = Mask(width=0.5, feather=4.0)
        alpha = np.array(build_mask_alpha(mask, (40, 40)))
        assert 0 < alpha[20, 10] < 255
        assert alpha[20, 20] > alpha[20, 10]


class TestPlaceContent:
    def test_resizes_to_box(self):
        patch, x, y = place_content(_solid(4, 4), Placement(5, 6, 10, 8, 0.0))
        assert patch.shape == (8, 10, 4)
        assert (x, y) == (5, 6)

    def test_empty_box_is_none(self):
        assert place_content(_solid(4, 4), Placement(0, 0, 0.2, 10, 0.0)) is None

    def test_quarter_turn_keeps_center(self):
        patch, x, y = place_content(_solid(20, 10), Placement(5, 5, 20, 10, 90.0))
        assert patch.shape == (20, 10, 4)
        assert (x, y) == (10, 0)

    def test_mask_cuts_alpha(self):
        placement = Placement(0, 0, 20, 20, 0.0, Mask(shape="ellipse"))
        patch, _, _ = place_content(_solid(20, 20), placement)
        assert patch[10, 10, 3] == 255
        assert patch[0, 0, 3] == 0


class TestAlphaBlend:
    def test_opaque_overwrites(self):
        frame = blank_frame((4, 4))
        alpha_blend(frame, _solid(2, 2), 1, 1)
        assert tuple(frame[1, 1]) == (255, 0, 0)
        assert tuple(frame[0, 0]) == (0, 0, 0)

    def test_partial_alpha(self):
        frame = blank_frame((2, 2))
        alpha_blend(frame, _solid(2, 2, (255, 255, 255, 128)), 0, 0)
        assert tuple(frame[0, 0]) == (128, 128, 128)

    def test_crops_negative_offset(self):
        frame = blank_frame((20, 20))
        alpha_blend(frame, _solid(10, 10), -5, -5)
        assert tuple(frame[4, 4]) == (255, 0, 0)
        assert tuple(frame[5, 5]) == (0, 0, 0)

    def test_fully_outside_is_noop(self):
        frame = blank_frame((4, 4))
        alpha_blend(frame, _solid(2, 2), 10, 10)
        assert frame.max() == 0


class TestCompositeFrame:
    def test_no_layers_is_black(self):
        frame = composite_frame([], (8, 6))
        assert frame.shape == (6, 8, 3)
        assert frame.dtype == np.uint8
        assert frame.max() == 0

    def test_later_layer_on_top(self):
        full = Placement(0, 0, 8, 8, 0.0)
        layers = [
            (_solid(8, 8, (255, 0, 0, 255)), full),
            (_solid(8, 8, (0, 0, 255, 255)), full),
        ]
        frame = composite_frame(layers, (8, 8))
        assert tuple(frame[4, 4]) == (0, 0, 255)

    def test_deterministic(self):
        placement = Placement(1.5, 2.25, 30, 20, 17.0, Mask(shape="ellipse", feather=2.0))
        layers = [(_solid(16, 9, (10, 200, 30, 200)), placement)]
        a = composite_frame(layers, (40, 30))
        b = composite_frame(layers, (40, 30))
        assert np.array_equal(a, b)
