"""Transform and mask resolution shared by preview and export.

Given a clip and a clip-local time, these functions answer "where does
this clip draw and what shape clips it". They read nothing but their
arguments and have no side effects, so the interactive preview and the
export loop get bit-identical geometry for the same inputs.

Placement math (canvas pixels):
  base    = natural size fitted inside the canvas (components: the canvas)
  width   = base_w * scale * scale_x
  height  = base_h * scale * scale_y
  left    = (canvas_w - width) / 2 + x * base_w
  top     = (canvas_h - height) / 2 + y * base_h

x and y are offsets in units of the fitted base box, so (0, 0) centers the
clip. rotation is degrees clockwise about the box center.
"""

import math
from dataclasses import dataclass

from .keyframes import evaluate
from .model import Clip, Mask


@dataclass(frozen=True)
class Transform:
    x: float
    y: float
    scale: float
    scale_x: float
    scale_y: float
    rotation: float


@dataclass(frozen=True)
class Placement:
    """Resolved on-canvas box of one clip at one instant."""

    left: float
    top: float
    width: float
    height: float
    rotation: float
    mask: Mask | None = None

    @property
    def center(self) -> tuple[float, float]:
        return (self.left + self.width / 2, self.top + self.height / 2)


def resolve_transform(clip: Clip, local_time: float) -> Transform:
    """Evaluate each transform property, falling back to the static value."""
    kf = clip.keyframes
    return Transform(
        x=evaluate(kf.get("x"), local_time, clip.x),
        y=evaluate(kf.get("y"), local_time, clip.y),
        scale=evaluate(kf.get("scale"), local_time, clip.scale),
        scale_x=evaluate(kf.get("scale_x"), local_time, clip.scale_x),
        scale_y=evaluate(kf.get("scale_y"), local_time, clip.scale_y),
        rotation=evaluate(kf.get("rotation"), local_time, clip.rotation),
    )


def resolve_mask(clip: Clip, local_time: float) -> Mask | None:
    """Fully resolved mask at local_time, or None when the clip has none.

    Center, size and feather animate; rotation, border radius and invert
    are static.
    """
    mask = clip.mask
    if mask is None or mask.shape == "none":
        return None
    kf = clip.keyframes
    return Mask(
        shape=mask.shape,
        center_x=evaluate(kf.get("mask_center_x"), local_time, mask.center_x),
        center_y=evaluate(kf.get("mask_center_y"), local_time, mask.center_y),
        width=evaluate(kf.get("mask_width"), local_time, mask.width),
        height=evaluate(kf.get("mask_height"), local_time, mask.height),
        rotation=mask.rotation,
        feather=max(0.0, evaluate(kf.get("mask_feather"), local_time, mask.feather)),
        border_radius=mask.border_radius,
        invert=mask.invert,
    )


def fit_size(nw: float, nh: float, cw: float, ch: float) -> tuple[float, float]:
    """Largest (w, h) with aspect nw:nh that fits inside cw x ch."""
    if not nw or not nh or not cw or not ch:
        return (0.0, 0.0)
    aspect = nw / nh
    if aspect > cw / ch:
        return (float(cw), cw / aspect)
    return (ch * aspect, float(ch))


def resolve_placement(
    clip: Clip,
    local_time: float,
    natural_size: tuple[int, int],
    canvas_size: tuple[int, int],
    fill_canvas: bool = False,
) -> Placement:
    """Resolve the clip's on-canvas box and mask at local_time.

    Args:
        clip: The clip being drawn.
        local_time: Seconds since clip.start_time.
        natural_size: Intrinsic (w, h) of the clip's content.
        canvas_size: (w, h) of the output canvas.
        fill_canvas: Use the canvas as the base box instead of fitting
            natural_size into it (component clips).
    """
    cw, ch = canvas_size
    if fill_canvas:
        base_w, base_h = float(cw), float(ch)
    else:
        base_w, base_h = fit_size(natural_size[0], natural_size[1], cw, ch)

    tr = resolve_transform(clip, local_time)
    width = base_w * tr.scale * tr.scale_x
    height = base_h * tr.scale * tr.scale_y
    return Placement(
        left=(cw - width) / 2 + tr.x * base_w,
        top=(ch - height) / 2 + tr.y * base_h,
        width=width,
        height=height,
        rotation=tr.rotation,
        mask=resolve_mask(clip, local_time),
    )


def box_corners(placement: Placement) -> list[tuple[float, float]]:
    """Rotated corners of a placement: top-left, top-right, bottom-right, bottom-left.

    Drag handles sit on these points.
    """
    cx, cy = placement.center
    hw, hh = placement.width / 2, placement.height / 2
    theta = math.radians(placement.rotation)
    cos_t, sin_t = math.cos(theta), math.sin(theta)
    corners = []
    for dx, dy in ((-hw, -hh), (hw, -hh), (hw, hh), (-hw, hh)):
        corners.append((cx + dx * cos_t - dy * sin_t, cy + dx * sin_t + dy * cos_t))
    return corners
