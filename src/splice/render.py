"""Frame planning and rendering shared by the preview and the export loop.

plan_frame answers "which clips draw at time t, in what order, where";
it depends only on the timeline, the time and the content sizes.
render_frame turns a plan into pixels. The export loop and
splice.preview both go through these two functions, so a preview at
frame time f / fps is pixel-identical to exported frame f.
"""

import math
from dataclasses import dataclass

import numpy as np

from .compositor import composite_frame
from .model import Timeline
from .resolver import Placement, resolve_placement


@dataclass(frozen=True)
class LayerPlan:
    clip_id: int
    track: int
    local_time: float
    placement: Placement


@dataclass(frozen=True)
class FramePlan:
    time: float
    layers: tuple[LayerPlan, ...]
    frame_index: int | None = None


def compute_total_frames(total_duration: float, fps: float) -> int:
    """Frames needed to cover total_duration, ignoring float noise."""
    return math.ceil(round(total_duration * fps, 6))


def frame_time(frame_index: int, fps: float) -> float:
    return frame_index / fps


def keyframe_interval(fps: float) -> int:
    """Frames between encoder keyframes (one every 2 seconds)."""
    return max(1, round(2 * fps))


def plan_frame(
    timeline: Timeline,
    time: float,
    canvas_size: tuple[int, int],
    natural_size,
    frame_index: int | None = None,
) -> FramePlan:
    """Resolve every visible visual clip at time, bottom track first.

    Args:
        timeline: The timeline to draw.
        time: Timeline time in seconds.
        canvas_size: Output (w, h).
        natural_size: Callable clip -> intrinsic (w, h) of its content, or
            None for content that cannot be loaded (the clip is skipped).
        frame_index: Export frame number, carried through for failure records.
    """
    layers = []
    for clip in timeline.visible_clips(time):
        media = timeline.media_for(clip)
        if media is None or not media.is_visual:
            continue
        local_time = time - clip.start_time
        is_component = media.kind == "component"
        size = canvas_size if is_component else natural_size(clip)
        if size is None:
            continue
        placement = resolve_placement(
            clip, local_time, size, canvas_size, fill_canvas=is_component,
        )
        layers.append(LayerPlan(clip.id, clip.track, local_time, placement))
    return FramePlan(time, tuple(layers), frame_index)


def render_frame(
    timeline: Timeline,
    plan: FramePlan,
    provider,
    canvas_size: tuple[int, int],
) -> np.ndarray:
    """Composite a planned frame. Returns an (h, w, 3) uint8 array."""
    layers = []
    for layer in plan.layers:
        clip = timeline.get_clip(layer.clip_id)
        pixels = provider.content(clip, layer.local_time, frame=plan.frame_index)
        if pixels is not None:
            layers.append((pixels, layer.placement))
    return composite_frame(layers, canvas_size)
