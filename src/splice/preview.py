"""Render a single still of the timeline, exactly as export would draw it."""

from PIL import Image

from .components import ComponentRegistry, RendererSupervisor, builtin_registry
from .content import ContentProvider
from .export import ExportSettings
from .failures import FailureLog
from .model import Timeline
from .render import frame_time, plan_frame, render_frame
from .sources import SourcePool


def preview_frame(
    timeline: Timeline,
    time: float | None = None,
    settings: ExportSettings | None = None,
    frame: int | None = None,
    registry: ComponentRegistry | None = None,
    pool: SourcePool | None = None,
    failures: FailureLog | None = None,
) -> Image.Image:
    """Render the timeline at time (seconds) or at export frame index frame.

    Passing frame uses t = frame / fps, so the result matches exported
    frame number `frame` pixel for pixel. A caller-provided pool stays
    open for reuse; otherwise sources are closed before returning.
    """
    settings = settings or ExportSettings()
    if frame is not None:
        time = frame_time(frame, settings.fps)
    if time is None:
        raise ValueError("preview_frame() needs a time or a frame index")

    canvas = settings.canvas_size
    failures = failures if failures is not None else FailureLog()
    own_pool = pool is None
    pool = pool if pool is not None else SourcePool()
    try:
        supervisor = RendererSupervisor(registry or builtin_registry(), failures)
        provider = ContentProvider(timeline, canvas, supervisor, pool, failures)
        plan = plan_frame(timeline, time, canvas, provider.natural_size, frame_index=frame)
        return Image.fromarray(render_frame(timeline, plan, provider, canvas))
    finally:
        if own_pool:
            pool.close_all()
