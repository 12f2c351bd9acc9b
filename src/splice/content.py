"""Per-clip content: the RGBA pixels a visible clip contributes at a local time.

Video clips read the source frame at trim_start + local_time, image
clips their decoded still and component clips whatever their renderer
draws. Component media props are resolved here before rendering: a
reference to image or video media becomes that media's RGBA frame, and a
reference to another component is rendered (one level deep) with the
props stored under "<prop>:props".

A frame source that cannot be opened is recorded once per clip and its
clip draws nothing from then on; a read that raises is recorded for
that frame only.
"""

import numpy as np

from .components import RendererSupervisor
from .failures import FailureLog
from .model import NESTED_PROPS_SUFFIX, Clip, MediaSource, Timeline, default_props
from .sources import SourcePool, seek_frame


MAX_COMPONENT_DEPTH = 1


class ContentProvider:
    """Fetches clip pixels from sources and component renderers."""

    def __init__(
        self,
        timeline: Timeline,
        canvas_size: tuple[int, int],
        supervisor: RendererSupervisor,
        pool: SourcePool,
        failures: FailureLog | None = None,
    ):
        self.timeline = timeline
        self.canvas_size = canvas_size
        self.supervisor = supervisor
        self.pool = pool
        self.failures = failures if failures is not None else supervisor.failures
        self._unopenable = {}

    def natural_size(self, clip: Clip) -> tuple[int, int] | None:
        """Intrinsic content size; components draw at canvas size.

        None when the clip's source cannot be opened.
        """
        media = self.timeline.media_for(clip)
        if media is None or media.kind == "component":
            return self.canvas_size
        source = self._source(media, clip.id)
        if source is None:
            return None
        try:
            return source.natural_size()
        except Exception as exc:
            self._source_failed(media, exc, clip.id)
            return None

    def content(self, clip: Clip, local_time: float, frame: int | None = None):
        """RGBA array for clip at local_time, or None if it draws nothing."""
        media = self.timeline.media_for(clip)
        if media is None:
            return None
        if media.kind == "video":
            return self._frame(media, clip.trim_start + local_time, clip.id, frame)
        if media.kind == "image":
            return self._frame(media, None, clip.id, frame)
        if media.kind == "component":
            props = self.component_props(
                media, clip.component_props, local_time, clip.duration,
                clip_id=clip.id, frame=frame,
            )
            return self.supervisor.render(media.path, props, clip_id=clip.id, frame=frame)
        return None

    def component_props(
        self,
        media: MediaSource,
        props: dict,
        local_time: float,
        duration: float,
        clip_id: int | None = None,
        frame: int | None = None,
        depth: int = 0,
    ) -> dict:
        """Standard props plus the clip's props with media references resolved."""
        w, h = self.canvas_size
        resolved = {
            "current_time": local_time,
            "duration": duration,
            "width": w,
            "height": h,
            "progress": local_time / duration if duration > 0 else 0.0,
        }
        merged = {**default_props(media.prop_definitions), **(props or {})}
        for name, value in merged.items():
            if name.endswith(NESTED_PROPS_SUFFIX):
                continue
            definition = media.prop_definitions.get(name)
            if definition is not None and definition.type == "media":
                resolved[name] = self._drawable(
                    value, merged.get(name + NESTED_PROPS_SUFFIX), media.path,
                    local_time, duration, clip_id, frame, depth,
                )
            else:
                resolved[name] = value
        return resolved

    def _drawable(self, path, child_props, parent_path, local_time, duration,
                  clip_id, frame, depth) -> np.ndarray | None:
        # Missing, stale and self references resolve to nothing.
        if not path or path == parent_path:
            return None
        child = self.timeline.media.get(path)
        if child is None:
            return None
        if child.kind == "image":
            return self._frame(child, None, clip_id, frame)
        if child.kind == "video":
            at = min(local_time, child.duration) if child.duration > 0 else local_time
            return self._frame(child, at, clip_id, frame)
        if child.kind == "component" and depth < MAX_COMPONENT_DEPTH:
            props = self.component_props(
                child, child_props if isinstance(child_props, dict) else {},
                local_time, duration, clip_id, frame, depth + 1,
            )
            return self.supervisor.render(child.path, props, clip_id=clip_id, frame=frame)
        return None

    # ── Frame sources ─────────────────────────────────────────────

    def _source(self, media: MediaSource, clip_id: int | None):
        if media.path in self._unopenable:
            self._source_failed(media, self._unopenable[media.path], clip_id)
            return None
        try:
            return self.pool.get(media)
        except Exception as exc:
            self._unopenable[media.path] = exc
            self._source_failed(media, exc, clip_id)
            return None

    def _source_failed(self, media, exc, clip_id, frame=None) -> None:
        once_key = ("source", clip_id, media.path) if frame is None else None
        self.failures.record(
            "source", f"{media.path}: {type(exc).__name__}: {exc}",
            clip_id=clip_id, frame=frame, once_key=once_key,
        )

    def _frame(self, media: MediaSource, at: float | None, clip_id, frame):
        """Frame of media at time at (None for stills), or None on failure."""
        source = self._source(media, clip_id)
        if source is None:
            return None
        try:
            if at is None:
                return source.current_frame()
            return seek_frame(source, at, self.failures, clip_id=clip_id, frame=frame)
        except Exception as exc:
            self._source_failed(media, exc, clip_id, frame)
            return None
