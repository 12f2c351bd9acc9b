"""Editing operations — move, snap, trim, ripple, drop and undo/redo.

Every operation takes the Timeline it edits explicitly and mutates it
only through Timeline methods, so the model's invariants hold after each
call (or the call raises and nothing changes).

Pointer math is platform-neutral: callers pass horizontal pointer deltas
in pixels plus the timeline zoom (pixels per second). DragGesture turns a
stream of PointerEvents into these calls and folds a whole drag into one
undo step.

Drop zones: a track row is split into an "above" edge (top 25%), a
"middle" and a "below" edge (bottom 25%). Rows are laid out with the
topmost track (highest z) first, so "above" means higher z-order.
"""

from contextlib import contextmanager
from dataclasses import dataclass

from .model import MIN_CLIP_DURATION, Clip, MediaSource, PlacementRejected, Timeline


# ── Constants ────────────────────────────────────────────────────

SNAP_THRESHOLD_PX = 10         # snap when within this many pixels
EDGE_ZONE_FRACTION = 0.25      # top/bottom share of a track row
DROP_ZONES = {"above", "middle", "below"}
TRIM_EDGES = {"left", "right"}
HISTORY_LIMIT = 100

_EPS = 1e-6


@dataclass(frozen=True)
class ClipOrigin:
    """Clip timing captured when a drag starts."""

    start_time: float
    track: int
    duration: float
    trim_start: float
    trim_end: float
    original_duration: float

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    @classmethod
    def of(cls, clip: Clip) -> "ClipOrigin":
        return cls(
            clip.start_time, clip.track, clip.duration,
            clip.trim_start, clip.trim_end, clip.original_duration,
        )


# ── Snapping ─────────────────────────────────────────────────────


def snap_candidates(
    timeline: Timeline,
    track: int,
    playhead: float = 0.0,
    exclude_clip_id: int | None = None,
) -> list[float]:
    """Times a dragged edge may snap to: 0, the playhead, same-track clip edges."""
    candidates = [0.0, playhead]
    for clip in timeline.clips_on_track(track, exclude_id=exclude_clip_id):
        candidates.extend((clip.start_time, clip.end_time))
    return candidates


def snap_time(
    raw: float,
    candidates: list[float],
    zoom: float,
    threshold_px: float = SNAP_THRESHOLD_PX,
) -> float:
    """Snap raw to the nearest candidate within threshold_px / zoom seconds.

    Returns raw unchanged when no candidate is close enough. Snapped
    results are clamped to >= 0.
    """
    if not candidates or zoom <= 0:
        return raw
    best = min(candidates, key=lambda c: abs(c - raw))
    if abs(best - raw) <= threshold_px / zoom:
        return max(0.0, best)
    return raw


def _dragged_start(
    timeline: Timeline,
    clip: Clip,
    origin: ClipOrigin,
    dx_px: float,
    zoom: float,
    track: int,
    playhead: float,
    snap: bool,
) -> float:
    """Candidate start time for a horizontal drag, after snapping.

    The start edge snaps first; if it does not, the end edge is tried.
    """
    start = max(0.0, origin.start_time + dx_px / zoom)
    if not snap:
        return start
    candidates = snap_candidates(timeline, track, playhead, exclude_clip_id=clip.id)
    snapped = snap_time(start, candidates, zoom)
    if snapped != start:
        return snapped
    end = start + clip.duration
    snapped_end = snap_time(end, candidates, zoom)
    if snapped_end != end:
        return max(0.0, snapped_end - clip.duration)
    return start


# ── Move ─────────────────────────────────────────────────────────


def move_clip(
    timeline: Timeline,
    clip_id: int,
    origin: ClipOrigin,
    dx_px: float,
    zoom: float,
    track: int | None = None,
    playhead: float = 0.0,
    snap: bool = True,
) -> Clip:
    """Move a clip by a pointer delta measured from the drag origin.

    Raises:
        PlacementRejected: The destination overlaps another clip.
    """
    clip = timeline.get_clip(clip_id)
    target = origin.track if track is None else track
    start = _dragged_start(timeline, clip, origin, dx_px, zoom, target, playhead, snap)
    return timeline.update_clip(clip_id, start_time=start, track=target)


# ── Trim ─────────────────────────────────────────────────────────


def _neighbour_bounds(timeline: Timeline, clip_id: int, origin: ClipOrigin):
    """(previous clip end, next clip start) around the origin on its track."""
    others = timeline.clips_on_track(origin.track, exclude_id=clip_id)
    prev_end = max(
        (c.end_time for c in others if c.start_time < origin.start_time), default=0.0,
    )
    next_start = min(
        (c.start_time for c in others if c.start_time >= origin.end_time - _EPS),
        default=float("inf"),
    )
    return prev_end, next_start


def trim_clip(
    timeline: Timeline,
    clip_id: int,
    edge: str,
    dx_px: float,
    zoom: float,
    origin: ClipOrigin,
    ripple: bool = False,
) -> Clip:
    """Drag one edge of a clip by dx_px pixels from the drag origin.

    Non-flexible media adjust trim_start/trim_end; flexible media (image,
    component) adjust start_time/duration directly. Out-of-range requests
    are clamped, never rejected: trims stay within the media, duration
    stays >= MIN_CLIP_DURATION, start stays >= 0 and the clip does not run
    into its same-track neighbours.

    With ripple, a change of the clip's end time by delta shifts every
    later clip on the same track by delta in the same commit, and the
    right edge is no longer bounded by the next clip.
    """
    if edge not in TRIM_EDGES:
        raise ValueError(f"Unknown trim edge '{edge}'. Valid: {sorted(TRIM_EDGES)}")
    clip = timeline.get_clip(clip_id)
    media = timeline.media_for(clip)
    flexible = media is not None and media.is_flexible
    dt = dx_px / zoom
    prev_end, next_start = _neighbour_bounds(timeline, clip_id, origin)
    if ripple:
        next_start = float("inf")

    if edge == "left":
        if flexible:
            upper = origin.end_time - MIN_CLIP_DURATION
            start = max(prev_end, min(origin.start_time + dt, upper))
            duration = origin.end_time - start
            fields = {
                "start_time": start, "duration": duration,
                "original_duration": duration, "trim_start": 0.0, "trim_end": 0.0,
            }
        else:
            lower = max(0.0, origin.trim_start - (origin.start_time - prev_end))
            upper = origin.original_duration - origin.trim_end - MIN_CLIP_DURATION
            trim_start = max(lower, min(origin.trim_start + dt, upper))
            fields = {
                "trim_start": trim_start,
                "start_time": origin.start_time + (trim_start - origin.trim_start),
                "duration": origin.original_duration - trim_start - origin.trim_end,
            }
    else:
        if flexible:
            upper = next_start - origin.start_time
            duration = max(MIN_CLIP_DURATION, min(origin.duration + dt, upper))
            fields = {
                "duration": duration, "original_duration": duration,
                "trim_start": 0.0, "trim_end": 0.0,
            }
        else:
            max_visible = next_start - origin.start_time
            lower = max(
                0.0, origin.original_duration - origin.trim_start - max_visible,
            )
            upper = origin.original_duration - origin.trim_start - MIN_CLIP_DURATION
            trim_end = max(lower, min(origin.trim_end - dt, upper))
            fields = {
                "trim_end": trim_end,
                "duration": origin.original_duration - origin.trim_start - trim_end,
            }

    updates = {clip_id: fields}
    if ripple:
        new_end = fields.get("start_time", clip.start_time) + fields["duration"]
        delta = new_end - clip.end_time
        if abs(delta) > _EPS:
            for later in timeline.clips_on_track(clip.track, exclude_id=clip_id):
                if later.start_time >= clip.end_time - _EPS:
                    updates[later.id] = {"start_time": later.start_time + delta}
    return timeline.update_clips(updates)[clip_id]


def ripple_trim(
    timeline: Timeline,
    clip_id: int,
    edge: str,
    dx_px: float,
    zoom: float,
    origin: ClipOrigin,
) -> Clip:
    """trim_clip with ripple enabled."""
    return trim_clip(timeline, clip_id, edge, dx_px, zoom, origin, ripple=True)


# ── Drop / track insertion ───────────────────────────────────────


def classify_zone(offset_y: float, row_height: float) -> str:
    """Classify a y offset inside a track row as above / middle / below."""
    frac = offset_y / row_height if row_height > 0 else 0.5
    if frac < EDGE_ZONE_FRACTION:
        return "above"
    if frac > 1 - EDGE_ZONE_FRACTION:
        return "below"
    return "middle"


@dataclass
class TrackLayout:
    """Vertical track rows, topmost (highest z) track first."""

    row_height: float = 48.0

    def rows(self, timeline: Timeline) -> list[int]:
        return list(reversed(timeline.tracks))

    def hit_test(self, timeline: Timeline, y: float) -> tuple[int, str] | None:
        """(track, zone) under screen offset y, or None outside the rows."""
        rows = self.rows(timeline)
        if y < 0 or not rows:
            return None
        row = int(y // self.row_height)
        if row >= len(rows):
            return None
        return rows[row], classify_zone(y - row * self.row_height, self.row_height)


def _insertion_index(timeline: Timeline, track: int, zone: str) -> int:
    index = timeline.z_index(track)
    return index + 1 if zone == "above" else index


def _check_drop_args(timeline: Timeline, track: int, zone: str, start_time: float):
    if zone not in DROP_ZONES:
        raise ValueError(f"Unknown drop zone '{zone}'. Valid: {sorted(DROP_ZONES)}")
    if track not in timeline.tracks:
        raise KeyError(f"Unknown track {track}")
    if start_time < 0:
        raise ValueError(f"start_time must be >= 0, got {start_time}")


def drop_clip(
    timeline: Timeline,
    clip_id: int,
    track: int,
    zone: str,
    start_time: float,
) -> Clip:
    """Drop an existing clip onto a track row.

    A track that can take the clip gets it directly. An edge zone of a
    track that cannot inserts a new track on that side and moves the clip
    there. A middle-zone drop that cannot be accepted is rejected.
    """
    _check_drop_args(timeline, track, zone, start_time)
    clip = timeline.get_clip(clip_id)
    if not timeline.has_overlap(track, start_time, clip.duration, exclude_id=clip_id):
        return timeline.update_clip(clip_id, track=track, start_time=start_time)
    if zone == "middle":
        raise PlacementRejected(
            f"Track {track} cannot take clip {clip_id} at {start_time:.3f}s"
        )
    new_track = timeline.insert_track(_insertion_index(timeline, track, zone))
    return timeline.update_clip(clip_id, track=new_track, start_time=start_time)


def drop_media(
    timeline: Timeline,
    source: MediaSource,
    track: int,
    zone: str,
    start_time: float,
) -> Clip:
    """Drop new media onto a track row; same zone rules as drop_clip."""
    _check_drop_args(timeline, track, zone, start_time)
    duration = source.placement_duration
    if not timeline.has_overlap(track, start_time, duration):
        return timeline.place_clip(source, track, start_time)
    if zone == "middle":
        raise PlacementRejected(
            f"Track {track} cannot take '{source.name}' at {start_time:.3f}s"
        )
    new_track = timeline.insert_track(_insertion_index(timeline, track, zone))
    return timeline.place_clip(source, new_track, start_time)


# ── Undo / redo ──────────────────────────────────────────────────


class History:
    """Snapshot-based undo/redo with explicit batches.

    begin_batch captures one "before" snapshot; nested batches fold into
    the outermost one. end_batch records an undo step only if the model
    actually changed, so a drag with hundreds of intermediate updates is a
    single step.
    """

    def __init__(self, timeline: Timeline, limit: int = HISTORY_LIMIT):
        self.timeline = timeline
        self.limit = limit
        self._undo = []
        self._redo = []
        self._depth = 0
        self._before = None

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def in_batch(self) -> bool:
        return self._depth > 0

    def begin_batch(self) -> None:
        if self._depth == 0:
            self._before = self.timeline.snapshot()
        self._depth += 1

    def end_batch(self) -> bool:
        """Close a batch. Returns True if an undo step was recorded."""
        if self._depth == 0:
            raise RuntimeError("end_batch() without begin_batch()")
        self._depth -= 1
        if self._depth:
            return False
        before, self._before = self._before, None
        if before == self.timeline.snapshot():
            return False
        self._undo.append(before)
        del self._undo[:-self.limit]
        self._redo.clear()
        return True

    def cancel_batch(self) -> None:
        """Abandon the open batch and restore its "before" snapshot."""
        if self._depth == 0:
            raise RuntimeError("cancel_batch() without begin_batch()")
        self.timeline.restore(self._before)
        self._depth = 0
        self._before = None

    @contextmanager
    def batch(self):
        self.begin_batch()
        try:
            yield self
        finally:
            self.end_batch()

    def undo(self) -> bool:
        if self._depth:
            raise RuntimeError("Cannot undo while a batch is open")
        if not self._undo:
            return False
        self._redo.append(self.timeline.snapshot())
        self.timeline.restore(self._undo.pop())
        return True

    def redo(self) -> bool:
        if self._depth:
            raise RuntimeError("Cannot redo while a batch is open")
        if not self._redo:
            return False
        self._undo.append(self.timeline.snapshot())
        self.timeline.restore(self._redo.pop())
        return True


# ── Drag gesture state machine ───────────────────────────────────

IDLE = "idle"
DRAGGING = "dragging"
COMMITTING = "committing"

GESTURE_MODES = {"move", "trim-left", "trim-right"}
POINTER_KINDS = {"down", "move", "up", "cancel"}


@dataclass(frozen=True)
class PointerEvent:
    """Platform-neutral pointer event in timeline-widget pixels."""

    kind: str
    x: float
    y: float = 0.0

    def __post_init__(self):
        if self.kind not in POINTER_KINDS:
            raise ValueError(
                f"Unknown pointer event '{self.kind}'. Valid: {sorted(POINTER_KINDS)}"
            )


class DragGesture:
    """Idle -> Dragging -> Committing -> Idle, one undo step per drag.

    Each move event re-applies the operation from the drag origin. A
    move the model rejects leaves the clip at its last valid position.
    In move mode with a TrackLayout, the release point decides the final
    track using the drop-zone rules (which may insert a new track).
    """

    def __init__(
        self,
        timeline: Timeline,
        history: History,
        clip_id: int,
        mode: str = "move",
        zoom: float = 100.0,
        playhead: float = 0.0,
        ripple: bool = False,
        snap: bool = True,
        layout: TrackLayout | None = None,
    ):
        if mode not in GESTURE_MODES:
            raise ValueError(f"Unknown gesture mode '{mode}'. Valid: {sorted(GESTURE_MODES)}")
        self.timeline = timeline
        self.history = history
        self.clip_id = clip_id
        self.mode = mode
        self.zoom = zoom
        self.playhead = playhead
        self.ripple = ripple
        self.snap = snap
        self.layout = layout
        self.state = IDLE
        self.rejected = 0
        self._start_x = 0.0
        self._origin = None

    def handle(self, event: PointerEvent) -> str:
        """Feed one pointer event; returns the resulting state."""
        if event.kind == "down" and self.state == IDLE:
            self._start_x = event.x
            self._origin = ClipOrigin.of(self.timeline.get_clip(self.clip_id))
            self.history.begin_batch()
            self.state = DRAGGING
        elif event.kind == "move" and self.state == DRAGGING:
            self._apply(event, release=False)
        elif event.kind == "up" and self.state == DRAGGING:
            self.state = COMMITTING
            try:
                self._apply(event, release=True)
            finally:
                self.history.end_batch()
                self.state = IDLE
        elif event.kind == "cancel" and self.state == DRAGGING:
            self.history.cancel_batch()
            self.state = IDLE
        return self.state

    def _apply(self, event: PointerEvent, release: bool) -> None:
        dx = event.x - self._start_x
        try:
            if self.mode == "move":
                self._apply_move(event, dx, release)
            else:
                edge = "left" if self.mode == "trim-left" else "right"
                trim_clip(
                    self.timeline, self.clip_id, edge, dx, self.zoom,
                    self._origin, ripple=self.ripple,
                )
        except PlacementRejected:
            self.rejected += 1

    def _apply_move(self, event: PointerEvent, dx: float, release: bool) -> None:
        hit = self.layout.hit_test(self.timeline, event.y) if self.layout else None
        track = hit[0] if hit else self._origin.track
        if release and hit:
            clip = self.timeline.get_clip(self.clip_id)
            start = _dragged_start(
                self.timeline, clip, self._origin, dx, self.zoom,
                track, self.playhead, self.snap,
            )
            drop_clip(self.timeline, self.clip_id, track, hit[1], start)
            return
        move_clip(
            self.timeline, self.clip_id, self._origin, dx, self.zoom,
            track=track, playhead=self.playhead, snap=self.snap,
        )
