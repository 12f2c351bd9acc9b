"""Timeline data model — tracks, media, clips, masks and keyframes.

The Timeline object is the single owner of editing state. Every mutation
goes through one of its methods, and every method either commits a change
that keeps the model valid or raises without touching anything.

Invariants (checked by update_clips and validate):
  - Per track, clip intervals [start_time, start_time + duration) never
    overlap. Touching intervals are fine.
  - trim_start + trim_end <= original_duration.
  - For non-flexible media (video, audio):
    duration == original_duration - trim_start - trim_end.
    Flexible media (image, component) may resize duration freely.

Track z-order is the position in Timeline.tracks; later entries render on
top of earlier ones.
"""

import copy
from dataclasses import dataclass, field, replace
from typing import Any

from .keyframes import EASINGS, Keyframe, evaluate, insert_sorted


# ── Vocabulary ────────────────────────────────────────────────────

MEDIA_KINDS = {"video", "audio", "image", "component"}
FLEXIBLE_KINDS = {"image", "component"}
VISUAL_KINDS = {"video", "image", "component"}
AUDIO_KINDS = {"video", "audio"}

PROP_TYPES = {"string", "number", "color", "boolean", "enum", "media"}

MASK_SHAPES = {"none", "rectangle", "ellipse"}

TRANSFORM_PROPS = ("x", "y", "scale", "scale_x", "scale_y", "rotation")
MASK_PROPS = (
    "mask_center_x", "mask_center_y", "mask_width", "mask_height", "mask_feather",
)
ANIMATABLE_PROPS = TRANSFORM_PROPS + MASK_PROPS

# Fields update_clip accepts. id, media_path and keyframes are managed
# by dedicated operations.
UPDATABLE_FIELDS = {
    "track", "start_time", "duration", "trim_start", "trim_end",
    "original_duration", "x", "y", "scale", "scale_x", "scale_y",
    "rotation", "mask", "component_props",
}

DEFAULT_TRACKS = (1, 2)
DEFAULT_STILL_DURATION = 5.0     # placement duration for duration-0 media
MIN_CLIP_DURATION = 0.1          # trim floor in seconds
KEYFRAME_MERGE_WINDOW = 0.02     # add_all_keyframes skips props keyed this close
NESTED_PROPS_SUFFIX = ":props"   # child component props live under "<prop>:props"

_EPS = 1e-6


# ── Errors ────────────────────────────────────────────────────────


class PlacementRejected(ValueError):
    """A mutation would make two clips overlap on one track."""


class InvalidClipUpdate(ValueError):
    """A clip update would break the trim/duration invariant."""


# ── Entities ──────────────────────────────────────────────────────


@dataclass
class PropDefinition:
    """One declared configurable input of a component."""

    type: str
    default: Any = None
    label: str = ""
    min: float | None = None
    max: float | None = None
    step: float | None = None
    options: list = field(default_factory=list)

    def __post_init__(self):
        if self.type not in PROP_TYPES:
            raise ValueError(
                f"Unknown prop type '{self.type}'. Valid: {sorted(PROP_TYPES)}"
            )


@dataclass
class MediaSource:
    """A piece of media that clips can reference.

    For component media, path is the stable content id the renderer
    registry is keyed by (e.g. "builtin:box").
    """

    path: str
    kind: str
    duration: float = 0.0
    name: str = ""
    prop_definitions: dict[str, PropDefinition] = field(default_factory=dict)

    def __post_init__(self):
        if self.kind not in MEDIA_KINDS:
            raise ValueError(
                f"Unknown media kind '{self.kind}'. Valid: {sorted(MEDIA_KINDS)}"
            )
        if self.duration < 0:
            raise ValueError(f"Media '{self.path}': duration must be >= 0")
        if not self.name:
            self.name = self.path.replace("\\", "/").rsplit("/", 1)[-1]

    @property
    def is_flexible(self) -> bool:
        return self.kind in FLEXIBLE_KINDS

    @property
    def is_visual(self) -> bool:
        return self.kind in VISUAL_KINDS

    @property
    def has_audio(self) -> bool:
        return self.kind in AUDIO_KINDS

    @property
    def placement_duration(self) -> float:
        """Duration a freshly placed clip gets."""
        return self.duration if self.duration > 0 else DEFAULT_STILL_DURATION


@dataclass
class Mask:
    """Clip-local clipping shape. Geometry is normalized to the clip box."""

    shape: str = "rectangle"
    center_x: float = 0.5
    center_y: float = 0.5
    width: float = 1.0
    height: float = 1.0
    rotation: float = 0.0       # degrees
    feather: float = 0.0        # blur radius in pixels
    border_radius: float = 0.0  # rectangle only, 0-0.5 fraction
    invert: bool = False

    def __post_init__(self):
        if self.shape not in MASK_SHAPES:
            raise ValueError(
                f"Unknown mask shape '{self.shape}'. Valid: {sorted(MASK_SHAPES)}"
            )


@dataclass
class Clip:
    """A placed instance of a MediaSource on a track."""

    id: int
    media_path: str
    track: int
    start_time: float
    duration: float
    original_duration: float
    trim_start: float = 0.0
    trim_end: float = 0.0
    x: float = 0.0
    y: float = 0.0
    scale: float = 1.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    rotation: float = 0.0
    mask: Mask | None = None
    keyframes: dict[str, list[Keyframe]] = field(default_factory=dict)
    keyframe_id_counter: int = 0
    component_props: dict[str, Any] = field(default_factory=dict)

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def contains(self, t: float) -> bool:
        """True if timeline time t falls in [start_time, end_time)."""
        return self.start_time <= t < self.end_time

    def overlaps(self, start_time: float, duration: float) -> bool:
        """True if [start_time, start_time + duration) intersects this clip."""
        return (
            start_time < self.end_time - _EPS
            and start_time + duration > self.start_time + _EPS
        )


@dataclass
class TimelineState:
    """A detached, comparable copy of a timeline's full state."""

    tracks: list[int]
    media: dict[str, MediaSource]
    clips: dict[int, Clip]
    track_id_counter: int
    clip_id_counter: int


def default_props(definitions: dict[str, PropDefinition]) -> dict[str, Any]:
    """Build initial component props from declared defaults.

    Media references default to None (unset) unless a default path is given.
    """
    props = {}
    for name, definition in definitions.items():
        default = definition.default
        if definition.type == "media" and default == "":
            default = None
        props[name] = copy.deepcopy(default)
    return props


def clip_problems(clip: Clip, media: MediaSource | None) -> list[str]:
    """List every field-level invariant violation of a single clip."""
    problems = []
    prefix = f"Clip {clip.id}"

    if media is None:
        problems.append(f"{prefix}: unknown media '{clip.media_path}'")
    if clip.start_time < -_EPS:
        problems.append(f"{prefix}: start_time must be >= 0, got {clip.start_time}")
    if clip.duration <= 0:
        problems.append(f"{prefix}: duration must be > 0, got {clip.duration}")
    if clip.original_duration <= 0:
        problems.append(
            f"{prefix}: original_duration must be > 0, got {clip.original_duration}"
        )
    if clip.trim_start < -_EPS or clip.trim_end < -_EPS:
        problems.append(f"{prefix}: trims must be >= 0")
    if clip.trim_start + clip.trim_end > clip.original_duration + _EPS:
        problems.append(
            f"{prefix}: trim_start + trim_end ({clip.trim_start + clip.trim_end:.3f}) "
            f"exceeds original_duration ({clip.original_duration:.3f})"
        )
    if media is not None and not media.is_flexible:
        expected = clip.original_duration - clip.trim_start - clip.trim_end
        if abs(clip.duration - expected) > _EPS:
            problems.append(
                f"{prefix}: duration {clip.duration:.6f} does not match "
                f"original_duration - trims ({expected:.6f})"
            )
    for prop, keyframes in clip.keyframes.items():
        if prop not in ANIMATABLE_PROPS:
            problems.append(f"{prefix}: '{prop}' is not animatable")
        times = [kf.time for kf in keyframes]
        if times != sorted(times):
            problems.append(f"{prefix}: keyframes for '{prop}' are not time-sorted")
        if any(t < 0 for t in times):
            problems.append(f"{prefix}: keyframes for '{prop}' have negative times")
    return problems


# ── Timeline ──────────────────────────────────────────────────────


class Timeline:
    """Explicitly owned editing model: tracks, media sources and clips."""

    def __init__(
        self,
        tracks: list[int] | None = None,
        media: list[MediaSource] | None = None,
    ):
        self.tracks = list(DEFAULT_TRACKS if tracks is None else tracks)
        if len(set(self.tracks)) != len(self.tracks):
            raise ValueError(f"Duplicate track ids in {self.tracks}")
        self.media: dict[str, MediaSource] = {}
        self.clips: dict[int, Clip] = {}
        self.track_id_counter = max(self.tracks, default=0)
        self.clip_id_counter = 0
        for source in media or []:
            self.add_media(source)

    # ── Lookup ───────────────────────────────────────────────────

    def get_clip(self, clip_id: int) -> Clip:
        try:
            return self.clips[clip_id]
        except KeyError:
            raise KeyError(f"Unknown clip {clip_id}") from None

    def media_for(self, clip: Clip) -> MediaSource | None:
        return self.media.get(clip.media_path)

    def z_index(self, track: int) -> int:
        """Render order of a track; higher draws later (on top)."""
        return self.tracks.index(track)

    def clips_on_track(self, track: int, exclude_id: int | None = None) -> list[Clip]:
        """Clips on one track, sorted by start time."""
        return sorted(
            (c for c in self.clips.values()
             if c.track == track and c.id != exclude_id),
            key=lambda c: c.start_time,
        )

    def has_overlap(
        self,
        track: int,
        start_time: float,
        duration: float,
        exclude_id: int | None = None,
    ) -> bool:
        return any(
            c.overlaps(start_time, duration)
            for c in self.clips_on_track(track, exclude_id)
        )

    def track_end(self, track: int) -> float:
        return max((c.end_time for c in self.clips_on_track(track)), default=0.0)

    def total_duration(self) -> float:
        """Furthest end point of any clip on the timeline."""
        return max((c.end_time for c in self.clips.values()), default=0.0)

    def visible_clips(self, t: float) -> list[Clip]:
        """Clips covering timeline time t, bottom track first."""
        visible = [c for c in self.clips.values() if c.contains(t)]
        return sorted(visible, key=lambda c: (self.z_index(c.track), c.start_time, c.id))

    # ── Tracks ───────────────────────────────────────────────────

    def add_track(self) -> int:
        """Append a new track on top of the stack. Returns its id."""
        return self.insert_track(len(self.tracks))

    def insert_track(self, index: int) -> int:
        """Insert a new track at z-position index. Returns its id."""
        if not 0 <= index <= len(self.tracks):
            raise IndexError(
                f"Track index {index} out of range (0-{len(self.tracks)})"
            )
        self.track_id_counter += 1
        self.tracks.insert(index, self.track_id_counter)
        return self.track_id_counter

    def remove_track(self, track: int) -> list[int]:
        """Remove a track and every clip on it. Returns the removed clip ids."""
        if track not in self.tracks:
            raise KeyError(f"Unknown track {track}")
        removed = [c.id for c in self.clips.values() if c.track == track]
        for clip_id in removed:
            del self.clips[clip_id]
        self.tracks.remove(track)
        return removed

    # ── Media ────────────────────────────────────────────────────

    def add_media(self, source: MediaSource) -> MediaSource:
        """Register a media source. A path already present is kept as is."""
        return self.media.setdefault(source.path, source)

    def remove_media(self, path: str) -> list[int]:
        """Remove a media source, its clips, and every reference to it.

        Component props pointing at the removed media are reset to None
        (including one level of nested child props). Returns the ids of
        the removed clips.
        """
        if path not in self.media:
            raise KeyError(f"Unknown media '{path}'")
        removed = [c.id for c in self.clips.values() if c.media_path == path]
        for clip_id in removed:
            del self.clips[clip_id]
        for clip in self.clips.values():
            media = self.media_for(clip)
            if media is not None and clip.component_props:
                clip.component_props = self._clear_media_refs(
                    clip.component_props, media.prop_definitions, path, depth=0,
                )
        del self.media[path]
        return removed

    def _clear_media_refs(self, props, definitions, path, depth):
        result = dict(props)
        for name, definition in definitions.items():
            if definition.type != "media":
                continue
            nested_key = name + NESTED_PROPS_SUFFIX
            if result.get(name) == path:
                result[name] = None
                result.pop(nested_key, None)
                continue
            child = self.media.get(result.get(name) or "")
            nested = result.get(nested_key)
            if depth == 0 and child is not None and isinstance(nested, dict):
                result[nested_key] = self._clear_media_refs(
                    nested, child.prop_definitions, path, depth + 1,
                )
        return result

    # ── Clip placement ───────────────────────────────────────────

    def place_clip(self, source: MediaSource, track: int, start_time: float) -> Clip:
        """Place source on track at start_time.

        Raises:
            PlacementRejected: The new clip would overlap an existing one.
            KeyError: Unknown track.
            ValueError: Negative start time.
        """
        if track not in self.tracks:
            raise KeyError(f"Unknown track {track}")
        if start_time < 0:
            raise ValueError(f"start_time must be >= 0, got {start_time}")
        duration = source.placement_duration
        if self.has_overlap(track, start_time, duration):
            raise PlacementRejected(
                f"Cannot place '{source.name}' on track {track} at "
                f"{start_time:.3f}s: overlaps an existing clip"
            )

        media = self.add_media(source)
        self.clip_id_counter += 1
        clip = Clip(
            id=self.clip_id_counter,
            media_path=media.path,
            track=track,
            start_time=start_time,
            duration=duration,
            original_duration=duration,
            component_props=default_props(media.prop_definitions),
        )
        self.clips[clip.id] = clip
        return clip

    def append_clip(self, source: MediaSource) -> Clip:
        """Place source at the end of the first track."""
        if not self.tracks:
            self.add_track()
        track = self.tracks[0]
        return self.place_clip(source, track, self.track_end(track))

    # ── Clip updates ─────────────────────────────────────────────

    def update_clip(self, clip_id: int, **fields) -> Clip:
        """Update one clip's fields after validating the result.

        For non-flexible media, updating trims without an explicit
        duration recomputes duration from the trims.

        Raises:
            PlacementRejected: The update would overlap another clip.
            InvalidClipUpdate: The update breaks the trim invariant.
            KeyError: Unknown clip or track.
        """
        return self.update_clips({clip_id: fields})[clip_id]

    def update_clips(self, updates: dict[int, dict]) -> dict[int, Clip]:
        """Apply several clip updates as one atomic commit.

        The whole batch is validated against the final state, so clips
        may trade places within one call (ripple shifts rely on this).
        Nothing is committed unless every update is valid.
        """
        candidates = {}
        for clip_id, changes in updates.items():
            clip = self.get_clip(clip_id)
            unknown = set(changes) - UPDATABLE_FIELDS
            if unknown:
                raise InvalidClipUpdate(
                    f"Clip {clip_id}: fields not updatable: {sorted(unknown)}"
                )
            changes = copy.deepcopy(changes)
            media = self.media_for(clip)
            trims_changed = "trim_start" in changes or "trim_end" in changes
            if (media is not None and not media.is_flexible
                    and trims_changed and "duration" not in changes):
                original = changes.get("original_duration", clip.original_duration)
                changes["duration"] = (
                    original
                    - changes.get("trim_start", clip.trim_start)
                    - changes.get("trim_end", clip.trim_end)
                )
            if "start_time" in changes and -_EPS < changes["start_time"] < 0:
                changes["start_time"] = 0.0
            candidate = replace(clip, **changes)
            if candidate.track not in self.tracks:
                raise KeyError(f"Unknown track {candidate.track}")
            problems = clip_problems(candidate, media)
            if problems:
                raise InvalidClipUpdate("; ".join(problems))
            candidates[clip_id] = candidate

        final = {**self.clips, **candidates}
        for candidate in candidates.values():
            for other in final.values():
                if (other.id != candidate.id and other.track == candidate.track
                        and other.overlaps(candidate.start_time, candidate.duration)):
                    raise PlacementRejected(
                        f"Clip {candidate.id} at [{candidate.start_time:.3f}, "
                        f"{candidate.end_time:.3f}) would overlap clip {other.id} "
                        f"on track {candidate.track}"
                    )

        self.clips.update(candidates)
        return candidates

    # ── Clip removal ─────────────────────────────────────────────

    def remove_clip(self, clip_id: int, ripple: bool = False) -> Clip:
        """Remove one clip. With ripple, later same-track clips close the gap."""
        removed = self.get_clip(clip_id)
        self.remove_clips([clip_id], ripple=ripple)
        return removed

    def remove_clips(self, clip_ids, ripple: bool = False) -> list[int]:
        """Remove several clips at once. Unknown ids raise before any change."""
        removed = [self.get_clip(clip_id) for clip_id in dict.fromkeys(clip_ids)]
        for clip in removed:
            del self.clips[clip.id]
        if ripple:
            for clip in self.clips.values():
                shift = sum(
                    r.duration for r in removed
                    if r.track == clip.track and r.start_time < clip.start_time
                )
                if shift:
                    clip.start_time = max(0.0, clip.start_time - shift)
        return [clip.id for clip in removed]

    def split_clip(self, clip_id: int, at_time: float) -> Clip:
        """Split a clip at timeline time at_time. Returns the new right part.

        at_time must fall strictly inside the clip. Keyframes are
        partitioned at the cut; each side gets a holding keyframe at the
        cut so the animated value is continuous.
        """
        clip = self.get_clip(clip_id)
        if not clip.start_time + _EPS < at_time < clip.end_time - _EPS:
            raise ValueError(
                f"Split time {at_time:.3f}s is not inside clip {clip_id} "
                f"[{clip.start_time:.3f}, {clip.end_time:.3f})"
            )
        media = self.media_for(clip)
        left_duration = at_time - clip.start_time
        right_duration = clip.end_time - at_time

        left_kf, right_kf, counter = _split_keyframes(clip, left_duration)
        self.clip_id_counter += 1
        if media is not None and media.is_flexible:
            left = replace(
                clip, duration=left_duration, original_duration=left_duration,
                trim_start=0.0, trim_end=0.0,
            )
            right = replace(
                clip, id=self.clip_id_counter, start_time=at_time,
                duration=right_duration, original_duration=right_duration,
                trim_start=0.0, trim_end=0.0,
            )
        else:
            left = replace(
                clip, duration=left_duration,
                trim_end=clip.original_duration - clip.trim_start - left_duration,
            )
            right = replace(
                clip, id=self.clip_id_counter, start_time=at_time,
                duration=right_duration,
                trim_start=clip.trim_start + left_duration,
            )
        left.keyframes, left.keyframe_id_counter = left_kf, counter
        right.keyframes, right.keyframe_id_counter = right_kf, counter
        right.mask = copy.deepcopy(clip.mask)
        right.component_props = copy.deepcopy(clip.component_props)

        self.clips[left.id] = left
        self.clips[right.id] = right
        return right

    # ── Keyframes ────────────────────────────────────────────────

    def add_keyframe(
        self,
        clip_id: int,
        prop: str,
        time: float,
        value: float,
        easing: str = "linear",
    ) -> Keyframe:
        clip = self.get_clip(clip_id)
        _check_keyframe_args(prop, time, easing)
        clip.keyframe_id_counter += 1
        keyframe = Keyframe(clip.keyframe_id_counter, float(time), float(value), easing)
        clip.keyframes[prop] = insert_sorted(clip.keyframes.get(prop, []), keyframe)
        return keyframe

    def add_all_keyframes(
        self,
        clip_id: int,
        time: float,
        values: dict[str, float],
        easing: str = "linear",
    ) -> list[Keyframe]:
        """Key several props at once, skipping props already keyed near time."""
        clip = self.get_clip(clip_id)
        for prop in values:
            _check_keyframe_args(prop, time, easing)
        added = []
        for prop, value in values.items():
            existing = clip.keyframes.get(prop, [])
            if any(abs(kf.time - time) < KEYFRAME_MERGE_WINDOW for kf in existing):
                continue
            added.append(self.add_keyframe(clip_id, prop, time, value, easing))
        return added

    def update_keyframe(self, clip_id: int, prop: str, keyframe_id: int, **fields) -> Keyframe:
        clip = self.get_clip(clip_id)
        unknown = set(fields) - {"time", "value", "easing"}
        if unknown:
            raise ValueError(f"Keyframe fields not updatable: {sorted(unknown)}")
        keyframes = clip.keyframes.get(prop, [])
        index = _keyframe_index(keyframes, clip_id, prop, keyframe_id)
        updated = replace(keyframes[index], **fields)
        _check_keyframe_args(prop, updated.time, updated.easing)
        rest = keyframes[:index] + keyframes[index + 1:]
        clip.keyframes[prop] = sorted(rest + [updated], key=lambda kf: kf.time)
        return updated

    def remove_keyframe(self, clip_id: int, prop: str, keyframe_id: int) -> None:
        clip = self.get_clip(clip_id)
        keyframes = clip.keyframes.get(prop, [])
        index = _keyframe_index(keyframes, clip_id, prop, keyframe_id)
        remaining = keyframes[:index] + keyframes[index + 1:]
        if remaining:
            clip.keyframes[prop] = remaining
        else:
            del clip.keyframes[prop]

    # ── Snapshots ────────────────────────────────────────────────

    def snapshot(self) -> TimelineState:
        """Deep copy of the full state; unaffected by later edits."""
        return TimelineState(
            tracks=list(self.tracks),
            media=copy.deepcopy(self.media),
            clips=copy.deepcopy(self.clips),
            track_id_counter=self.track_id_counter,
            clip_id_counter=self.clip_id_counter,
        )

    def restore(self, state: TimelineState) -> None:
        """Replace the full state in place with a copy of state."""
        self.tracks = list(state.tracks)
        self.media = copy.deepcopy(state.media)
        self.clips = copy.deepcopy(state.clips)
        self.track_id_counter = state.track_id_counter
        self.clip_id_counter = state.clip_id_counter

    @classmethod
    def from_state(cls, state: TimelineState) -> "Timeline":
        timeline = cls(tracks=[])
        timeline.restore(state)
        return timeline

    def validate(self) -> None:
        """Check every invariant. Raises ValueError listing all problems."""
        problems = []
        if len(set(self.tracks)) != len(self.tracks):
            problems.append(f"Duplicate track ids in {self.tracks}")
        for clip in self.clips.values():
            if clip.track not in self.tracks:
                problems.append(f"Clip {clip.id}: unknown track {clip.track}")
            problems.extend(clip_problems(clip, self.media_for(clip)))
        for track in self.tracks:
            ordered = self.clips_on_track(track)
            for a, b in zip(ordered, ordered[1:]):
                if b.overlaps(a.start_time, a.duration):
                    problems.append(
                        f"Track {track}: clips {a.id} and {b.id} overlap"
                    )
        if problems:
            raise ValueError(
                f"Invalid timeline ({len(problems)} problem(s)):\n"
                + "\n".join(f"  - {p}" for p in problems)
            )


# ── Helpers ───────────────────────────────────────────────────────


def _check_keyframe_args(prop: str, time: float, easing: str) -> None:
    if prop not in ANIMATABLE_PROPS:
        raise ValueError(
            f"'{prop}' is not animatable. Valid: {list(ANIMATABLE_PROPS)}"
        )
    if time < 0:
        raise ValueError(f"Keyframe time must be >= 0, got {time}")
    if easing not in EASINGS:
        raise ValueError(f"Unknown easing '{easing}'. Valid: {sorted(EASINGS)}")


def _keyframe_index(keyframes, clip_id, prop, keyframe_id) -> int:
    for i, kf in enumerate(keyframes):
        if kf.id == keyframe_id:
            return i
    raise KeyError(f"Clip {clip_id}: no keyframe {keyframe_id} on '{prop}'")


def _static_value(clip: Clip, prop: str) -> float:
    if prop in TRANSFORM_PROPS:
        return getattr(clip, prop)
    mask = clip.mask or Mask()
    return getattr(mask, prop[len("mask_"):])


def _split_keyframes(clip: Clip, cut: float):
    """Partition a clip's keyframes at local time cut.

    Returns (left, right, counter): keyframe maps for both halves and the
    keyframe id counter after any boundary keyframes were minted.
    """
    counter = clip.keyframe_id_counter
    left, right = {}, {}
    for prop, keyframes in clip.keyframes.items():
        value = evaluate(keyframes, cut, _static_value(clip, prop))
        before = [kf for kf in keyframes if kf.time < cut - _EPS]
        after = [
            replace(kf, time=kf.time - cut)
            for kf in keyframes if kf.time > cut + _EPS
        ]
        at_cut = [kf for kf in keyframes if abs(kf.time - cut) <= _EPS]
        easing = at_cut[0].easing if at_cut else (before[-1].easing if before else "linear")

        counter += 1
        left[prop] = before + [Keyframe(counter, cut, value, "linear")]
        counter += 1
        right[prop] = [Keyframe(counter, 0.0, value, easing)] + after
    return left, right, counter
