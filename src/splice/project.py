"""Project loader — YAML project files to a Timeline plus export settings.

Processing pipeline:
  1. Parse YAML.
  2. Resolve ${name} path variables in every string value.
  3. Build ExportSettings from the export block.
  4. Register media sources (component props from the registry when the
     file declares none).
  5. Place clips, then add their keyframes through the Timeline API.
  6. Validate every timeline invariant at once.

Schema:

    export: {width: 1280, height: 720, fps: 30, bitrate: 8000000}
    paths: {media: /data/media}
    tracks: [1, 2]
    media:
      - {path: "${media}/intro.mp4", kind: video, duration: 12.0}
      - {path: "builtin:box", kind: component}
    clips:
      - {media: "${media}/intro.mp4", track: 1, start: 0, trim_start: 1,
         mask: {shape: ellipse}, keyframes: {x: [{time: 0, value: -0.5}]},
         props: {color: "#ff0000"}}
"""

from dataclasses import dataclass
from pathlib import Path

import yaml

from .common import resolve_path_vars
from .components import ComponentRegistry, RendererFailure, builtin_registry
from .export import ExportSettings
from .model import (
    ANIMATABLE_PROPS,
    NESTED_PROPS_SUFFIX,
    Clip,
    Mask,
    MediaSource,
    PropDefinition,
    Timeline,
    default_props,
)


VALID_CLIP_FIELDS = {
    "id", "media", "track", "start", "duration", "original_duration",
    "trim_start", "trim_end", "x", "y", "scale", "scale_x", "scale_y",
    "rotation", "mask", "keyframes", "props",
}
VALID_MASK_FIELDS = {
    "shape", "center_x", "center_y", "width", "height", "rotation",
    "feather", "border_radius", "invert",
}
VALID_PROP_FIELDS = {"type", "default", "label", "min", "max", "step", "options"}
TRANSFORM_FIELDS = ("x", "y", "scale", "scale_x", "scale_y", "rotation")


@dataclass
class Project:
    timeline: Timeline
    settings: ExportSettings
    path: str | None = None


# ── Loading ───────────────────────────────────────────────────────


def load_project(
    project_path: str | Path,
    registry: ComponentRegistry | None = None,
) -> Project:
    """Load and validate a YAML project file.

    Args:
        project_path: Path to the YAML project file.
        registry: Component registry used to fill in undeclared component
            props. Defaults to the builtin registry.

    Returns:
        A Project whose timeline satisfies every model invariant.

    Raises:
        ValueError: Unknown kinds, easings, props, mask shapes or fields,
            bad numbers and invariant violations.
        FileNotFoundError: Missing project file.
    """
    with open(project_path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{project_path}: top level must be a mapping")

    paths = raw.get("paths", {}) or {}
    raw = _resolve_paths(raw, paths)
    registry = registry or builtin_registry()

    settings = ExportSettings(**_export_settings(raw.get("export", {}) or {}))

    tracks = raw.get("tracks")
    if tracks is not None and (
        not isinstance(tracks, list) or not all(isinstance(t, int) for t in tracks)
    ):
        raise ValueError("'tracks' must be a list of integer track ids")
    timeline = Timeline(tracks=tracks)

    for i, entry in enumerate(raw.get("media", []) or []):
        timeline.add_media(_parse_media(entry, i, registry))

    for i, entry in enumerate(raw.get("clips", []) or []):
        _place_clip(timeline, entry, i)

    timeline.validate()
    return Project(timeline, settings, str(project_path))


def _resolve_paths(obj, paths: dict):
    """Recursively resolve ${var} in all string values."""
    if isinstance(obj, str):
        return resolve_path_vars(obj, paths)
    elif isinstance(obj, dict):
        return {k: _resolve_paths(v, paths) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_resolve_paths(item, paths) for item in obj]
    return obj


def _export_settings(block: dict) -> dict:
    unknown = set(block) - {"width", "height", "fps", "bitrate"}
    if unknown:
        raise ValueError(f"export: unknown field(s) {sorted(unknown)}")
    return block


def _number(value, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{where}: expected a number, got {value!r}")
    return float(value)


def _parse_media(entry: dict, index: int, registry: ComponentRegistry) -> MediaSource:
    where = f"Media {index}"
    if not isinstance(entry, dict) or "path" not in entry or "kind" not in entry:
        raise ValueError(f"{where}: needs 'path' and 'kind'")
    definitions = {}
    for name, fields in (entry.get("props") or {}).items():
        if not isinstance(fields, dict) or "type" not in fields:
            raise ValueError(f"{where}: prop '{name}' needs a 'type'")
        unknown = set(fields) - VALID_PROP_FIELDS
        if unknown:
            raise ValueError(f"{where}: prop '{name}' has unknown field(s) {sorted(unknown)}")
        definitions[name] = PropDefinition(**fields)

    source = MediaSource(
        path=entry["path"],
        kind=entry["kind"],
        duration=_number(entry.get("duration", 0.0), f"{where} duration"),
        name=entry.get("name", ""),
        prop_definitions=definitions,
    )
    if source.kind == "component" and not definitions:
        try:
            renderer = registry.get(source.path)
        except (KeyError, RendererFailure):
            return source  # unknown renderers are reported at render time
        if hasattr(renderer, "declared_inputs"):
            source.prop_definitions = renderer.declared_inputs()
    return source


def _parse_mask(fields, where: str) -> Mask | None:
    if fields is None:
        return None
    if not isinstance(fields, dict):
        raise ValueError(f"{where}: 'mask' must be a mapping")
    unknown = set(fields) - VALID_MASK_FIELDS
    if unknown:
        raise ValueError(f"{where}: mask has unknown field(s) {sorted(unknown)}")
    return Mask(**fields)


def _clip_props(media: MediaSource, given: dict, where: str) -> dict:
    props = default_props(media.prop_definitions)
    for name, value in (given or {}).items():
        base = name[:-len(NESTED_PROPS_SUFFIX)] if name.endswith(NESTED_PROPS_SUFFIX) else name
        definition = media.prop_definitions.get(base)
        if definition is None or (base != name and definition.type != "media"):
            raise ValueError(
                f"{where}: unknown prop '{name}' for '{media.path}'. "
                f"Valid: {sorted(media.prop_definitions)}"
            )
        props[name] = value
    return props


def _place_clip(timeline: Timeline, entry: dict, index: int) -> Clip:
    where = f"Clip {index}"
    if not isinstance(entry, dict):
        raise ValueError(f"{where}: must be a mapping")
    unknown = set(entry) - VALID_CLIP_FIELDS
    if unknown:
        raise ValueError(f"{where}: unknown field(s) {sorted(unknown)}")
    media = timeline.media.get(entry.get("media"))
    if media is None:
        raise ValueError(f"{where}: unknown media '{entry.get('media')}'")
    track = entry.get("track", timeline.tracks[0] if timeline.tracks else None)
    if track not in timeline.tracks:
        raise ValueError(f"{where}: unknown track {track!r}")

    trim_start = _number(entry.get("trim_start", 0.0), f"{where} trim_start")
    trim_end = _number(entry.get("trim_end", 0.0), f"{where} trim_end")
    if media.is_flexible:
        duration = _number(entry.get("duration", media.placement_duration), f"{where} duration")
        original = _number(entry.get("original_duration", duration), f"{where} original_duration")
    else:
        original = _number(
            entry.get("original_duration", media.placement_duration),
            f"{where} original_duration",
        )
        duration = _number(
            entry.get("duration", original - trim_start - trim_end), f"{where} duration",
        )

    clip_id = entry.get("id", timeline.clip_id_counter + 1)
    if not isinstance(clip_id, int) or clip_id in timeline.clips:
        raise ValueError(f"{where}: id {clip_id!r} is not a new integer id")

    clip = Clip(
        id=clip_id,
        media_path=media.path,
        track=track,
        start_time=_number(entry.get("start", 0.0), f"{where} start"),
        duration=duration,
        original_duration=original,
        trim_start=trim_start,
        trim_end=trim_end,
        mask=_parse_mask(entry.get("mask"), where),
        component_props=_clip_props(media, entry.get("props"), where),
        **{f: _number(entry[f], f"{where} {f}") for f in TRANSFORM_FIELDS if f in entry},
    )
    timeline.clips[clip.id] = clip
    timeline.clip_id_counter = max(timeline.clip_id_counter, clip.id)

    for prop, keyframes in (entry.get("keyframes") or {}).items():
        if prop not in ANIMATABLE_PROPS:
            raise ValueError(f"{where}: '{prop}' is not animatable. Valid: {list(ANIMATABLE_PROPS)}")
        for kf in keyframes:
            timeline.add_keyframe(
                clip.id, prop,
                _number(kf.get("time"), f"{where} keyframe time"),
                _number(kf.get("value"), f"{where} keyframe value"),
                kf.get("easing", "linear"),
            )
    return clip


# ── Validation ────────────────────────────────────────────────────


def validate_media_paths(project: Project) -> None:
    """Check that every file-backed media source exists on disk.

    Component ids are skipped. Reports all missing paths at once.

    Raises:
        FileNotFoundError: Lists all missing files.
    """
    missing = [
        media.path for media in project.timeline.media.values()
        if media.kind != "component" and not Path(media.path).exists()
    ]
    if missing:
        msg = f"Missing {len(missing)} file(s):\n"
        for p in missing:
            msg += f"  - {p}\n"
        raise FileNotFoundError(msg)
