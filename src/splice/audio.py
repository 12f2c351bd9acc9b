"""Offline audio mixdown for export.

Every clip with audio (video and audio media) is scheduled at its
timeline offset with its trim applied. Audio media referenced from a
component's props, or from the props of a component it nests, plays
from its start at the component clip's offset.
Placement is sample-accurate at SAMPLE_RATE; the sum is clipped to
[-1, 1] and handed to the audio encoder in CHUNK_SIZE-sample chunks.
"""

from dataclasses import dataclass

import numpy as np

from .content import MAX_COMPONENT_DEPTH
from .failures import FailureLog
from .model import NESTED_PROPS_SUFFIX, MediaSource, Timeline, default_props
from .sources import AudioDecodeError, decode_audio


SAMPLE_RATE = 48000
CHANNELS = 2
CHUNK_SIZE = 960
AUDIO_BITRATE = 128_000


@dataclass(frozen=True)
class AudioPlacement:
    clip_id: int
    path: str
    offset: float       # timeline seconds where playback starts
    trim_start: float   # seconds skipped at the head of the media
    duration: float     # seconds played


def collect_audio_placements(timeline: Timeline) -> list[AudioPlacement]:
    """Schedule every audible source on the timeline."""
    placements = []
    for clip in sorted(timeline.clips.values(), key=lambda c: (c.start_time, c.id)):
        media = timeline.media_for(clip)
        if media is None:
            continue
        if media.has_audio:
            placements.append(AudioPlacement(
                clip.id, media.path, clip.start_time, clip.trim_start, clip.duration,
            ))
        elif media.kind == "component":
            for path in _referenced_audio(timeline, media, clip.component_props):
                placements.append(AudioPlacement(
                    clip.id, path, clip.start_time, 0.0, clip.duration,
                ))
    return placements


def _referenced_audio(timeline: Timeline, media: MediaSource, props: dict,
                      depth: int = 0) -> list[str]:
    """Audible media a component draws, including its child component's refs."""
    paths = []
    merged = {**default_props(media.prop_definitions), **(props or {})}
    for name, definition in media.prop_definitions.items():
        if definition.type != "media":
            continue
        ref = timeline.media.get(merged.get(name) or "")
        if ref is None or ref.path == media.path:
            continue
        if ref.has_audio:
            paths.append(ref.path)
        elif ref.kind == "component" and depth < MAX_COMPONENT_DEPTH:
            child_props = merged.get(name + NESTED_PROPS_SUFFIX)
            paths.extend(_referenced_audio(
                timeline, ref, child_props if isinstance(child_props, dict) else {},
                depth + 1,
            ))
    return paths


def mix_down(
    placements: list[AudioPlacement],
    total_duration: float,
    decoder=decode_audio,
    failures: FailureLog | None = None,
    sample_rate: int = SAMPLE_RATE,
    channels: int = CHANNELS,
) -> np.ndarray | None:
    """Mix placements into one float32 (n, channels) buffer.

    Each media file is decoded once. Files that fail to decode are
    recorded and skipped. Returns None when nothing could be decoded.
    """
    total = int(round(total_duration * sample_rate))
    mix = np.zeros((total, channels), dtype=np.float32)
    decoded = {}
    used = 0

    for p in placements:
        if p.path not in decoded:
            try:
                decoded[p.path] = decoder(p.path, sample_rate, channels)
            except (AudioDecodeError, OSError, ValueError) as exc:
                decoded[p.path] = None
                if failures is not None:
                    failures.record(
                        "audio_decode", str(exc), clip_id=p.clip_id,
                        once_key=("audio_decode", p.path),
                    )
        samples = decoded[p.path]
        if samples is None:
            continue
        used += 1

        src = int(round(p.trim_start * sample_rate))
        length = int(round(p.duration * sample_rate))
        dst = int(round(p.offset * sample_rate))
        segment = samples[src:src + length][:max(0, total - dst)]
        if len(segment):
            mix[dst:dst + len(segment)] += segment

    if not used:
        return None
    np.clip(mix, -1.0, 1.0, out=mix)
    return mix


def iter_chunks(mix: np.ndarray, chunk_size: int = CHUNK_SIZE,
                sample_rate: int = SAMPLE_RATE):
    """Yield (chunk, timestamp_seconds) slices of a mixed buffer."""
    for offset in range(0, len(mix), chunk_size):
        yield mix[offset:offset + chunk_size], offset / sample_rate
