"""Export pipeline — deterministic frame loop, audio mix, encode and mux.

States:
    initializing -> rendering -> flushing -> mixing_audio -> muxing -> done
    rendering -> cancelled      (cancel signal seen at the top of a frame)
    any -> failed               (encoder or muxer failure; re-raised)

Frame f is rendered at t = f / fps through the same plan_frame /
render_frame path the preview uses. One frame is in flight at a time.
Renderer, seek and audio-decode problems are isolated and reported in
ExportResult.failures; encoder and muxer failures abort the export.
"""

import threading
from dataclasses import dataclass, field

from .audio import (
    AUDIO_BITRATE, CHANNELS, SAMPLE_RATE, collect_audio_placements, iter_chunks, mix_down,
)
from .components import ComponentRegistry, RendererSupervisor, builtin_registry
from .content import ContentProvider
from .encoders import FfmpegAudioEncoder, FfmpegMuxer, FfmpegVideoEncoder
from .failures import FailureLog, FailureRecord
from .model import Timeline
from .render import (
    compute_total_frames, frame_time, keyframe_interval, plan_frame, render_frame,
)
from .sources import SourcePool, decode_audio, open_source


# ── States ───────────────────────────────────────────────────────

INITIALIZING = "initializing"
RENDERING = "rendering"
FLUSHING = "flushing"
MIXING_AUDIO = "mixing_audio"
MUXING = "muxing"
DONE = "done"
CANCELLED = "cancelled"
FAILED = "failed"

YIELD_EVERY = 5
VIDEO_CODEC = "avc"
AUDIO_CODEC = "aac"


@dataclass(frozen=True)
class ExportSettings:
    width: int = 1920
    height: int = 1080
    fps: float = 30
    bitrate: int = 8_000_000

    def __post_init__(self):
        for name in ("width", "height", "fps", "bitrate"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ValueError(f"ExportSettings.{name} must be a positive number, got {value!r}")

    @property
    def canvas_size(self) -> tuple[int, int]:
        return (int(self.width), int(self.height))


class CancelSignal:
    """Thread-safe cancel flag checked by the frame loop."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()


@dataclass
class ExportResult:
    status: str
    data: bytes | None
    frames_rendered: int = 0
    failures: list[FailureRecord] = field(default_factory=list)


class ExportPipeline:
    """Renders a timeline snapshot to encoded, muxed bytes.

    Collaborators default to the ffmpeg backends, the builtin component
    registry and moviepy/Pillow sources; tests pass fakes.
    """

    def __init__(
        self,
        timeline: Timeline,
        settings: ExportSettings | None = None,
        video_encoder=None,
        audio_encoder=None,
        muxer=None,
        registry: ComponentRegistry | None = None,
        source_factory=open_source,
        audio_decoder=decode_audio,
        cancel: CancelSignal | None = None,
        on_progress=None,
        host_yield=None,
        quiet: bool = True,
    ):
        self.timeline = timeline
        self.settings = settings or ExportSettings()
        self.video_encoder = video_encoder or FfmpegVideoEncoder()
        self.audio_encoder = audio_encoder or FfmpegAudioEncoder()
        self.muxer = muxer or FfmpegMuxer()
        self.registry = registry or builtin_registry()
        self.source_factory = source_factory
        self.audio_decoder = audio_decoder
        self.cancel = cancel or CancelSignal()
        self.on_progress = on_progress
        self.host_yield = host_yield
        self.quiet = quiet
        self.state = INITIALIZING
        self.state_history = [INITIALIZING]

    def _set_state(self, state: str) -> None:
        self.state = state
        self.state_history.append(state)

    def _progress(self, percent: int) -> None:
        if self.on_progress is not None:
            self.on_progress(percent)

    def run(self) -> ExportResult:
        """Run the export to completion, cancellation or failure.

        Raises:
            ValueError: The timeline has no visual clips.
            EncoderFailure: An encoder or the muxer failed.

        Any exception raised once rendering has started leaves the
        pipeline in the failed state.
        """
        snapshot = Timeline.from_state(self.timeline.snapshot())
        visual = [
            c for c in snapshot.clips.values()
            if snapshot.media_for(c) is not None and snapshot.media_for(c).is_visual
        ]
        if not visual:
            raise ValueError("No video, image, or component clips to export")

        settings = self.settings
        canvas = settings.canvas_size
        total_duration = snapshot.total_duration()
        total_frames = compute_total_frames(total_duration, settings.fps)
        gop = keyframe_interval(settings.fps)

        failures = FailureLog(quiet=self.quiet)
        pool = SourcePool(self.source_factory)
        provider = ContentProvider(
            snapshot, canvas, RendererSupervisor(self.registry, failures), pool, failures,
        )
        self.video_encoder.output = self.muxer.add_video_chunk
        self.audio_encoder.output = self.muxer.add_audio_chunk

        frames = 0
        try:
            self.video_encoder.configure(
                codec=VIDEO_CODEC, width=canvas[0], height=canvas[1],
                bitrate=settings.bitrate, framerate=settings.fps,
            )
            self._set_state(RENDERING)
            last_timestamp = None
            for f in range(total_frames):
                if self.cancel.is_set():
                    self._set_state(CANCELLED)
                    return ExportResult(CANCELLED, None, frames, failures.records)

                t = frame_time(f, settings.fps)
                if last_timestamp is not None and t <= last_timestamp:
                    raise RuntimeError(
                        f"Frame timestamps must increase: {t} after {last_timestamp}"
                    )
                plan = plan_frame(snapshot, t, canvas, provider.natural_size, frame_index=f)
                pixels = render_frame(snapshot, plan, provider, canvas)
                self.video_encoder.encode(pixels, t, f % gop == 0)
                frames += 1
                last_timestamp = t

                self._progress(round(f / total_frames * 95))
                if self.host_yield is not None and frames % YIELD_EVERY == 0:
                    self.host_yield()

            self._set_state(FLUSHING)
            self.video_encoder.flush()

            self._set_state(MIXING_AUDIO)
            placements = collect_audio_placements(snapshot)
            if placements:
                mix = mix_down(
                    placements, total_duration, decoder=self.audio_decoder,
                    failures=failures, sample_rate=SAMPLE_RATE, channels=CHANNELS,
                )
                if mix is not None:
                    self.audio_encoder.configure(
                        codec=AUDIO_CODEC, sample_rate=SAMPLE_RATE,
                        channels=CHANNELS, bitrate=AUDIO_BITRATE,
                    )
                    for chunk, timestamp in iter_chunks(mix, sample_rate=SAMPLE_RATE):
                        self.audio_encoder.encode(chunk, timestamp)
                    self.audio_encoder.flush()

            self._set_state(MUXING)
            data = self.muxer.finalize()
            self._progress(100)
            self._set_state(DONE)
            return ExportResult(DONE, data, frames, failures.records)
        except Exception:
            self._set_state(FAILED)
            raise
        finally:
            pool.close_all()
            for part in (self.video_encoder, self.audio_encoder, self.muxer):
                close = getattr(part, "close", None)
                if close is not None:
                    close()


def export_timeline(timeline: Timeline, settings: ExportSettings | None = None,
                    **kwargs) -> ExportResult:
    """Convenience wrapper: build an ExportPipeline and run it."""
    return ExportPipeline(timeline, settings, **kwargs).run()
