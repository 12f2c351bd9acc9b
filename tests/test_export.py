"""Tests for the export pipeline using in-memory encoders and sources."""

import numpy as np
import pytest

from splice.components import ComponentRegistry
from splice.encoders import EncodedChunk, EncoderFailure
from splice.export import (
    CancelSignal,
    ExportPipeline,
    ExportSettings,
    export_timeline,
)
from splice.model import MediaSource, Timeline


class FakeVideoEncoder:
    def __init__(self, fail_at=None):
        self.output = None
        self.config = None
        self.frames = []
        self.fail_at = fail_at
        self.closed = False

    def configure(self, **config):
        self.config = config

    def encode(self, frame, timestamp, is_keyframe=False):
        if self.fail_at is not None and len(self.frames) == self.fail_at:
            raise EncoderFailure("disk full")
        self.frames.append((frame.copy(), timestamp, is_keyframe))

    def flush(self):
        self.output(EncodedChunk(b"video", 0.0, True))

    def close(self):
        self.closed = True


class FakeAudioEncoder:
    def __init__(self):
        self.output = None
        self.config = None
        self.chunks = []

    def configure(self, **config):
        self.config = config

    def encode(self, chunk, timestamp):
        self.chunks.append((chunk, timestamp))

    def flush(self):
        self.output(EncodedChunk(b"audio", 0.0, True))


class FakeMuxer:
    def __init__(self):
        self.video = []
        self.audio = []

    def add_video_chunk(self, chunk):
        self.video.append(chunk)

    def add_audio_chunk(self, chunk):
        self.audio.append(chunk)

    def finalize(self):
        return b"".join(c.data for c in self.video + self.audio)


class ProgressRenderer:
    """Draws nothing interesting; records the progress prop per call."""

    def __init__(self):
        self.progress = []

    def render(self, props):
        self.progress.append(props["progress"])
        return np.full((props["height"], props["width"], 4), 255, dtype=np.uint8)


def _settings(fps=3):
    return ExportSettings(width=40, height=20, fps=fps)


def _pipeline(timeline, fake_source, fps=3, **kwargs):
    parts = {
        "video_encoder": FakeVideoEncoder(),
        "audio_encoder": FakeAudioEncoder(),
        "muxer": FakeMuxer(),
        "source_factory": lambda media: fake_source(size=(40, 20)),
        "audio_decoder": lambda path, sr, ch: np.full((sr, ch), 0.1, dtype=np.float32),
    }
    parts.update(kwargs)
    return ExportPipeline(timeline, _settings(fps), **parts)


def _component_timeline(duration=1.0):
    timeline = Timeline()
    registry = ComponentRegistry()
    renderer = ProgressRenderer()
    registry.register("progress", renderer)
    clip = timeline.place_clip(MediaSource("progress", "component"), 1, 0.0)
    timeline.update_clip(clip.id, duration=duration, original_duration=duration)
    return timeline, registry, renderer


class TestExportSettings:
    def test_defaults(self):
        assert ExportSettings().canvas_size == (1920, 1080)

    @pytest.mark.parametrize("field", ["width", "height", "fps", "bitrate"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValueError, match=field):
            ExportSettings(**{field: 0})


class TestFrameLoop:
    def test_three_frames_at_three_fps(self, fake_source):
        timeline, registry, renderer = _component_timeline()
        pipeline = _pipeline(timeline, fake_source, registry=registry)
        result = pipeline.run()
        frames = pipeline.video_encoder.frames
        assert result.status == "done"
        assert result.frames_rendered == 3
        assert [t for _, t, _ in frames] == pytest.approx([0.0, 1 / 3, 2 / 3])
        assert renderer.progress == pytest.approx([0.0, 1 / 3, 2 / 3])
        assert frames[0][0].shape == (20, 40, 3)

    def test_keyframe_every_two_seconds(self, fake_source):
        timeline, registry, _ = _component_timeline(duration=5.0)
        pipeline = _pipeline(timeline, fake_source, fps=1, registry=registry)
        pipeline.run()
        assert [k for _, _, k in pipeline.video_encoder.frames] == [
            True, False, True, False, True,
        ]

    def test_encoder_configured_from_settings(self, fake_source):
        timeline, registry, _ = _component_timeline()
        pipeline = _pipeline(timeline, fake_source, registry=registry)
        pipeline.run()
        assert pipeline.video_encoder.config == {
            "codec": "avc", "width": 40, "height": 20,
            "bitrate": 8_000_000, "framerate": 3,
        }

    def test_progress_reports(self, fake_source):
        timeline, registry, _ = _component_timeline()
        seen = []
        _pipeline(timeline, fake_source, registry=registry, on_progress=seen.append).run()
        assert seen == [0, 32, 63, 100]

    def test_host_yield_every_five_frames(self, fake_source):
        timeline, registry, _ = _component_timeline()
        yields = []
        _pipeline(
            timeline, fake_source, fps=10, registry=registry,
            host_yield=lambda: yields.append(1),
        ).run()
        assert len(yields) == 2

    def test_state_history(self, fake_source):
        timeline, registry, _ = _component_timeline()
        pipeline = _pipeline(timeline, fake_source, registry=registry)
        pipeline.run()
        assert pipeline.state_history == [
            "initializing", "rendering", "flushing", "mixing_audio", "muxing", "done",
        ]

    def test_exports_a_snapshot(self, fake_source):
        timeline, registry, _ = _component_timeline()
        clip_id = next(iter(timeline.clips))
        pipeline = _pipeline(
            timeline, fake_source, registry=registry,
            on_progress=lambda p: timeline.clips.pop(clip_id, None),
        )
        result = pipeline.run()
        assert result.frames_rendered == 3
        assert pipeline.video_encoder.frames[2][0].max() == 255

    def test_no_visual_clips(self, fake_source):
        timeline = Timeline()
        timeline.place_clip(MediaSource("/m/music.wav", "audio", 3.0), 1, 0.0)
        with pytest.raises(ValueError, match="No video, image, or component clips"):
            _pipeline(timeline, fake_source).run()


class TestFailures:
    def test_failing_renderer_is_isolated(self, fake_source):
        timeline = Timeline()
        registry = ComponentRegistry()

        def boom(props):
            raise RuntimeError("bad render")

        registry.register("boom", boom)
        timeline.place_clip(MediaSource("/m/a.mp4", "video", 1.0), 1, 0.0)
        clip = timeline.place_clip(MediaSource("boom", "component"), 2, 0.0)
        timeline.update_clip(clip.id, duration=1.0, original_duration=1.0)
        pipeline = _pipeline(timeline, fake_source, registry=registry)
        result = pipeline.run()
        assert result.status == "done"
        assert [r.frame for r in result.failures] == [0, 1, 2]
        assert {r.kind for r in result.failures} == {"renderer"}
        # The video underneath is still drawn.
        assert tuple(pipeline.video_encoder.frames[0][0][10, 20]) == (255, 0, 0)

    def test_unopenable_source_is_isolated(self, fake_source):
        timeline = Timeline()
        timeline.place_clip(MediaSource("/m/still.png", "image", 1.0), 1, 0.0)
        broken = timeline.place_clip(MediaSource("/m/broken.mp4", "video", 1.0), 2, 0.0)

        def factory(media):
            if media.path == "/m/broken.mp4":
                raise OSError("cannot open broken.mp4")
            return fake_source(size=(40, 20), color=(0, 0, 255, 255))

        pipeline = _pipeline(timeline, fake_source, source_factory=factory)
        result = pipeline.run()
        assert result.status == "done"
        assert result.frames_rendered == 3
        (record,) = result.failures
        assert (record.kind, record.clip_id) == ("source", broken.id)
        assert "cannot open broken.mp4" in record.message
        # The still underneath is drawn in every frame.
        for frame, _, _ in pipeline.video_encoder.frames:
            assert tuple(frame[10, 20]) == (0, 0, 255)

    def test_failing_frame_read_is_isolated_per_frame(self, fake_source):
        class SeekFails(fake_source):
            def seek(self, time):
                raise RuntimeError("decoder lost sync")

        timeline = Timeline()
        clip = timeline.place_clip(MediaSource("/m/a.mp4", "video", 1.0), 1, 0.0)
        pipeline = _pipeline(timeline, fake_source,
                             source_factory=lambda media: SeekFails(size=(40, 20)))
        result = pipeline.run()
        assert result.status == "done"
        assert [(r.kind, r.clip_id, r.frame) for r in result.failures] == [
            ("source", clip.id, 0), ("source", clip.id, 1), ("source", clip.id, 2),
        ]
        assert not pipeline.video_encoder.frames[0][0].any()

    def test_malformed_renderer_output_is_isolated(self, fake_source):
        timeline = Timeline()
        registry = ComponentRegistry()
        registry.register("bad", lambda props: np.zeros((5,), np.uint8))
        clip = timeline.place_clip(MediaSource("bad", "component"), 1, 0.0)
        timeline.update_clip(clip.id, duration=1.0, original_duration=1.0)
        pipeline = _pipeline(timeline, fake_source, registry=registry)
        result = pipeline.run()
        assert result.status == "done"
        assert [(r.kind, r.frame) for r in result.failures] == [
            ("renderer", 0), ("renderer", 1), ("renderer", 2),
        ]

    def test_unexpected_error_marks_failed(self, fake_source):
        class BrokenMuxer(FakeMuxer):
            def finalize(self):
                raise RuntimeError("container writer crashed")

        timeline, registry, _ = _component_timeline()
        encoder = FakeVideoEncoder()
        pipeline = _pipeline(timeline, fake_source, registry=registry,
                             video_encoder=encoder, muxer=BrokenMuxer())
        with pytest.raises(RuntimeError, match="crashed"):
            pipeline.run()
        assert pipeline.state == "failed"
        assert encoder.closed

    def test_encoder_failure_aborts(self, fake_source):
        timeline, registry, _ = _component_timeline()
        encoder = FakeVideoEncoder(fail_at=1)
        pipeline = _pipeline(timeline, fake_source, registry=registry, video_encoder=encoder)
        with pytest.raises(EncoderFailure, match="disk full"):
            pipeline.run()
        assert pipeline.state == "failed"
        assert encoder.closed

    def test_cancel_stops_at_next_frame(self, fake_source):
        timeline, registry, _ = _component_timeline()
        cancel = CancelSignal()
        pipeline = _pipeline(
            timeline, fake_source, registry=registry, cancel=cancel,
            on_progress=lambda p: cancel.cancel(),
        )
        result = pipeline.run()
        assert result.status == "cancelled"
        assert result.data is None
        assert result.frames_rendered == 1
        assert pipeline.state_history[-1] == "cancelled"


class TestAudio:
    def test_video_audio_is_mixed_and_muxed(self, fake_source):
        timeline = Timeline()
        timeline.place_clip(MediaSource("/m/a.mp4", "video", 1.0), 1, 0.0)
        pipeline = _pipeline(timeline, fake_source)
        result = pipeline.run()
        audio = pipeline.audio_encoder
        assert audio.config == {
            "codec": "aac", "sample_rate": 48000, "channels": 2, "bitrate": 128_000,
        }
        assert sum(len(c) for c, _ in audio.chunks) == 48000
        assert audio.chunks[1][1] == pytest.approx(0.02)
        assert result.data == b"videoaudio"

    def test_silent_timeline_skips_audio_encoder(self, fake_source):
        timeline, registry, _ = _component_timeline()
        pipeline = _pipeline(timeline, fake_source, registry=registry)
        result = pipeline.run()
        assert pipeline.audio_encoder.config is None
        assert result.data == b"video"

    def test_export_timeline_wrapper(self, fake_source):
        timeline, registry, _ = _component_timeline()
        result = export_timeline(
            timeline, _settings(),
            video_encoder=FakeVideoEncoder(), audio_encoder=FakeAudioEncoder(),
            muxer=FakeMuxer(), registry=registry,
            source_factory=lambda media: fake_source(),
        )
        assert result.status == "done"
