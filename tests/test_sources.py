"""Tests for frame sources, seeking and audio decoding against real media."""

import numpy as np
import pytest

from splice.failures import FailureLog
from splice.model import MediaSource
from splice.sources import (
    AudioDecodeError,
    MoviepyFrameSource,
    SourcePool,
    StillImageSource,
    decode_audio,
    open_source,
    seek_frame,
)


class TestMoviepyFrameSource:
    def test_metadata(self, source_video):
        source = MoviepyFrameSource(source_video)
        try:
            assert source.natural_size() == (320, 240)
            assert source.fps == pytest.approx(10)
            assert source.duration == pytest.approx(5.0, abs=0.1)
            assert source.frame_interval == pytest.approx(0.1)
        finally:
            source.close()

    def test_seek_returns_rgba_frame(self, source_video):
        source = MoviepyFrameSource(source_video)
        try:
            assert source.seek(1.25) == pytest.approx(1.25)
            frame = source.current_frame()
            assert frame.shape == (240, 320, 4)
            assert frame.dtype == np.uint8
            assert (frame[:, :, 3] == 255).all()
            # lavfi "blue" dominates the blue channel.
            assert frame[120, 160, 2] > frame[120, 160, 0]
        finally:
            source.close()

    def test_seek_past_end_lands_on_last_frame(self, source_video):
        source = MoviepyFrameSource(source_video)
        try:
            landed = source.seek(99.0)
            assert landed < source.duration
            assert source.current_frame().shape == (240, 320, 4)
        finally:
            source.close()


class TestStillImageSource:
    def test_decodes_rgba(self, source_image):
        source = StillImageSource(source_image)
        assert source.natural_size() == (200, 100)
        assert tuple(source.current_frame()[50, 100]) == (0, 255, 0, 255)
        assert source.seek(3.3) == 3.3


class TestOpenSourceAndPool:
    def test_factory_by_kind(self, source_video, source_image):
        video = open_source(MediaSource(str(source_video), "video", 5.0))
        still = open_source(MediaSource(str(source_image), "image"))
        try:
            assert isinstance(video, MoviepyFrameSource)
            assert isinstance(still, StillImageSource)
        finally:
            video.close()

    def test_components_have_no_frames(self):
        with pytest.raises(ValueError, match="has no frames"):
            open_source(MediaSource("builtin:box", "component"))

    def test_pool_opens_once_and_closes_all(self, fake_source):
        opened = []

        def factory(media):
            opened.append(fake_source())
            return opened[-1]

        pool = SourcePool(factory)
        media = MediaSource("/m/a.mp4", "video", 1.0)
        assert pool.get(media) is pool.get(media)
        assert len(pool) == 1
        pool.close_all()
        assert opened[0].closed
        assert len(pool) == 0


class TestSeekFrame:
    def test_exact_seek_no_retry(self, fake_source):
        source = fake_source()
        seek_frame(source, 1.0)
        assert source.seeks == [1.0]

    def test_retries_once_then_records(self, fake_source):
        source = fake_source(drift=0.2)
        failures = FailureLog()
        frame = seek_frame(source, 1.0, failures, clip_id=2, frame=30)
        assert source.seeks == [1.0, 1.0]
        assert frame.shape == (20, 40, 4)
        assert failures.records[0].kind == "media_timeout"

    def test_tolerance_widens_with_frame_interval(self, fake_source):
        source = fake_source(drift=0.04)
        source.frame_interval = 0.1
        failures = FailureLog()
        seek_frame(source, 1.0, failures)
        assert source.seeks == [1.0]
        assert len(failures) == 0


class TestDecodeAudio:
    def test_decodes_stereo_float(self, source_video):
        samples = decode_audio(source_video)
        assert samples.dtype == np.float32
        assert samples.shape[1] == 2
        assert samples.shape[0] == pytest.approx(5 * 48000, rel=0.02)
        assert 0.1 < np.abs(samples).max() <= 1.0

    def test_no_audio_stream_is_empty(self, silent_video):
        samples = decode_audio(silent_video)
        assert samples.shape == (0, 2)

    def test_unreadable_file_raises(self, tmp_path):
        bogus = tmp_path / "bogus.mp4"
        bogus.write_bytes(b"not a video")
        with pytest.raises(AudioDecodeError):
            decode_audio(bogus)
