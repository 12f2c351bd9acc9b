"""Shared test fixtures for splice tests."""

import subprocess

import numpy as np
import pytest
import imageio_ffmpeg
from PIL import Image

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()


@pytest.fixture
def source_video(tmp_path):
    """Create a 5-second test video (320x240, 10fps) with a sine tone using ffmpeg.

    Shared across test_sources.py, test_encoders.py and the CLI tests.
    """
    out = tmp_path / "source.mp4"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "color=c=blue:s=320x240:d=5:r=10",
            "-f", "lavfi", "-i", "sine=frequency=440:sample_rate=48000:duration=5",
            "-shortest",
            "-c:v", "libx264", "-crf", "28", "-pix_fmt", "yuv420p",
            "-c:a", "aac", "-b:a", "64k",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def silent_video(tmp_path):
    """A 2-second 160x120 video with no audio stream."""
    out = tmp_path / "silent.mp4"
    subprocess.run(
        [
            _FFMPEG, "-y",
            "-f", "lavfi", "-i", "color=c=red:s=160x120:d=2:r=10",
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
            str(out),
        ],
        check=True,
        capture_output=True,
    )
    return out


@pytest.fixture
def source_image(tmp_path):
    """A 200x100 solid green PNG."""
    out = tmp_path / "still.png"
    Image.new("RGB", (200, 100), (0, 255, 0)).save(out)
    return out


class FakeSource:
    """Frame source returning a solid color; records every seek."""

    def __init__(self, size=(40, 20), color=(255, 0, 0, 255), drift=0.0):
        self.size = size
        self.color = color
        self.drift = drift
        self.frame_interval = 0.0
        self.seeks = []
        self.closed = False

    def natural_size(self):
        return self.size

    def seek(self, time):
        self.seeks.append(time)
        return time + self.drift

    def current_frame(self):
        w, h = self.size
        frame = np.zeros((h, w, 4), dtype=np.uint8)
        frame[:, :] = self.color
        return frame

    def close(self):
        self.closed = True


@pytest.fixture
def fake_source():
    return FakeSource
