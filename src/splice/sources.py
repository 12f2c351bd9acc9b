"""Media sources: seekable video frames, still images and decoded audio.

Frame sources share one small interface:

    seek(time) -> landed_time
    current_frame() -> RGBA ndarray
    natural_size() -> (w, h)
    close()

Video is read through moviepy's VideoFileClip, stills through Pillow and
audio through the bundled ffmpeg binary.
"""

import subprocess
from pathlib import Path

import imageio_ffmpeg
import numpy as np
from PIL import Image
from moviepy import VideoFileClip

from .failures import FailureLog
from .model import MediaSource

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

SEEK_TOLERANCE = 0.01      # seconds; widened to half a source frame interval


class AudioDecodeError(RuntimeError):
    """ffmpeg could not decode a media file's audio."""


# ── Frame sources ────────────────────────────────────────────────


def _rgba(frame: np.ndarray) -> np.ndarray:
    if frame.ndim == 3 and frame.shape[2] == 4:
        return frame.astype(np.uint8, copy=False)
    alpha = np.full(frame.shape[:2] + (1,), 255, dtype=np.uint8)
    return np.concatenate([frame.astype(np.uint8, copy=False), alpha], axis=2)


class MoviepyFrameSource:
    """Seekable video frames via moviepy.

    Seeks past the last decodable frame land on the last frame, so the
    landed time can differ from the requested one near the end of media.
    """

    def __init__(self, path: str | Path):
        self.path = str(path)
        self._clip = VideoFileClip(self.path, audio=False)
        self.fps = self._clip.fps or 30.0
        self.duration = float(self._clip.duration or 0.0)
        self._time = 0.0
        self._frame = None

    @property
    def frame_interval(self) -> float:
        return 1.0 / self.fps

    def natural_size(self) -> tuple[int, int]:
        w, h = self._clip.size
        return int(w), int(h)

    def seek(self, time: float) -> float:
        last = max(0.0, self.duration - self.frame_interval / 2)
        landed = max(0.0, min(time, last))
        self._frame = _rgba(self._clip.get_frame(landed))
        self._time = landed
        return landed

    def current_frame(self) -> np.ndarray:
        if self._frame is None:
            self.seek(self._time)
        return self._frame

    def close(self) -> None:
        self._clip.close()


class StillImageSource:
    """A decoded still image. Every seek lands exactly where asked."""

    frame_interval = 0.0

    def __init__(self, path: str | Path):
        self.path = str(path)
        with Image.open(self.path) as img:
            self._frame = np.array(img.convert("RGBA"))

    def natural_size(self) -> tuple[int, int]:
        h, w = self._frame.shape[:2]
        return w, h

    def seek(self, time: float) -> float:
        return time

    def current_frame(self) -> np.ndarray:
        return self._frame

    def close(self) -> None:
        pass


def open_source(media: MediaSource):
    """Default source factory: moviepy for video, Pillow for images."""
    if media.kind == "video":
        return MoviepyFrameSource(media.path)
    if media.kind == "image":
        return StillImageSource(media.path)
    raise ValueError(f"Media '{media.path}' of kind '{media.kind}' has no frames")


class SourcePool:
    """Opens frame sources lazily, one per media path, and closes them all."""

    def __init__(self, factory=open_source):
        self.factory = factory
        self._sources = {}

    def get(self, media: MediaSource):
        source = self._sources.get(media.path)
        if source is None:
            source = self.factory(media)
            self._sources[media.path] = source
        return source

    def __len__(self):
        return len(self._sources)

    def close_all(self) -> None:
        sources, self._sources = self._sources, {}
        for source in sources.values():
            source.close()


def seek_frame(
    source,
    time: float,
    failures: FailureLog | None = None,
    clip_id: int | None = None,
    frame: int | None = None,
) -> np.ndarray:
    """Seek source to time and return the frame there.

    A seek that lands further than the tolerance from time is retried
    once; if it still misses, the frame it landed on is used and a
    media_timeout failure is recorded.
    """
    tolerance = max(SEEK_TOLERANCE, getattr(source, "frame_interval", 0.0) / 2)
    landed = source.seek(time)
    if abs(landed - time) > tolerance:
        landed = source.seek(time)
        if abs(landed - time) > tolerance and failures is not None:
            failures.record(
                "media_timeout",
                f"seek to {time:.3f}s landed at {landed:.3f}s",
                clip_id=clip_id, frame=frame,
            )
    return source.current_frame()


# ── Audio decoding ───────────────────────────────────────────────


def decode_audio(
    path: str | Path,
    sample_rate: int = 48000,
    channels: int = 2,
) -> np.ndarray:
    """Decode a media file's audio to float32 samples of shape (n, channels).

    Media without an audio stream decodes to an empty array.

    Raises:
        AudioDecodeError: ffmpeg failed for any other reason.
    """
    cmd = [
        _FFMPEG, "-v", "error", "-nostdin",
        "-i", str(path),
        "-vn", "-f", "f32le", "-acodec", "pcm_f32le",
        "-ac", str(channels), "-ar", str(sample_rate),
        "-",
    ]
    result = subprocess.run(cmd, capture_output=True)
    if result.returncode != 0:
        stderr = result.stderr.decode(errors="replace")
        if "does not contain any stream" in stderr or "matches no streams" in stderr:
            return np.zeros((0, channels), dtype=np.float32)
        raise AudioDecodeError(f"Could not decode audio of {path}: {stderr.strip()}")
    samples = np.frombuffer(result.stdout, dtype="<f4")
    usable = len(samples) - len(samples) % channels
    return samples[:usable].reshape(-1, channels).astype(np.float32)
