"""ffmpeg-backed video encoder, audio encoder and mp4 muxer.

The export loop only talks to these through the small encoder/muxer
interface (configure / encode / flush, add_*_chunk / finalize). The
ffmpeg binary is the one bundled with imageio-ffmpeg.

ffmpeg does its own packetization, so each encoder emits its whole
encoded track as a single EncodedChunk on flush(): H.264 in a Matroska
stream for video, ADTS AAC for audio. FfmpegMuxer stream-copies them
into an mp4.
"""

import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from pathlib import Path

import imageio_ffmpeg
import numpy as np

_FFMPEG = imageio_ffmpeg.get_ffmpeg_exe()

VIDEO_CODECS = {"avc": "libx264", "h264": "libx264", "libx264": "libx264"}
AUDIO_CODECS = {"aac": "aac", "mp4a": "aac"}


class EncoderFailure(RuntimeError):
    """An encoder or the muxer failed; the export cannot produce output."""


@dataclass(frozen=True)
class EncodedChunk:
    data: bytes
    timestamp: float
    is_keyframe: bool = True


def _codec(table: dict, codec: str) -> str:
    try:
        return table[codec]
    except KeyError:
        raise ValueError(f"Unsupported codec '{codec}'. Valid: {sorted(table)}") from None


class _TempDirMixin:
    _tmpdir = None

    def _workdir(self) -> Path:
        if self._tmpdir is None:
            self._tmpdir = tempfile.mkdtemp(prefix="splice-")
        return Path(self._tmpdir)

    def close(self) -> None:
        """Release temporary files. Safe to call more than once."""
        if self._tmpdir is not None:
            shutil.rmtree(self._tmpdir, ignore_errors=True)
            self._tmpdir = None


# ── Video ─────────────────────────────────────────────────────────


class FfmpegVideoEncoder(_TempDirMixin):
    """Encodes RGB frames with imageio_ffmpeg.write_frames."""

    def __init__(self, output=None):
        self.output = output
        self._writer = None
        self._path = None
        self._size = None
        self._first_timestamp = None

    def configure(self, codec: str = "avc", width: int = 1920, height: int = 1080,
                  bitrate: int = 8_000_000, framerate: float = 30) -> None:
        gop = max(1, round(2 * framerate))
        self._size = (int(width), int(height))
        self._path = self._workdir() / "video.mkv"
        self._writer = imageio_ffmpeg.write_frames(
            str(self._path),
            self._size,
            pix_fmt_in="rgb24",
            pix_fmt_out="yuv420p",
            fps=framerate,
            codec=_codec(VIDEO_CODECS, codec),
            bitrate=str(int(bitrate)),
            quality=None,
            macro_block_size=2,
            ffmpeg_log_level="error",
            output_params=["-g", str(gop), "-keyint_min", str(gop)],
        )
        try:
            self._writer.send(None)  # prime the generator
        except (OSError, RuntimeError) as exc:
            raise EncoderFailure(f"Could not start video encoder: {exc}") from exc

    def encode(self, frame: np.ndarray, timestamp: float, is_keyframe: bool = False) -> None:
        if self._writer is None:
            raise EncoderFailure("Video encoder used before configure()")
        w, h = self._size
        if frame.shape[:2] != (h, w):
            raise EncoderFailure(f"Frame shape {frame.shape} does not match {w}x{h}")
        if self._first_timestamp is None:
            self._first_timestamp = timestamp
        try:
            self._writer.send(np.ascontiguousarray(frame[:, :, :3], dtype=np.uint8).tobytes())
        except (OSError, RuntimeError, StopIteration) as exc:
            raise EncoderFailure(f"Video encoder failed: {exc}") from exc

    def flush(self) -> None:
        if self._writer is None:
            raise EncoderFailure("Video encoder flushed before configure()")
        writer, self._writer = self._writer, None
        try:
            writer.close()
        except (OSError, RuntimeError) as exc:
            raise EncoderFailure(f"Video encoder failed on flush: {exc}") from exc
        if not self._path.exists() or self._path.stat().st_size == 0:
            raise EncoderFailure("Video encoder produced no output")
        if self.output is not None:
            self.output(EncodedChunk(
                self._path.read_bytes(), self._first_timestamp or 0.0, True,
            ))

    def close(self) -> None:
        if self._writer is not None:
            writer, self._writer = self._writer, None
            try:
                writer.close()
            except (OSError, RuntimeError):
                pass  # already failing; temp files go below
        super().close()


# ── Audio ─────────────────────────────────────────────────────────


class FfmpegAudioEncoder(_TempDirMixin):
    """Encodes float32 interleaved PCM to AAC through an ffmpeg pipe."""

    def __init__(self, output=None):
        self.output = output
        self._proc = None
        self._path = None
        self._log = None
        self._channels = 2
        self._first_timestamp = None

    def configure(self, codec: str = "aac", sample_rate: int = 48000,
                  channels: int = 2, bitrate: int = 128_000) -> None:
        self._channels = channels
        workdir = self._workdir()
        self._path = workdir / "audio.aac"
        self._log = open(workdir / "audio.log", "wb")
        cmd = [
            _FFMPEG, "-y", "-v", "error",
            "-f", "f32le", "-ar", str(sample_rate), "-ac", str(channels), "-i", "-",
            "-c:a", _codec(AUDIO_CODECS, codec), "-b:a", str(int(bitrate)),
            "-f", "adts", str(self._path),
        ]
        try:
            self._proc = subprocess.Popen(
                cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=self._log,
            )
        except OSError as exc:
            raise EncoderFailure(f"Could not start audio encoder: {exc}") from exc

    def encode(self, chunk: np.ndarray, timestamp: float) -> None:
        if self._proc is None:
            raise EncoderFailure("Audio encoder used before configure()")
        if chunk.ndim != 2 or chunk.shape[1] != self._channels:
            raise EncoderFailure(f"Audio chunk shape {chunk.shape} is not (n, {self._channels})")
        if self._first_timestamp is None:
            self._first_timestamp = timestamp
        try:
            self._proc.stdin.write(np.ascontiguousarray(chunk, dtype="<f4").tobytes())
        except OSError as exc:
            raise EncoderFailure(f"Audio encoder failed: {exc}") from exc

    def flush(self) -> None:
        if self._proc is None:
            raise EncoderFailure("Audio encoder flushed before configure()")
        proc, self._proc = self._proc, None
        try:
            proc.stdin.close()
        except OSError:
            pass  # the return code below reports the failure
        returncode = proc.wait()
        self._log.close()
        if returncode != 0:
            message = (self._path.parent / "audio.log").read_text(errors="replace").strip()
            raise EncoderFailure(f"Audio encoder exited with {returncode}: {message}")
        if self.output is not None:
            self.output(EncodedChunk(
                self._path.read_bytes(), self._first_timestamp or 0.0, True,
            ))

    def close(self) -> None:
        if self._proc is not None:
            proc, self._proc = self._proc, None
            proc.kill()
            proc.wait()
        if self._log is not None and not self._log.closed:
            self._log.close()
        super().close()


# ── Muxer ─────────────────────────────────────────────────────────


class FfmpegMuxer(_TempDirMixin):
    """Collects encoded chunks and stream-copies them into an mp4."""

    def __init__(self):
        self.video_chunks: list[EncodedChunk] = []
        self.audio_chunks: list[EncodedChunk] = []

    def add_video_chunk(self, chunk: EncodedChunk) -> None:
        self.video_chunks.append(chunk)

    def add_audio_chunk(self, chunk: EncodedChunk) -> None:
        self.audio_chunks.append(chunk)

    def finalize(self) -> bytes:
        """Mux the collected tracks. Returns the mp4 file's bytes."""
        if not self.video_chunks:
            raise EncoderFailure("Nothing to mux: no video chunks")
        workdir = self._workdir()
        video_path = workdir / "mux-video.mkv"
        video_path.write_bytes(b"".join(c.data for c in self.video_chunks))
        cmd = [_FFMPEG, "-y", "-v", "error", "-i", str(video_path)]
        maps = ["-map", "0:v:0"]
        if self.audio_chunks:
            audio_path = workdir / "mux-audio.aac"
            audio_path.write_bytes(b"".join(c.data for c in self.audio_chunks))
            cmd += ["-i", str(audio_path)]
            maps += ["-map", "1:a:0"]
        out_path = workdir / "out.mp4"
        cmd += maps + ["-c", "copy", "-movflags", "+faststart", str(out_path)]

        result = subprocess.run(cmd, capture_output=True)
        if result.returncode != 0:
            raise EncoderFailure(
                f"Muxer failed: {result.stderr.decode(errors='replace').strip()}"
            )
        return out_path.read_bytes()
