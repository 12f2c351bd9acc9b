"""CLI for exporting a project to mp4.

Reads a YAML project file, validates all media paths, renders every
frame through the export pipeline and writes the muxed mp4.

Usage:
    # Export at the project's settings
    python -m splice.cli --project project.yaml --output /tmp/out.mp4

    # Override resolution / frame rate for a quick draft
    python -m splice.cli --project project.yaml --output /tmp/draft.mp4 \
        --width 640 --height 360 --fps 15

    # Validate only (no rendering)
    python -m splice.cli --project project.yaml --validate
"""

import argparse
import dataclasses
import signal
import sys
import time
from pathlib import Path

from .export import CANCELLED, CancelSignal, ExportPipeline
from .project import load_project, validate_media_paths


def _print_summary(project) -> None:
    timeline = project.timeline
    s = project.settings
    print(
        f"Project valid: {len(timeline.clips)} clips on {len(timeline.tracks)} tracks, "
        f"{timeline.total_duration():.2f}s"
    )
    for track in reversed(timeline.tracks):
        for clip in timeline.clips_on_track(track):
            media = timeline.media_for(clip)
            print(
                f"  [track {track}] clip {clip.id}: {media.kind} {media.name} "
                f"@ {clip.start_time:.2f}s for {clip.duration:.2f}s"
            )
    print(f"Export: {s.width}x{s.height}, {s.fps}fps, {s.bitrate} bps")


class _ProgressPrinter:
    """Prints a progress line each time the percentage crosses a 10% step."""

    def __init__(self, quiet=False):
        self.quiet = quiet
        self._last = -1

    def __call__(self, percent):
        step = percent // 10
        if not self.quiet and step != self._last:
            self._last = step
            print(f"  {percent:3d}%", flush=True)


def export(
    project_path: str,
    output_path: str,
    width: int | None = None,
    height: int | None = None,
    fps: float | None = None,
    bitrate: int | None = None,
    quiet: bool = False,
    cancel: CancelSignal | None = None,
) -> str:
    """Load a project, export it and write the mp4.

    Returns the final status ("done" or "cancelled").
    """
    project = load_project(project_path)
    validate_media_paths(project)

    overrides = {
        k: v for k, v in
        {"width": width, "height": height, "fps": fps, "bitrate": bitrate}.items()
        if v is not None
    }
    settings = dataclasses.replace(project.settings, **overrides)
    timeline = project.timeline

    print(f"Exporting {timeline.total_duration():.2f}s from {project_path}")
    print(f"Resolution: {settings.width}x{settings.height}, {settings.fps}fps")
    t0 = time.monotonic()

    pipeline = ExportPipeline(
        timeline, settings,
        cancel=cancel,
        on_progress=_ProgressPrinter(quiet),
        quiet=quiet,
    )
    result = pipeline.run()
    elapsed = time.monotonic() - t0

    if result.failures:
        print(f"  {len(result.failures)} isolated failure(s) during export")
    if result.status == CANCELLED:
        print(f"\nCancelled after {result.frames_rendered} frames ({elapsed:.1f}s wall)")
        return result.status

    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    Path(output_path).write_bytes(result.data)
    print(f"\nDone: {output_path} — {result.frames_rendered} frames, {elapsed:.1f}s wall")
    return result.status


# ── CLI entry point ───────────────────────────────────────────────


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Export a splice project to mp4.",
    )
    parser.add_argument(
        "--project", required=True,
        help="Path to YAML project file",
    )
    parser.add_argument(
        "--output",
        help="Output mp4 path",
    )
    parser.add_argument("--width", type=int, default=None, help="Override export width")
    parser.add_argument("--height", type=int, default=None, help="Override export height")
    parser.add_argument("--fps", type=float, default=None, help="Override frame rate")
    parser.add_argument("--bitrate", type=int, default=None, help="Override video bitrate (bps)")
    parser.add_argument(
        "--quiet", action="store_true",
        help="Suppress progress and failure lines",
    )
    parser.add_argument(
        "--validate", action="store_true",
        help="Validate project only — check paths, don't render",
    )
    args = parser.parse_args(args)

    if args.validate:
        project = load_project(args.project)
        validate_media_paths(project)
        _print_summary(project)
        print("All paths verified.")
        return

    if not args.output:
        parser.error("--output is required (unless using --validate)")

    # Ctrl-C stops the frame loop at the next frame boundary.
    cancel = CancelSignal()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.cancel())
    try:
        status = export(
            args.project, args.output,
            width=args.width, height=args.height,
            fps=args.fps, bitrate=args.bitrate,
            quiet=args.quiet, cancel=cancel,
        )
    finally:
        signal.signal(signal.SIGINT, previous)
    if status == CANCELLED:
        sys.exit(1)


if __name__ == "__main__":
    main()
