"""CLI for rendering preview stills of a project.

Each still goes through the same frame path as the export, so a still
taken at --frame N matches exported frame N.

Usage:
    python -m splice.preview_cli --project project.yaml --time 2.5 --output still.png
    python -m splice.preview_cli --project project.yaml --frame 75 --output still.png
"""

import argparse
from pathlib import Path

from .failures import FailureLog
from .preview import preview_frame
from .project import load_project, validate_media_paths


def main(args=None):
    parser = argparse.ArgumentParser(
        description="Render a preview still of a splice project.",
    )
    parser.add_argument("--project", required=True, help="Path to YAML project file")
    parser.add_argument("--output", required=True, help="Output image path (.png, .jpg)")
    when = parser.add_mutually_exclusive_group(required=True)
    when.add_argument("--time", type=float, help="Timeline time in seconds")
    when.add_argument("--frame", type=int, help="Export frame index")
    args = parser.parse_args(args)

    project = load_project(args.project)
    validate_media_paths(project)

    failures = FailureLog(quiet=False)
    image = preview_frame(
        project.timeline, time=args.time, frame=args.frame,
        settings=project.settings, failures=failures,
    )
    Path(args.output).parent.mkdir(parents=True, exist_ok=True)
    image.save(args.output)
    where = f"frame {args.frame}" if args.frame is not None else f"{args.time:.3f}s"
    print(f"Preview at {where}: {image.width}x{image.height} -> {args.output}")


if __name__ == "__main__":
    main()
