"""Subcommand dispatcher for splice.

Usage:
    splice export  --project ... --output ...
    splice preview --project ... --time 2.5 --output still.png
"""

import argparse
import sys


def main(args=None):
    parser = argparse.ArgumentParser(
        prog="splice",
        description="Timeline export and preview for splice projects.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # Register subcommands. Each delegates to its own module's main().
    subparsers.add_parser("export", help="Export a YAML project to mp4")
    subparsers.add_parser("preview", help="Render one preview still")

    # Parse only the subcommand name, pass the rest to the subcommand's parser.
    parsed, remaining = parser.parse_known_args(args)

    if parsed.command is None:
        parser.print_help()
        sys.exit(1)

    if parsed.command == "export":
        from .cli import main as export_main
        export_main(remaining)
    elif parsed.command == "preview":
        from .preview_cli import main as preview_main
        preview_main(remaining)


if __name__ == "__main__":
    main()
