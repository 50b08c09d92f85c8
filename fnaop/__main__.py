#!/usr/bin/env python3
r"""fnaop CLI.

Commands:
    python -m fnaop --version     Show version
    python -m fnaop info          Show detailed version and system info
    python -m fnaop weave FILE    Weave @aspect directives into a module

Examples:
    # Print the woven module
    python -m fnaop weave service.py

    # Write it next to the original
    python -m fnaop weave service.py -o service_woven.py

    # Fail when a file still carries unwoven directives
    python -m fnaop weave service.py --check
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


def cmd_info(args: argparse.Namespace) -> int:
    """Show detailed version and system information."""
    from ._version import print_version_info

    print_version_info()
    return 0


def cmd_weave(args: argparse.Namespace) -> int:
    """Weave the directives of one module."""
    from .transformer import weave_source
    from .utils import AspectError

    filepath = Path(args.file)
    if not filepath.exists():
        print(f"Error: File not found: {filepath}", file=sys.stderr)
        return 2

    source = filepath.read_text(encoding="utf-8")
    try:
        woven = weave_source(
            source,
            directive_names=args.directive or None,
            filename=str(filepath),
        )
    except AspectError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.check:
        if woven != source:
            print(f"{filepath}: would be rewritten", file=sys.stderr)
            return 1
        return 0

    if args.output:
        Path(args.output).write_text(woven, encoding="utf-8")
        logger.info("Wrote %s", args.output)
    else:
        sys.stdout.write(woven)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for fnaop."""
    from ._version import __version__
    from .config import configure_logging

    parser = argparse.ArgumentParser(
        prog="python -m fnaop",
        description="fnaop - before/after hooks woven into functions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fnaop --version          Show version
  python -m fnaop info               Show detailed system info
  python -m fnaop weave module.py    Print the woven module
        """,
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"fnaop {__version__}",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (default: FNAOP_LOG_LEVEL or WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    info_parser = subparsers.add_parser(
        "info",
        help="Show detailed version and system information",
        description="Display version, Python, platform, and dependency information.",
    )
    info_parser.set_defaults(func=cmd_info)

    weave_parser = subparsers.add_parser(
        "weave",
        help="Weave @aspect directives into a module",
        description="Rewrite every function carrying a directive decorator.",
    )
    weave_parser.add_argument("file", help="Python source file to weave")
    weave_parser.add_argument(
        "--output",
        "-o",
        help="Write the woven module here instead of stdout",
    )
    weave_parser.add_argument(
        "--check",
        action="store_true",
        help="Exit with status 1 if the file would change",
    )
    weave_parser.add_argument(
        "--directive",
        "-d",
        action="append",
        help="Decorator name marking a directive (repeatable)",
    )
    weave_parser.set_defaults(func=cmd_weave)

    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
