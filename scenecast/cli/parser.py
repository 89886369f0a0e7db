"""
CLI Argument Parser

Defines all CLI arguments and subcommands.
"""

import argparse
from typing import List, Optional

from .. import __version__
from ..config import BACKENDS


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="scenecast",
        description="SceneCast - live scene descriptions for a voice agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  scenecast watch --source 0
  scenecast watch --source rtsp://... --backend local --ocr --overlay
  scenecast watch --webhook http://localhost:8080/agent --duration 60
  scenecast describe photo.jpg
  scenecast config --show
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    _add_watch_parser(subparsers)
    _add_describe_parser(subparsers)
    _add_config_parser(subparsers)

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser


def _add_watch_parser(subparsers):
    """Add watch subcommand parser."""
    watch = subparsers.add_parser(
        "watch",
        help="Describe a live video source continuously",
        description="Sample the source periodically and forward scene changes to the agent",
    )

    watch.add_argument("--source", "-s", default="0",
                       help="Camera index, video file or stream URL (default: 0)")
    watch.add_argument("--backend", "-b", choices=BACKENDS,
                       help="Analysis backend (default: SC_BACKEND)")
    watch.add_argument("--interval-ms", type=int,
                       help="Delay between analyses (default: backend's own)")
    watch.add_argument("--ocr", action="store_true",
                       help="Read visible text during local analysis")
    watch.add_argument("--overlay", action="store_true",
                       help="Show a preview window with detection overlay")
    watch.add_argument("--webhook", metavar="URL",
                       help="POST descriptions to this URL instead of printing them")
    watch.add_argument("--config", "-c", metavar="FILE",
                       help="YAML file with pipeline overrides")
    watch.add_argument("--duration", "-t", type=float,
                       help="Stop after this many seconds")
    watch.add_argument("--metrics", metavar="FILE",
                       help="Write per-stage timing stats as JSON on exit")
    watch.add_argument("--debug", action="store_true", help="Debug logging")


def _add_describe_parser(subparsers):
    """Add describe subcommand parser."""
    describe = subparsers.add_parser(
        "describe",
        help="Describe a single image",
    )
    describe.add_argument("image", help="Image file")
    describe.add_argument("--backend", "-b", choices=BACKENDS)
    describe.add_argument("--ocr", action="store_true", help="Include recognized text")
    describe.add_argument("--config", "-c", metavar="FILE")
    describe.add_argument("--json", action="store_true", help="Print the full result as JSON")
    describe.add_argument("--debug", action="store_true")


def _add_config_parser(subparsers):
    """Add config subcommand parser."""
    cfg = subparsers.add_parser(
        "config",
        help="Show or change configuration",
    )
    cfg.add_argument("--show", action="store_true", help="Show effective configuration")
    cfg.add_argument("--get", metavar="KEY", help="Print one value")
    cfg.add_argument("--set", nargs=2, metavar=("KEY", "VALUE"), help="Set a value in .env")


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = create_parser()
    return parser.parse_args(args)
