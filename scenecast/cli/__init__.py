"""
SceneCast CLI Module

Usage:
    from scenecast.cli import run_cli

    run_cli(["describe", "photo.jpg"])
"""

from .main import main, run_cli
from .parser import create_parser, parse_args
from .handlers import handle_config, handle_describe, handle_watch

__all__ = [
    "main",
    "run_cli",
    "create_parser",
    "parse_args",
    "handle_watch",
    "handle_describe",
    "handle_config",
]
