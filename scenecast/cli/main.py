"""
CLI Main Entry Point

SceneCast command-line interface main module.
"""

import sys

from ..exceptions import SceneCastError
from .handlers import handle_config, handle_describe, handle_watch
from .parser import create_parser, parse_args


def run_cli(args=None) -> int:
    """
    Run the CLI with given arguments.

    Args:
        args: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code (0 = success)
    """
    parsed = parse_args(args)

    handlers = {
        "watch": handle_watch,
        "describe": handle_describe,
        "config": handle_config,
    }

    command = parsed.command

    if not command:
        parser = create_parser()
        parser.print_help()
        return 0

    handler = handlers.get(command)
    if handler:
        return handler(parsed)
    else:
        print(f"Unknown command: {command}")
        return 1


def main():
    """Main entry point."""
    try:
        sys.exit(run_cli())
    except KeyboardInterrupt:
        print("\n🛑 Interrupted")
        sys.exit(130)
    except SceneCastError as e:
        print(f"❌ {e}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
