"""
Command-line interface for botflow.

Usage:
    botflow validate plugins/greeter.json
    botflow scope plugins/greeter.json response-1
    botflow options plugins/greeter.json
    botflow run plugins/greeter.json --event '{"username": "Ann"}'
"""

import argparse
import sys

from botflow.observability import configure_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="botflow",
        description="botflow - validate and run visual bot plugin graphs",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--plugin-log-level",
        default=None,
        help="Log level for plugin `log` actions (default: same as --log-level)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # Register runner commands (validate, scope, options, run)
    from botflow.runner.cli import register_commands

    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, plugin_level=args.plugin_log_level)

    if hasattr(args, "func"):
        return args.func(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
