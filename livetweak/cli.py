#!/usr/bin/env python3
"""
Command-line interface for livetweak.

This module provides the main CLI entry point with subcommand support.
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .commands import bindings_command, check_command, rules_command, run_command


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="python -m livetweak",
        description="livetweak - keep UI adjustments and keyboard shortcuts applied to a live web app",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m livetweak run
  python -m livetweak run --config my_profile.json --url https://www.typingmind.com/
  python -m livetweak run --cdp-url http://localhost:9222
  python -m livetweak rules
  python -m livetweak bindings --platform mac
  python -m livetweak check --config my_profile.json
        """
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True
    )

    # Run command
    run_parser = subparsers.add_parser(
        "run",
        help="Open the target page and keep the profile applied until the tab closes"
    )
    _add_config_argument(run_parser)
    run_parser.add_argument(
        "--url",
        "-u",
        type=str,
        help="Page to open (default: the profile's url)"
    )
    run_parser.add_argument(
        "--cdp-url",
        type=str,
        help="Attach to a running Chrome via its DevTools endpoint, e.g. http://localhost:9222"
    )
    run_parser.add_argument(
        "--chrome",
        action="store_true",
        help="Launch the system Chrome with remote debugging instead of bundled Chromium"
    )
    run_parser.add_argument(
        "--profile-dir",
        type=str,
        help="Browser profile directory (default: ~/.livetweak/chrome-profile)"
    )
    run_parser.add_argument(
        "--headless",
        action="store_true",
        help="Run the browser headless"
    )

    # Rules command
    rules_parser = subparsers.add_parser(
        "rules",
        help="List the patch rules of a profile"
    )
    _add_config_argument(rules_parser)

    # Bindings command
    bindings_parser = subparsers.add_parser(
        "bindings",
        help="List the keyboard shortcuts of a profile"
    )
    _add_config_argument(bindings_parser)
    bindings_parser.add_argument(
        "--platform",
        choices=["mac", "other"],
        help="Show key names for this platform (default: the profile's default platform)"
    )

    # Check command
    check_parser = subparsers.add_parser(
        "check",
        help="Validate a profile without opening a browser"
    )
    _add_config_argument(check_parser)

    return parser


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Profile JSON file (default: $LIVETWEAK_CONFIG or the bundled Typing Mind profile)"
    )


async def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "run":
            return await run_command(args)
        elif args.command == "rules":
            return await rules_command(args)
        elif args.command == "bindings":
            return await bindings_command(args)
        elif args.command == "check":
            return await check_command(args)
        else:
            parser.print_help()
            return 1
    except Exception as e:
        print(f"Error executing command '{args.command}': {e}")
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
